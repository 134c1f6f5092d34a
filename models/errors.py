"""Error taxonomy for the ingestion and live-update pipeline."""

from __future__ import annotations


class ValidationError(ValueError):
    """A request field is missing or malformed; nothing was stored."""


class InvalidIdentifier(ValidationError):
    """A device name cannot be used as a storage identifier."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid device identifier: {value!r}")
        self.value = value


class UnknownDevice(KeyError):
    """The device is not registered or has no reading store."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Device {self.name!r} not found."


class DuplicateDevice(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Device {name!r} already exists.")
        self.name = name


class StorageError(RuntimeError):
    """The underlying database failed or timed out."""


class SubscriberDeliveryError(RuntimeError):
    """A live subscriber could not accept an event. Never leaves the hub."""
