"""Write path: turn a device report into a stored reading plus a live update."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional, Tuple

from datastore.registry import DeviceRegistry, build_default_registry
from models.errors import StorageError, ValidationError
from models.records import Device, Reading, UpdateEvent
from services.broadcast import BroadcastHub, build_default_hub
from services.identifiers import sanitize_identifier
from settings import get_settings

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"


def _require_int(field: str, value: object, required: bool = True) -> Optional[int]:
    if value is None:
        if required:
            raise ValidationError(f"Field {field!r} is required.")
        return None
    # bool is an int subclass; a sensor sending true/false is malformed.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Field {field!r} must be an integer.")
    return value


class IngestionService:
    """Coordinates the device registry and the broadcast hub."""

    def __init__(
        self,
        registry: DeviceRegistry,
        hub: BroadcastHub,
        clock: Callable[[], datetime] = datetime.now,
        timeout: float = 5.0,
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.clock = clock
        self.timeout = timeout

    async def record(
        self,
        device: str,
        temperature: object,
        humidity: object = None,
    ) -> Tuple[str, Reading]:
        """Store one reading for ``device`` and notify live subscribers.

        Campus and location always come from the registry and the date and
        time from the server clock; the device only contributes measurements.
        Raises ``ValidationError``/``InvalidIdentifier`` before touching
        storage, ``UnknownDevice`` for unregistered devices and
        ``StorageError`` when the append fails or times out. A timeout only
        stops the wait: SQLite may still commit the reading, which is then
        stored without a broadcast.

        Returns the registered (canonical) device name with the stored reading.
        """
        temp_value = _require_int("temperature", temperature)
        humidity_value = _require_int("humidity", humidity, required=False)
        name = sanitize_identifier(device)

        try:
            device_name, stored = await asyncio.wait_for(
                self._store_reading(name, temp_value, humidity_value),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Storage timed out while recording reading", extra={"device": name})
            raise StorageError(f"Timed out storing reading for {name!r}.") from exc
        except StorageError as exc:
            logger.error(
                "Failed to record reading", extra={"device": name, "error": str(exc)}
            )
            raise

        logger.info(
            "Recorded reading",
            extra={
                "device": device_name,
                "temperature": stored.temperature,
                "humidity": stored.humidity,
            },
        )
        await self._broadcast(device_name, stored)
        return device_name, stored

    async def _store_reading(
        self, name: str, temperature: int, humidity: Optional[int]
    ) -> Tuple[str, Reading]:
        def stamp(device: Device) -> Reading:
            now = self.clock()
            return Reading(
                campus=device.campus,
                location=device.location,
                date=now.strftime(DATE_FORMAT),
                time=now.strftime(TIME_FORMAT),
                temperature=temperature,
                humidity=humidity,
            )

        device, stored = await self.registry.append_reading(name, stamp)
        return device.name, stored

    async def _broadcast(self, name: str, reading: Reading) -> None:
        try:
            delivered = await self.hub.publish(UpdateEvent(device=name, reading=reading).to_message())
        except Exception as exc:  # noqa: BLE001 - the reading is already stored
            logger.error(
                "Failed to broadcast reading", extra={"device": name, "error": str(exc)}
            )
            return
        logger.debug(
            "Broadcast reading", extra={"device": name, "subscriber_count": delivered}
        )


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires the ingestion service with the default components."""
    return IngestionService(
        registry=build_default_registry(),
        hub=build_default_hub(),
        timeout=get_settings().storage_timeout_seconds,
    )
