"""Validation of device names used to address per-device storage."""

from __future__ import annotations

import re

from models.errors import InvalidIdentifier

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def sanitize_identifier(raw: object, normalize_hyphens: bool = True) -> str:
    """Return ``raw`` as a safe storage identifier or raise ``InvalidIdentifier``.

    Device firmware often uses DNS/MQTT style names such as ``room-12``; with
    ``normalize_hyphens`` those are mapped to ``room_12`` before validation.
    Registration passes ``normalize_hyphens=False`` so that only canonical
    names are ever stored in the registry.
    """
    if not isinstance(raw, str):
        raise InvalidIdentifier(raw)
    candidate = raw.strip()
    if normalize_hyphens:
        candidate = candidate.replace("-", "_")
    if not IDENTIFIER_PATTERN.fullmatch(candidate):
        raise InvalidIdentifier(raw)
    return candidate