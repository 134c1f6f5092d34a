"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class Device:
    """A registered sensor and where it is installed."""

    name: str
    campus: str
    location: str


@dataclass(frozen=True, slots=True)
class Reading:
    """One stored observation. ``id`` is assigned by the store on append."""

    campus: str
    location: str
    date: str
    time: str
    temperature: int
    humidity: Optional[int] = None
    id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class UpdateEvent:
    """Transient notification that ``device`` just received ``reading``."""

    device: str
    reading: Reading

    def to_message(self) -> Dict[str, Any]:
        data = asdict(self.reading)
        data.pop("id", None)
        return {"type": "update", "device": self.device, "data": data}


CONNECTED_MESSAGE: Dict[str, Any] = {"type": "connected"}
