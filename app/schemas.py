"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt

from models.records import Device, Reading


class WriteReadingRequest(BaseModel):
    """Payload posted by a sensor device.

    Older firmware also posts ``campus``, ``location``, ``date`` and ``time``;
    those are accepted and ignored in favour of the registry and server clock.
    """

    model_config = ConfigDict(extra="ignore")

    device: str = Field(..., min_length=1, description="Registered device name; hyphens map to underscores.")
    temperature: StrictInt = Field(
        ...,
        validation_alias=AliasChoices("temp", "temperature"),
        description="Temperature as reported by the sensor.",
    )
    humidity: Optional[StrictInt] = Field(default=None, description="Relative humidity, if the sensor has one.")
    campus: Optional[str] = Field(default=None, description="Ignored; resolved from the device registry.")
    location: Optional[str] = Field(default=None, description="Ignored; resolved from the device registry.")
    date: Optional[str] = Field(default=None, description="Ignored; stamped by the server.")
    time: Optional[str] = Field(default=None, description="Ignored; stamped by the server.")


class ReadingOut(BaseModel):
    id: Optional[int] = None
    campus: str
    location: str
    date: str
    time: str
    temperature: int
    humidity: Optional[int] = None

    @classmethod
    def from_record(cls, reading: Reading) -> "ReadingOut":
        return cls(
            id=reading.id,
            campus=reading.campus,
            location=reading.location,
            date=reading.date,
            time=reading.time,
            temperature=reading.temperature,
            humidity=reading.humidity,
        )


class WriteReadingResponse(BaseModel):
    message: str = "Temperature data recorded"
    device: str
    reading: ReadingOut


class DeviceIn(BaseModel):
    name: str = Field(..., min_length=1)
    campus: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)


class DeviceOut(BaseModel):
    name: str
    campus: str
    location: str

    @classmethod
    def from_record(cls, device: Device) -> "DeviceOut":
        return cls(name=device.name, campus=device.campus, location=device.location)


class DashboardEntry(BaseModel):
    """One card on the dashboard: a device and its most recent reading."""

    name: str
    campus: str
    location: str
    temperature: Optional[int] = None
    humidity: Optional[int] = None
    date: Optional[str] = None
    time: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    subscribers: int = Field(..., ge=0)

