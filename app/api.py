"""HTTP route definitions for the service."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    DashboardEntry,
    DeviceIn,
    DeviceOut,
    HealthResponse,
    MessageResponse,
    ReadingOut,
    WriteReadingRequest,
    WriteReadingResponse,
)
from datastore.readings import ReadingStore, build_default_store
from datastore.registry import DeviceRegistry, build_default_registry
from models.errors import (
    DuplicateDevice,
    StorageError,
    UnknownDevice,
    ValidationError,
)
from models.records import Device
from services.broadcast import BroadcastHub, build_default_hub
from services.identifiers import sanitize_identifier
from services.ingestion import IngestionService, build_default_ingestion

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_registry() -> DeviceRegistry:
    return build_default_registry()


def get_store() -> ReadingStore:
    return build_default_store()


def get_hub() -> BroadcastHub:
    return build_default_hub()


def _device_reference(raw: str) -> str:
    try:
        return sanitize_identifier(raw)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


def _storage_failure(exc: StorageError, detail: str) -> HTTPException:
    logger.error(detail, extra={"error": str(exc)})
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.post(
    "/api/write",
    status_code=status.HTTP_201_CREATED,
    response_model=WriteReadingResponse,
    summary="Record a reading reported by a sensor device.",
)
async def write_reading(
    body: WriteReadingRequest,
    ingestion: IngestionService = Depends(get_ingestion),
) -> WriteReadingResponse:
    if body.campus is not None or body.location is not None:
        logger.debug(
            "Ignoring client-supplied campus/location", extra={"device": body.device}
        )
    try:
        device, reading = await ingestion.record(body.device, body.temperature, body.humidity)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except UnknownDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to write temperature data") from exc
    return WriteReadingResponse(
        device=device,
        reading=ReadingOut.from_record(reading),
    )


@router.get(
    "/api/temperature/{device}",
    response_model=ReadingOut,
    summary="Most recent reading for a device.",
)
async def latest_reading(
    device: str,
    store: ReadingStore = Depends(get_store),
) -> ReadingOut:
    name = _device_reference(device)
    try:
        reading = await store.latest(name)
    except UnknownDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to fetch temperature") from exc
    if reading is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No data found")
    return ReadingOut.from_record(reading)


@router.get(
    "/api/temperature/{device}/history",
    response_model=List[ReadingOut],
    summary="Readings for a device, newest first.",
)
async def reading_history(
    device: str,
    date: Optional[str] = Query(None, description="Only readings taken on this YYYY-MM-DD date."),
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of readings to return."),
    store: ReadingStore = Depends(get_store),
) -> List[ReadingOut]:
    name = _device_reference(device)
    try:
        readings = await store.history(name, date=date, limit=limit)
    except UnknownDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to fetch temperature history") from exc
    return [ReadingOut.from_record(reading) for reading in readings]


@router.delete(
    "/api/temperature/{device}/history",
    response_model=MessageResponse,
    summary="Delete every stored reading for a device.",
)
async def reset_history(
    device: str,
    store: ReadingStore = Depends(get_store),
) -> MessageResponse:
    name = _device_reference(device)
    try:
        await store.reset(name)
    except UnknownDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to reset temperature history") from exc
    logger.info("Reset reading history", extra={"device": name})
    return MessageResponse(message="Temperature history reset")


async def _dashboard_entry(store: ReadingStore, device: Device) -> DashboardEntry:
    entry = DashboardEntry(name=device.name, campus=device.campus, location=device.location)
    try:
        reading = await store.latest(device.name)
    except (UnknownDevice, StorageError) as exc:
        logger.warning(
            "Dashboard read failed", extra={"device": device.name, "error": str(exc)}
        )
        return entry
    if reading is None:
        return entry
    return entry.model_copy(
        update={
            "temperature": reading.temperature,
            "humidity": reading.humidity,
            "date": reading.date,
            "time": reading.time,
        }
    )


@router.get(
    "/api/dashboard",
    response_model=List[DashboardEntry],
    summary="Latest reading for every registered device.",
)
async def dashboard(
    filter: Optional[str] = Query(None, description="Only devices on this campus."),
    registry: DeviceRegistry = Depends(get_registry),
    store: ReadingStore = Depends(get_store),
) -> List[DashboardEntry]:
    try:
        devices = await registry.list()
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to fetch dashboard data") from exc
    if filter:
        devices = [device for device in devices if device.campus == filter]
    return list(await asyncio.gather(*(_dashboard_entry(store, device) for device in devices)))


@router.get(
    "/api/devices",
    response_model=List[DeviceOut],
    summary="Registered devices ordered by campus and location.",
)
async def list_devices(
    registry: DeviceRegistry = Depends(get_registry),
) -> List[DeviceOut]:
    try:
        devices = await registry.list()
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to fetch devices") from exc
    return [DeviceOut.from_record(device) for device in devices]


@router.post(
    "/api/devices",
    status_code=status.HTTP_201_CREATED,
    response_model=DeviceOut,
    summary="Register a device and provision its reading store.",
)
async def register_device(
    body: DeviceIn,
    registry: DeviceRegistry = Depends(get_registry),
) -> DeviceOut:
    try:
        device = await registry.register(body.name, body.campus, body.location)
    except DuplicateDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to add device") from exc
    return DeviceOut.from_record(device)


@router.delete(
    "/api/devices/{name}",
    response_model=MessageResponse,
    summary="Remove a device together with its stored readings.",
)
async def remove_device(
    name: str,
    registry: DeviceRegistry = Depends(get_registry),
) -> MessageResponse:
    try:
        await registry.remove(name)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except UnknownDevice as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_failure(exc, "Failed to delete device") from exc
    return MessageResponse(message="Device deleted successfully")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(hub: BroadcastHub = Depends(get_hub)) -> HealthResponse:
    return HealthResponse(status="ok", subscribers=hub.subscriber_count)


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
