from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, List, Optional, Tuple

import aiosqlite

from datastore.database import Database, build_default_database
from datastore.readings import ReadingStore, build_default_store
from models.errors import DuplicateDevice, UnknownDevice, ValidationError
from models.records import Device, Reading
from services.identifiers import sanitize_identifier

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    name     TEXT PRIMARY KEY COLLATE NOCASE,
    campus   TEXT NOT NULL,
    location TEXT NOT NULL
)
"""


def _required_text(field: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Field {field!r} is required.")
    return value.strip()


async def _fetch_device(connection: aiosqlite.Connection, identifier: str) -> Optional[Device]:
    async with connection.execute(
        "SELECT name, campus, location FROM devices WHERE name = ?",
        (identifier,),
    ) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return None
    return Device(name=row["name"], campus=row["campus"], location=row["location"])


class DeviceRegistry:
    """Device name to (campus, location), backed by the ``devices`` table.

    Every change that touches both a registry row and a reading table runs
    in a single ``BEGIN IMMEDIATE`` transaction, so the two never disagree.
    """

    def __init__(self, database: Database, store: ReadingStore) -> None:
        self.database = database
        self.store = store

    async def initialize(self) -> None:
        await self.database.initialize()
        async with self.database.connect() as connection:
            await connection.execute(_SCHEMA_SQL)
            await connection.commit()

    async def register(self, name: str, campus: str, location: str) -> Device:
        identifier = sanitize_identifier(name, normalize_hyphens=False)
        device = Device(
            name=identifier,
            campus=_required_text("campus", campus),
            location=_required_text("location", location),
        )
        async with self.database.connect() as connection:
            await connection.execute("BEGIN IMMEDIATE")
            try:
                await connection.execute(
                    "INSERT INTO devices (name, campus, location) VALUES (?, ?, ?)",
                    (device.name, device.campus, device.location),
                )
            except aiosqlite.IntegrityError as exc:
                await connection.rollback()
                raise DuplicateDevice(identifier) from exc
            await self.store.create_table(connection, identifier)
            await connection.commit()

        logger.info("Registered device", extra={"device": identifier})
        return device

    async def lookup(self, name: str) -> Device:
        identifier = sanitize_identifier(name, normalize_hyphens=False)
        async with self.database.connect() as connection:
            device = await _fetch_device(connection, identifier)
        if device is None:
            raise UnknownDevice(identifier)
        return device

    async def append_reading(
        self, name: str, stamp: Callable[[Device], Reading]
    ) -> Tuple[Device, Reading]:
        """Store ``stamp(device)`` for a registered device.

        The registry row is read under the write lock, so a concurrent
        ``remove`` either runs first (``UnknownDevice`` here) or runs after
        this reading is committed and drops it with the table.
        """
        identifier = sanitize_identifier(name, normalize_hyphens=False)
        async with self.database.connect() as connection:
            await connection.execute("BEGIN IMMEDIATE")
            device = await _fetch_device(connection, identifier)
            if device is None:
                await connection.rollback()
                raise UnknownDevice(identifier)
            await self.store.create_table(connection, device.name)
            stored = await self.store.insert(connection, device.name, stamp(device))
            await connection.commit()
        return device, stored

    async def remove(self, name: str) -> None:
        """Delete the registry entry and drop the device's reading store."""
        identifier = sanitize_identifier(name, normalize_hyphens=False)
        async with self.database.connect() as connection:
            await connection.execute("BEGIN IMMEDIATE")
            cursor = await connection.execute(
                "DELETE FROM devices WHERE name = ?", (identifier,)
            )
            removed = cursor.rowcount
            await cursor.close()
            if not removed:
                await connection.rollback()
                raise UnknownDevice(identifier)
            await self.store.drop_table(connection, identifier)
            await connection.commit()

        logger.info("Removed device", extra={"device": identifier})

    async def list(self) -> List[Device]:
        async with self.database.connect() as connection:
            async with connection.execute(
                "SELECT name, campus, location FROM devices ORDER BY campus, location, name"
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            Device(name=row["name"], campus=row["campus"], location=row["location"])
            for row in rows
        ]


@lru_cache
def build_default_registry() -> DeviceRegistry:
    return DeviceRegistry(database=build_default_database(), store=build_default_store())
