"""Per-device append-only reading tables, provisioned on demand."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from functools import lru_cache
from typing import Iterator, List, Optional

import aiosqlite

from datastore.database import Database, build_default_database
from models.errors import UnknownDevice
from models.records import Reading
from services.identifiers import sanitize_identifier

TABLE_PREFIX = "readings_"

_SELECT_COLUMNS = "id, campus, location, date, time, temperature, humidity"


def table_name(name: str) -> str:
    """Quoted table reference for ``name``; the only place table names are built."""
    identifier = sanitize_identifier(name, normalize_hyphens=False)
    return f'"{TABLE_PREFIX}{identifier}"'


@contextmanager
def _missing_table_as_unknown(name: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.OperationalError as exc:
        if "no such table" in str(exc):
            raise UnknownDevice(name) from exc
        raise


def _to_reading(row: aiosqlite.Row) -> Reading:
    return Reading(
        id=row["id"],
        campus=row["campus"],
        location=row["location"],
        date=row["date"],
        time=row["time"],
        temperature=row["temperature"],
        humidity=row["humidity"],
    )


class ReadingStore:
    """Reading tables keyed by device name.

    ``create_table``, ``insert`` and ``drop_table`` run on a connection the
    caller owns, so the registry can combine them with its own rows in one
    transaction.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def create_table(self, connection: aiosqlite.Connection, name: str) -> None:
        table = table_name(name)
        await connection.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                campus      TEXT NOT NULL,
                location    TEXT NOT NULL,
                date        TEXT NOT NULL,
                time        TEXT NOT NULL,
                temperature INTEGER NOT NULL,
                humidity    INTEGER
            )
            """
        )

    async def insert(
        self, connection: aiosqlite.Connection, name: str, reading: Reading
    ) -> Reading:
        table = table_name(name)
        with _missing_table_as_unknown(name):
            cursor = await connection.execute(
                f"INSERT INTO {table} (campus, location, date, time, temperature, humidity) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    reading.campus,
                    reading.location,
                    reading.date,
                    reading.time,
                    reading.temperature,
                    reading.humidity,
                ),
            )
        row_id = cursor.lastrowid
        await cursor.close()
        return replace(reading, id=row_id)

    async def drop_table(self, connection: aiosqlite.Connection, name: str) -> None:
        await connection.execute(f"DROP TABLE IF EXISTS {table_name(name)}")

    async def ensure_exists(self, name: str) -> None:
        async with self.database.connect() as connection:
            await self.create_table(connection, name)
            await connection.commit()

    async def exists(self, name: str) -> bool:
        identifier = sanitize_identifier(name, normalize_hyphens=False)
        async with self.database.connect() as connection:
            async with connection.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND lower(name) = lower(?)",
                (f"{TABLE_PREFIX}{identifier}",),
            ) as cursor:
                return await cursor.fetchone() is not None

    async def append(self, name: str, reading: Reading) -> Reading:
        async with self.database.connect() as connection:
            stored = await self.insert(connection, name, reading)
            await connection.commit()
        return stored

    async def latest(self, name: str) -> Optional[Reading]:
        table = table_name(name)
        async with self.database.connect() as connection:
            with _missing_table_as_unknown(name):
                async with connection.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM {table} ORDER BY id DESC LIMIT 1"
                ) as cursor:
                    row = await cursor.fetchone()
        return _to_reading(row) if row is not None else None

    async def history(
        self, name: str, date: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Reading]:
        """Readings newest first, optionally restricted to an exact ``date``."""
        table = table_name(name)
        sql = f"SELECT {_SELECT_COLUMNS} FROM {table}"
        params: list = []
        if date is not None:
            sql += " WHERE date = ?"
            params.append(date)
        sql += " ORDER BY id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        async with self.database.connect() as connection:
            with _missing_table_as_unknown(name):
                async with connection.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        return [_to_reading(row) for row in rows]

    async def reset(self, name: str) -> None:
        table = table_name(name)
        async with self.database.connect() as connection:
            with _missing_table_as_unknown(name):
                await connection.execute(f"DELETE FROM {table}")
            await connection.commit()

    async def drop(self, name: str) -> None:
        async with self.database.connect() as connection:
            await self.drop_table(connection, name)
            await connection.commit()


@lru_cache
def build_default_store() -> ReadingStore:
    return ReadingStore(database=build_default_database())
