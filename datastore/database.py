from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

from models.errors import StorageError
from settings import get_settings


class Database:
    """Opens one aiosqlite connection per operation against a single file."""

    def __init__(self, path: Path, timeout: float = 5.0) -> None:
        self.path = path
        self.timeout = timeout
        path.parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self.path, timeout=self.timeout) as connection:
                connection.row_factory = aiosqlite.Row
                yield connection
        except aiosqlite.Error as exc:
            raise StorageError(f"Database operation failed: {exc}") from exc

    async def initialize(self) -> None:
        async with self.connect() as connection:
            await connection.execute("PRAGMA journal_mode=WAL;")
            await connection.commit()


@lru_cache
def build_default_database(path: Optional[str] = None) -> Database:
    settings = get_settings()
    db_path = settings.database_path if path is None else path
    return Database(path=Path(db_path), timeout=settings.storage_timeout_seconds)
