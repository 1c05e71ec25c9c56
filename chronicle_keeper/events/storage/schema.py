from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

import aiosqlite

from ...errors import StoreFailure
from .utils import _sql_day_key, _sqlite_busy_timeout_ms, _store_errors

logger = logging.getLogger("chronicle_keeper.events")


class EventStoreConnectionMixin:
    """Owns the single connection shared by every query of a batch run."""

    def __init__(self, db_path: Path | str, *, create: bool = False) -> None:
        self.db_path = Path(db_path)
        self.create = create
        self._db: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> None:
        if self._db is not None:
            return
        if self.create:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        mode = "rwc" if self.create else "rw"
        uri = f"{self.db_path.expanduser().resolve().as_uri()}?mode={mode}"
        with _store_errors("connect"):
            db = await aiosqlite.connect(uri, uri=True)
            try:
                db.row_factory = aiosqlite.Row
                timeout_ms = _sqlite_busy_timeout_ms()
                if timeout_ms > 0:
                    await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
                await db.create_function("day_key", 1, _sql_day_key, deterministic=True)
            except BaseException:
                await db.close()
                raise
        self._db = db
        logger.info("[events] connected path=%s", self.db_path)

    async def close(self) -> None:
        db, self._db = self._db, None
        if db is None:
            return
        with _store_errors("close"):
            await db.close()
        logger.info("[events] closed path=%s", self.db_path)

    async def __aenter__(self) -> "EventStoreConnectionMixin":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreFailure("Event store connection is not open")
        return self._db

    async def init_schema(self) -> None:
        db = self._require_db()
        with _store_errors("init_schema"):
            await db.executescript(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    event_data TEXT,
                    originating_actor_UUID TEXT,
                    target_actor_UUID TEXT,
                    location TEXT NOT NULL DEFAULT '',
                    game_time REAL NOT NULL,
                    game_time_str TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_events_game_time
                ON events(game_time);

                CREATE TABLE IF NOT EXISTS uuid_mappings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    actor_name TEXT NOT NULL,
                    uuid TEXT NOT NULL,
                    updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_uuid_mappings_actor
                ON uuid_mappings(actor_name, updated_at DESC);
                """
            )
            await db.commit()
