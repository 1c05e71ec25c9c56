from __future__ import annotations

import contextlib
import os
from typing import Iterator

import aiosqlite

from ...errors import StoreFailure
from ...timekeys import parse_day_part

ACTOR_MATCH_SQL = "(CAST(originating_actor_UUID AS TEXT) = ? OR CAST(target_actor_UUID AS TEXT) = ?)"
EVENT_COLUMNS_SQL = (
    "id, CAST(originating_actor_UUID AS TEXT) AS originating_actor_UUID, "
    "CAST(target_actor_UUID AS TEXT) AS target_actor_UUID, event_type, location, "
    "game_time, game_time_str, event_data"
)


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("EVENT_STORE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


def _sql_day_key(game_time_str: object) -> str:
    return parse_day_part(None if game_time_str is None else str(game_time_str))


@contextlib.contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as exc:
        raise StoreFailure(f"Event store {action} failed: {exc}") from exc
