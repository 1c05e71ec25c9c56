from __future__ import annotations

from typing import List, Optional

from ...timekeys import DayKey
from ..models import NARRATION_EVENT_TYPE, Event
from .utils import ACTOR_MATCH_SQL, EVENT_COLUMNS_SQL, _store_errors


class EventStoreQueriesMixin:
    async def latest_event_time(self, actor_id: str) -> Optional[float]:
        db = self._require_db()
        with _store_errors("latest_event_time"):
            async with db.execute(
                f"SELECT MAX(game_time) AS latest_time FROM events WHERE {ACTOR_MATCH_SQL}",
                (actor_id, actor_id),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None or row["latest_time"] is None:
            return None
        return float(row["latest_time"])

    async def events_in_range(self, actor_id: str, start: float, end: float) -> List[Event]:
        db = self._require_db()
        with _store_errors("events_in_range"):
            async with db.execute(
                f"""
                SELECT {EVENT_COLUMNS_SQL}
                FROM events
                WHERE ({ACTOR_MATCH_SQL} OR event_type = ?)
                  AND game_time >= ?
                  AND game_time <= ?
                ORDER BY game_time ASC, id ASC
                """,
                (actor_id, actor_id, NARRATION_EVENT_TYPE, float(start), float(end)),
            ) as cursor:
                rows = await cursor.fetchall()
        return [Event.from_row(row) for row in rows]

    async def most_recent_event(self, actor_id: str) -> Optional[Event]:
        db = self._require_db()
        with _store_errors("most_recent_event"):
            async with db.execute(
                f"""
                SELECT {EVENT_COLUMNS_SQL}
                FROM events
                WHERE {ACTOR_MATCH_SQL}
                ORDER BY game_time DESC, id DESC
                LIMIT 1
                """,
                (actor_id, actor_id),
            ) as cursor:
                row = await cursor.fetchone()
        return Event.from_row(row) if row is not None else None

    async def most_recent_event_excluding_day(self, actor_id: str, day_key: DayKey) -> Optional[Event]:
        db = self._require_db()
        with _store_errors("most_recent_event_excluding_day"):
            async with db.execute(
                f"""
                SELECT {EVENT_COLUMNS_SQL}
                FROM events
                WHERE {ACTOR_MATCH_SQL}
                  AND day_key(game_time_str) <> ?
                ORDER BY game_time DESC, id DESC
                LIMIT 1
                """,
                (actor_id, actor_id, day_key.raw),
            ) as cursor:
                row = await cursor.fetchone()
        return Event.from_row(row) if row is not None else None

    async def events_for_day(self, actor_id: str, day_key: DayKey) -> List[Event]:
        db = self._require_db()
        with _store_errors("events_for_day"):
            async with db.execute(
                f"""
                SELECT {EVENT_COLUMNS_SQL}
                FROM events
                WHERE ({ACTOR_MATCH_SQL} OR event_type = ?)
                  AND day_key(game_time_str) = ?
                ORDER BY game_time ASC, id ASC
                """,
                (actor_id, actor_id, NARRATION_EVENT_TYPE, day_key.raw),
            ) as cursor:
                rows = await cursor.fetchall()
        return [Event.from_row(row) for row in rows]

    async def append_event(
        self,
        *,
        event_type: str,
        game_time: float,
        game_time_str: str,
        originating_actor_id: str | None = None,
        target_actor_id: str | None = None,
        location: str = "",
        payload: str = "",
    ) -> int:
        db = self._require_db()
        with _store_errors("append_event"):
            cursor = await db.execute(
                """
                INSERT INTO events (
                    event_type, event_data, originating_actor_UUID, target_actor_UUID,
                    location, game_time, game_time_str
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_type,
                    payload,
                    originating_actor_id,
                    target_actor_id,
                    location,
                    float(game_time),
                    game_time_str,
                ),
            )
            await db.commit()
            event_id = int(cursor.lastrowid or 0)
            await cursor.close()
        return event_id
