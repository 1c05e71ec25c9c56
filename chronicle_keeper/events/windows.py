"""Event window selection for the two synthesis tasks.

Profile updates read a rolling slice of recent history that ends at the
actor's latest event. Diaries read exactly one in-world day: the most recent
day that is no longer being written to, never the day still in progress.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ..timekeys import DayKey
from .models import Event

logger = logging.getLogger("chronicle_keeper.events")

DEFAULT_ROLLING_WINDOW_SECONDS = 2 * 86400


class _EventSource(Protocol):
    async def latest_event_time(self, actor_id: str) -> Optional[float]: ...

    async def events_in_range(self, actor_id: str, start: float, end: float) -> List[Event]: ...

    async def most_recent_event(self, actor_id: str) -> Optional[Event]: ...

    async def most_recent_event_excluding_day(self, actor_id: str, day_key: DayKey) -> Optional[Event]: ...

    async def events_for_day(self, actor_id: str, day_key: DayKey) -> List[Event]: ...


@dataclass(slots=True)
class EventWindow:
    actor_id: str
    events: List[Event] = field(default_factory=list)
    start: float | None = None
    end: float | None = None
    day_key: DayKey | None = None

    def __bool__(self) -> bool:
        return bool(self.events)

    def __len__(self) -> int:
        return len(self.events)


async def select_rolling_window(
    store: _EventSource,
    actor_id: str,
    duration_seconds: float = DEFAULT_ROLLING_WINDOW_SECONDS,
) -> EventWindow:
    latest = await store.latest_event_time(actor_id)
    if latest is None:
        logger.info("[events.rolling] actor=%s no events to anchor a window", actor_id)
        return EventWindow(actor_id=actor_id)

    end = float(latest)
    start = end - max(0.0, float(duration_seconds))
    events = await store.events_in_range(actor_id, start, end)
    # Guard the bounds even if a store implementation is loose about them.
    events = [event for event in events if start <= event.game_time <= end]
    logger.info(
        "[events.rolling] actor=%s start=%s end=%s events=%s",
        actor_id,
        start,
        end,
        len(events),
    )
    return EventWindow(actor_id=actor_id, events=events, start=start, end=end)


async def select_completed_day_window(store: _EventSource, actor_id: str) -> EventWindow:
    latest_event = await store.most_recent_event(actor_id)
    if latest_event is None:
        logger.info("[events.day] actor=%s no events", actor_id)
        return EventWindow(actor_id=actor_id)

    current_day = latest_event.day_key
    previous_event = await store.most_recent_event_excluding_day(actor_id, current_day)
    if previous_event is None:
        logger.info(
            "[events.day] actor=%s only one day of events (%s), no completed day yet",
            actor_id,
            current_day.raw,
        )
        return EventWindow(actor_id=actor_id)

    previous_day = previous_event.day_key
    events = [
        event
        for event in await store.events_for_day(actor_id, previous_day)
        if event.day_key == previous_day
    ]
    logger.info("[events.day] actor=%s day=%s events=%s", actor_id, previous_day.raw, len(events))
    return EventWindow(actor_id=actor_id, events=events, day_key=previous_day)
