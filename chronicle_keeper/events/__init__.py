from .models import NARRATION_EVENT_TYPE, Event, format_event_line, format_event_lines
from .store import EventStore
from .windows import (
    DEFAULT_ROLLING_WINDOW_SECONDS,
    EventWindow,
    select_completed_day_window,
    select_rolling_window,
)

__all__ = [
    "DEFAULT_ROLLING_WINDOW_SECONDS",
    "Event",
    "EventStore",
    "EventWindow",
    "NARRATION_EVENT_TYPE",
    "format_event_line",
    "format_event_lines",
    "select_completed_day_window",
    "select_rolling_window",
]
