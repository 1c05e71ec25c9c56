from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ..timekeys import DayKey

NARRATION_EVENT_TYPE = "direct_narration"


@dataclass(frozen=True, slots=True)
class Event:
    id: int
    originating_actor_id: str | None
    target_actor_id: str | None
    event_type: str
    location: str
    game_time: float
    game_time_str: str
    payload: str

    @property
    def day_key(self) -> DayKey:
        return DayKey.parse(self.game_time_str)

    @property
    def is_narration(self) -> bool:
        return self.event_type == NARRATION_EVENT_TYPE

    def involves(self, actor_id: str) -> bool:
        return actor_id in {self.originating_actor_id, self.target_actor_id}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Event":
        def _opt_text(value: Any) -> str | None:
            if value is None:
                return None
            if isinstance(value, bytes):
                return value.decode("utf-8", errors="replace")
            return str(value)

        payload = row["event_data"]
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return cls(
            id=int(row["id"]),
            originating_actor_id=_opt_text(row["originating_actor_UUID"]),
            target_actor_id=_opt_text(row["target_actor_UUID"]),
            event_type=str(row["event_type"] or ""),
            location=str(row["location"] or ""),
            game_time=float(row["game_time"] or 0.0),
            game_time_str=str(row["game_time_str"] or ""),
            payload="" if payload is None else str(payload),
        )


def _payload_details(payload: str) -> str:
    try:
        parsed = json.loads(payload)
    except (TypeError, ValueError):
        return payload
    if not isinstance(parsed, dict):
        return payload
    return ", ".join(f"{key}: {value}" for key, value in parsed.items())


def format_event_line(event: Event) -> str:
    header = f"Type: {event.event_type}, Location: {event.location}, Time: {event.game_time_str}"
    return f"- {header}\nDetails: {_payload_details(event.payload)}"


def format_event_lines(events: Iterable[Event]) -> str:
    return "\n\n".join(format_event_line(event) for event in events)
