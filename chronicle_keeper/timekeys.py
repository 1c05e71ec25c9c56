from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

UNKNOWN_DAY = "unknown_date"


def parse_day_part(game_time_str: str | None) -> str:
    """Return the in-world day part of a game timestamp.

    ``"9:58 AM, Sundas, 17th of Last Seed, 4E 201"`` -> ``"Sundas, 17th of Last Seed, 4E 201"``.
    Timestamps without a comma are treated as a bare day descriptor.
    """
    raw = str(game_time_str or "")
    _, sep, rest = raw.partition(",")
    return rest.strip() if sep else raw.strip()


@dataclass(frozen=True, slots=True)
class DayKey:
    raw: str

    @classmethod
    def parse(cls, game_time_str: str | None) -> "DayKey":
        return cls(parse_day_part(game_time_str))

    @property
    def slug(self) -> str:
        if not self.raw:
            return UNKNOWN_DAY
        return self.raw.replace(", ", "_").replace(" ", "_")

    def __str__(self) -> str:
        return self.slug


def day_key_for_events(events: Sequence[Any]) -> str:
    if not events:
        return UNKNOWN_DAY
    first = events[0]
    game_time_str = first.get("game_time_str") if isinstance(first, dict) else getattr(first, "game_time_str", "")
    return DayKey.parse(game_time_str).slug
