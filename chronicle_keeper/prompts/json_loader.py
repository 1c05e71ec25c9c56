from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

from ..fileio import read_json_cached

logger = logging.getLogger("chronicle_keeper.prompts")


def _data_dir() -> Path:
    return Path(__file__).with_name("data")


def _deep_merge(base: Any, override: Any) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        merged = {key: copy.deepcopy(value) for key, value in base.items()}
        for key, value in override.items():
            merged[key] = _deep_merge(merged[key], value) if key in merged else copy.deepcopy(value)
        return merged
    return copy.deepcopy(override)


def load_prompt_json(filename: str, defaults: dict[str, Any], *, data_dir: Path | None = None) -> dict[str, Any]:
    """Prompt defaults with the JSON override from ``data/<filename>`` merged on top."""
    path = (data_dir or _data_dir()) / filename
    try:
        payload = read_json_cached(path)
    except FileNotFoundError:
        logger.warning("Prompt JSON not found: %s (using defaults)", path)
        return copy.deepcopy(defaults)
    except (OSError, ValueError) as exc:
        logger.warning("Failed to parse prompt JSON %s (%s). Using defaults.", path, exc)
        return copy.deepcopy(defaults)

    if not isinstance(payload, dict):
        logger.warning("Prompt JSON root must be an object: %s (using defaults)", path)
        return copy.deepcopy(defaults)
    return _deep_merge(defaults, payload)
