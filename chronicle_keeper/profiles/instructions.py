from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..fileio import read_json_cached

logger = logging.getLogger("chronicle_keeper.profiles")


def _clean_instruction_set(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    cleaned: Dict[str, str] = {}
    for field_name, instruction in raw.items():
        key = str(field_name or "").strip()
        if not key or instruction is None:
            continue
        cleaned[key] = str(instruction).strip()
    return cleaned


class InstructionBook:
    """Per-character field instructions, reloaded when the file changes on disk.

    File shape: ``{"<character>": {"<field>": "<instruction>", ...}, ...}``.
    A missing or unreadable file means no character has instructions.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict[str, str]]:
        try:
            payload = read_json_cached(self.path)
        except FileNotFoundError:
            logger.debug("Instruction file not found: %s (no custom instructions)", self.path)
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Failed to parse instruction file %s (%s). Ignoring it.", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Instruction file root must be an object: %s (ignoring)", self.path)
            return {}
        return {
            str(character).strip(): _clean_instruction_set(raw)
            for character, raw in payload.items()
            if str(character or "").strip()
        }

    def for_character(self, character: str) -> Dict[str, str]:
        return self._load().get(str(character or "").strip(), {})

    def characters(self) -> list[str]:
        return list(self._load())
