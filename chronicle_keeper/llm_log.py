"""Per-character record of what was sent to and rejected from the text model.

Prompt logs hold only the latest prompt per action. Error logs are
append-only JSON lines kept for offline diagnosis; the pipeline never reads
them back.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from .fileio import safe_path_component, write_text_atomic

logger = logging.getLogger("chronicle_keeper.llm_log")

LogKind = Literal["prompt", "error"]


class LlmIoLog:
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, character: str, kind: LogKind, action: str) -> Path:
        return self.root / safe_path_component(character) / f"{safe_path_component(action)}_{kind}.log"

    def write_prompt(self, character: str, action: str, content: str) -> None:
        try:
            write_text_atomic(self.path_for(character, "prompt", action), content)
        except OSError:
            logger.exception("Failed to write prompt log for %s [%s]", character, action)

    def append_failure(self, character: str, action: str, raw_response: str, *, reason: str) -> Path:
        path = self.path_for(character, "error", action)
        record = {
            "character": character,
            "action": action,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "reason": reason,
            "raw_response": raw_response,
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False) + "\n")
        logger.warning("[llm.io] character=%s action=%s failure logged: %s", character, action, reason)
        return path

    def read(self, character: str, kind: LogKind, action: str) -> str | None:
        path = self.path_for(character, kind, action)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
