from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping

from ..fileio import safe_path_component, write_text_atomic

logger = logging.getLogger("chronicle_keeper.profiles")


class ProfileStore:
    """One JSON profile document per character."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, character: str) -> Path:
        return self.root / f"{safe_path_component(character)}.json"

    def load(self, character: str) -> Dict[str, Any] | None:
        path = self.path_for(character)
        if not path.exists():
            return None
        payload = json.loads(path.read_text(encoding="utf-8-sig"))
        if not isinstance(payload, dict):
            raise ValueError(f"Profile document must be a JSON object: {path}")
        return payload

    def save(self, character: str, document: Mapping[str, Any]) -> Path:
        path = self.path_for(character)
        write_text_atomic(path, json.dumps(dict(document), ensure_ascii=False, indent=2) + "\n")
        logger.info("[profile.store] character=%s keys=%s path=%s", character, len(document), path)
        return path
