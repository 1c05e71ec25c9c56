from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from ..fileio import safe_path_component, write_text_atomic

logger = logging.getLogger("chronicle_keeper.diaries")


@dataclass(frozen=True, slots=True)
class DiaryEntry:
    character: str
    day_key: str
    content: str
    created_at: datetime
    path: Path


class DiaryArchive:
    """Per-character diary entries, one file per completed in-world day."""

    def __init__(self, root: Path | str, *, extension: str = ".html") -> None:
        self.root = Path(root)
        ext = str(extension or "").strip()
        if ext and not ext.startswith("."):
            ext = f".{ext}"
        self.extension = ext

    def character_dir(self, character: str) -> Path:
        return self.root / safe_path_component(character)

    def path_for(self, character: str, day_key: str) -> Path:
        return self.character_dir(character) / f"{safe_path_component(day_key)}{self.extension}"

    def write(self, character: str, day_key: str, content: str) -> DiaryEntry:
        """Full overwrite of the entry for ``day_key``; never appends or versions."""
        path = self.path_for(character, day_key)
        existed = path.exists()
        write_text_atomic(path, content)
        logger.info(
            "[diary.archive] character=%s day=%s %s path=%s",
            character,
            day_key,
            "replaced" if existed else "created",
            path,
        )
        return self._entry(character, path, content)

    def read_entry(self, character: str, day_key: str) -> DiaryEntry | None:
        path = self.path_for(character, day_key)
        if not path.exists():
            return None
        return self._entry(character, path, path.read_text(encoding="utf-8"))

    def list_entries(self, character: str) -> List[str]:
        """Day keys of the stored entries, newest file name first."""
        folder = self.character_dir(character)
        if not folder.is_dir():
            return []
        names = sorted(
            path.name[: len(path.name) - len(self.extension)] if self.extension else path.name
            for path in folder.iterdir()
            if path.is_file() and not path.name.startswith(".") and path.name.endswith(self.extension)
        )
        return list(reversed(names))

    def _entry(self, character: str, path: Path, content: str) -> DiaryEntry:
        created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        day_key = path.name[: len(path.name) - len(self.extension)] if self.extension else path.name
        return DiaryEntry(character=character, day_key=day_key, content=content, created_at=created_at, path=path)
