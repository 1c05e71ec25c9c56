from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Tuple

_JSON_CACHE: Dict[str, Tuple[Tuple[int, int], Any]] = {}


def safe_path_component(name: str) -> str:
    cleaned = str(name or "").strip()
    if not cleaned or cleaned in {".", ".."} or any(sep in cleaned for sep in ("/", "\\", "\x00")):
        raise ValueError(f"Invalid name for a file path: {name!r}")
    return cleaned


def write_text_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_text_lenient(path: Path) -> str:
    """Hand-edited files come in whatever encoding the editor picked."""
    last_exc: UnicodeDecodeError | None = None
    for encoding in ("utf-8-sig", "utf-8", "cp1251"):
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    if last_exc is not None:
        raise last_exc
    raise RuntimeError(f"Unable to read text file: {path}")


def read_json_cached(path: Path) -> Any:
    """Parsed JSON at ``path``, re-read only when the file's mtime or size changes.

    Raises ``FileNotFoundError`` for a missing file and ``ValueError`` for
    invalid JSON; a broken file is not cached, so fixing it takes effect on
    the next call.
    """
    stat = path.stat()
    version = (stat.st_mtime_ns, stat.st_size)
    key = str(path.resolve())
    cached = _JSON_CACHE.get(key)
    if cached is None or cached[0] != version:
        cached = (version, json.loads(read_text_lenient(path)))
        _JSON_CACHE[key] = cached
    return copy.deepcopy(cached[1])
