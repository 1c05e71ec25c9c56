from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable

from ..profiles.schema import SchemaError, validate

_FENCE_RE = re.compile(r"```[ \t]*[\w+-]*[ \t]*\r?\n?(.*?)\r?\n?```", re.DOTALL)
_THINK_RE = re.compile(r"<think>.*?</think>\s*", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True, slots=True)
class ParseError:
    """Result variant for a response that is not the expected structured form."""

    message: str


def strip_code_fence(text: str) -> str:
    """Contents of the first fenced block in ``text``, or the whole text when it has none."""
    cleaned = _THINK_RE.sub("", str(text or "")).strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def _json_object_slice(text: str) -> str:
    # Models sometimes wrap the object in a sentence of prose.
    if text.startswith("{"):
        return text
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start : end + 1].strip()
    return text


def parse_profile_response(raw: str, expected_keys: Iterable[str]) -> Dict[str, Any] | SchemaError | ParseError:
    cleaned = _json_object_slice(strip_code_fence(raw))
    if not cleaned:
        return ParseError("empty response")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        return ParseError(f"response is not valid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})")
    return validate(payload, expected_keys)


def parse_diary_response(raw: str) -> str | ParseError:
    cleaned = strip_code_fence(raw)
    if not cleaned:
        return ParseError("empty diary response")
    return cleaned
