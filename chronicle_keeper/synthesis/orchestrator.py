"""Per-character synthesis pipeline.

Each character goes through identity resolution, window selection, schema
reconciliation, one call to the text model, validation and persistence before
the next character starts. Anything that goes wrong for one character ends as
a `CharacterResult` for that character; only `StoreFailure` escapes a batch,
because without the event store no character can be processed at all.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Mapping, Protocol

from ..diaries.archive import DiaryArchive
from ..errors import StoreFailure, UpstreamFailure
from ..events.models import format_event_lines
from ..events.windows import DEFAULT_ROLLING_WINDOW_SECONDS, select_completed_day_window, select_rolling_window
from ..llm_log import LlmIoLog
from ..profiles.instructions import InstructionBook
from ..profiles.schema import ProfileDocument, SchemaError, reconcile
from ..profiles.store import ProfileStore
from ..prompts.synthesis import (
    build_diary_messages,
    build_initial_profile_messages,
    build_profile_update_messages,
)
from ..timekeys import day_key_for_events
from .parsing import ParseError, parse_diary_response, parse_profile_response

logger = logging.getLogger("chronicle_keeper.synthesis")


class SynthesisTask(str, Enum):
    PROFILE = "update_profile"
    DIARY = "generate_diary"
    SEED = "generate_initial_profile"


class SynthesisOutcome(str, Enum):
    SUCCESS = "success"
    IDENTITY_NOT_FOUND = "identity_not_found"
    EMPTY_WINDOW = "empty_window"
    UPSTREAM_FAILURE = "upstream_failure"
    MALFORMED_RESPONSE = "malformed_response"
    FAILED = "failed"


@dataclass(slots=True)
class CharacterResult:
    character: str
    task: SynthesisTask
    outcome: SynthesisOutcome
    detail: str = ""
    path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is SynthesisOutcome.SUCCESS


class _ChatBackend(Protocol):
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str: ...


def _render_messages(messages: List[Dict[str, str]]) -> str:
    return "\n\n".join(f"[{message['role']}]\n{message['content']}" for message in messages)


class SynthesisOrchestrator:
    def __init__(
        self,
        *,
        store: Any,
        llm: _ChatBackend,
        profiles: ProfileStore,
        diaries: DiaryArchive,
        instructions: InstructionBook,
        llm_log: LlmIoLog,
        rolling_window_seconds: float = DEFAULT_ROLLING_WINDOW_SECONDS,
        language: str = "English",
    ) -> None:
        self.store = store
        self.llm = llm
        self.profiles = profiles
        self.diaries = diaries
        self.instructions = instructions
        self.llm_log = llm_log
        self.rolling_window_seconds = rolling_window_seconds
        self.language = language
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _character_lock(self, character: str) -> AsyncIterator[None]:
        """At most one in-flight synthesis per character; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(character)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[character] = lock
        self._lock_users[character] = self._lock_users.get(character, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[character] - 1
            if remaining:
                self._lock_users[character] = remaining
            else:
                del self._lock_users[character]
                del self._locks[character]

    async def run_profile_batch(self, characters: Iterable[str]) -> List[CharacterResult]:
        return await self._run_batch(SynthesisTask.PROFILE, characters, self.update_profile)

    async def run_diary_batch(self, characters: Iterable[str]) -> List[CharacterResult]:
        return await self._run_batch(SynthesisTask.DIARY, characters, self.generate_diary)

    async def _run_batch(
        self,
        task: SynthesisTask,
        characters: Iterable[str],
        step: Callable[[str], Awaitable[CharacterResult]],
    ) -> List[CharacterResult]:
        names = [str(name).strip() for name in characters if str(name).strip()]
        logger.info("[%s] batch start characters=%s", task.value, ", ".join(names) or "(none)")
        results: List[CharacterResult] = []
        for name in names:
            results.append(await step(name))
        ok = sum(1 for result in results if result.ok)
        logger.info("[%s] batch done characters=%s ok=%s skipped=%s", task.value, len(results), ok, len(results) - ok)
        return results

    async def update_profile(self, character: str) -> CharacterResult:
        return await self._isolated(character, SynthesisTask.PROFILE, self._update_profile)

    async def generate_diary(self, character: str) -> CharacterResult:
        return await self._isolated(character, SynthesisTask.DIARY, self._generate_diary)

    async def seed_profile(self, character: str, brief: str) -> CharacterResult:
        async def _step(name: str) -> CharacterResult:
            return await self._seed_profile(name, brief)

        return await self._isolated(character, SynthesisTask.SEED, _step)

    async def _isolated(
        self,
        character: str,
        task: SynthesisTask,
        step: Callable[[str], Awaitable[CharacterResult]],
    ) -> CharacterResult:
        name = str(character or "").strip()
        async with self._character_lock(name):
            try:
                return await step(name)
            except StoreFailure:
                raise
            except UpstreamFailure as exc:
                logger.warning("[%s] character=%s upstream failure: %s", task.value, name, exc)
                return CharacterResult(name, task, SynthesisOutcome.UPSTREAM_FAILURE, str(exc))
            except Exception as exc:
                logger.exception("[%s] character=%s failed", task.value, name)
                return CharacterResult(name, task, SynthesisOutcome.FAILED, str(exc)[:220])

    async def _resolve(self, character: str, task: SynthesisTask) -> str | None:
        actor_id = await self.store.resolve_actor_id(character)
        if actor_id is None:
            logger.info("[%s] character=%s has no actor id, skipping", task.value, character)
        return actor_id

    def _reject(self, character: str, task: SynthesisTask, raw: str, error: ParseError | SchemaError) -> CharacterResult:
        self.llm_log.append_failure(character, task.value, raw, reason=error.message)
        return CharacterResult(character, task, SynthesisOutcome.MALFORMED_RESPONSE, error.message)

    async def _call_llm(self, character: str, task: SynthesisTask, messages: List[Dict[str, str]]) -> str:
        self.llm_log.write_prompt(character, task.value, _render_messages(messages))
        return await self.llm.chat(messages)

    async def _update_profile(self, character: str) -> CharacterResult:
        task = SynthesisTask.PROFILE
        actor_id = await self._resolve(character, task)
        if actor_id is None:
            return CharacterResult(character, task, SynthesisOutcome.IDENTITY_NOT_FOUND)

        instructions = self.instructions.for_character(character)
        document = reconcile(self.profiles.load(character), instructions)

        window = await select_rolling_window(self.store, actor_id, self.rolling_window_seconds)
        if not window:
            logger.info("[%s] character=%s insufficient history, skipping", task.value, character)
            return CharacterResult(character, task, SynthesisOutcome.EMPTY_WINDOW)

        messages = build_profile_update_messages(
            character_name=character,
            language=self.language,
            existing_profile=document.values,
            formatted_events=format_event_lines(window.events),
            instructions=instructions,
            custom_keys=document.custom_keys,
        )
        raw = await self._call_llm(character, task, messages)

        parsed = parse_profile_response(raw, document.expected_keys)
        if isinstance(parsed, (ParseError, SchemaError)):
            return self._reject(character, task, raw, parsed)
        return self._accept_profile(character, task, document, parsed)

    async def _seed_profile(self, character: str, brief: str) -> CharacterResult:
        task = SynthesisTask.SEED
        instructions = self.instructions.for_character(character)
        document = reconcile(self.profiles.load(character), instructions)

        messages = build_initial_profile_messages(
            character_name=character,
            language=self.language,
            brief=brief,
            all_keys=document.keys(),
            instructions=instructions,
            custom_keys=document.custom_keys,
        )
        raw = await self._call_llm(character, task, messages)

        parsed = parse_profile_response(raw, document.expected_keys)
        if isinstance(parsed, (ParseError, SchemaError)):
            return self._reject(character, task, raw, parsed)
        return self._accept_profile(character, task, document, parsed)

    def _accept_profile(
        self,
        character: str,
        task: SynthesisTask,
        document: ProfileDocument,
        values: Mapping[str, Any],
    ) -> CharacterResult:
        accepted = document.with_values(values)
        path = self.profiles.save(character, accepted.values)
        logger.info("[%s] character=%s profile saved keys=%s", task.value, character, len(accepted.values))
        return CharacterResult(character, task, SynthesisOutcome.SUCCESS, path=path)

    async def _generate_diary(self, character: str) -> CharacterResult:
        task = SynthesisTask.DIARY
        actor_id = await self._resolve(character, task)
        if actor_id is None:
            return CharacterResult(character, task, SynthesisOutcome.IDENTITY_NOT_FOUND)

        instructions = self.instructions.for_character(character)
        profile = self.profiles.load(character)
        custom_keys = reconcile(profile, instructions).custom_keys

        window = await select_completed_day_window(self.store, actor_id)
        if not window:
            logger.info("[%s] character=%s no completed day yet, skipping", task.value, character)
            return CharacterResult(character, task, SynthesisOutcome.EMPTY_WINDOW)

        day_key = day_key_for_events(window.events)
        messages = build_diary_messages(
            character_name=character,
            language=self.language,
            diary_date=window.day_key.raw if window.day_key is not None else day_key,
            formatted_events=format_event_lines(window.events),
            profile=profile,
            custom_keys=custom_keys,
        )
        raw = await self._call_llm(character, task, messages)

        content = parse_diary_response(raw)
        if isinstance(content, ParseError):
            return self._reject(character, task, raw, content)

        entry = self.diaries.write(character, day_key, content)
        return CharacterResult(character, task, SynthesisOutcome.SUCCESS, detail=day_key, path=entry.path)
