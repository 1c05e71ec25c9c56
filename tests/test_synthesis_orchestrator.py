from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chronicle_keeper.diaries import DiaryArchive  # noqa: E402
from chronicle_keeper.errors import StoreFailure, UpstreamFailure  # noqa: E402
from chronicle_keeper.events import EventStore  # noqa: E402
from chronicle_keeper.llm_log import LlmIoLog  # noqa: E402
from chronicle_keeper.profiles import InstructionBook, ProfileStore  # noqa: E402
from chronicle_keeper.profiles.schema import default_document  # noqa: E402
from chronicle_keeper.synthesis import SynthesisOrchestrator, SynthesisOutcome, SynthesisTask  # noqa: E402

D1 = "Sundas, 17th of Last Seed, 4E 201"
D2 = "Morndas, 18th of Last Seed, 4E 201"
D1_SLUG = "Sundas_17th_of_Last_Seed_4E_201"


class _FakeLLM:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages, temperature=None, max_output_tokens=None):  # type: ignore[no-untyped-def]
        self.calls.append(messages)
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def _profile_json(**overrides: Any) -> str:
    document = default_document()
    document["summary"] = "A ranger who keeps to the forests around Falkreath."
    document.update(overrides)
    return json.dumps(document)


async def _seed_events(db_path: Path) -> None:
    async with EventStore(db_path, create=True) as store:
        await store.init_schema()
        await store.record_actor_mapping("Lyra", "lyra-1")
        await store.record_actor_mapping("Borin", "borin-1")
        await store.record_actor_mapping("Quiet", "quiet-1")
        rows = [
            ("lyra-1", 10.0, f"8:00 AM, {D1}"),
            ("lyra-1", 20.0, f"1:00 PM, {D1}"),
            ("lyra-1", 30.0, f"9:00 PM, {D1}"),
            ("lyra-1", 40.0, f"7:00 AM, {D2}"),
            ("borin-1", 15.0, f"9:00 AM, {D1}"),
            ("borin-1", 25.0, f"3:00 PM, {D1}"),
        ]
        for actor_id, game_time, game_time_str in rows:
            await store.append_event(
                event_type="dialogue",
                originating_actor_id=actor_id,
                location="Riverwood",
                game_time=game_time,
                game_time_str=game_time_str,
                payload=json.dumps({"line": f"said something at {game_time}"}),
            )


def _orchestrator(tmp_path: Path, store: EventStore, llm: _FakeLLM) -> SynthesisOrchestrator:
    return SynthesisOrchestrator(
        store=store,
        llm=llm,
        profiles=ProfileStore(tmp_path / "profiles"),
        diaries=DiaryArchive(tmp_path / "diaries", extension=".html"),
        instructions=InstructionBook(tmp_path / "instructions.json"),
        llm_log=LlmIoLog(tmp_path / "logs"),
        rolling_window_seconds=172800,
        language="English",
    )


def _run_with_store(tmp_path: Path, llm: _FakeLLM, action):  # type: ignore[no-untyped-def]
    db_path = tmp_path / "events.db"

    async def _run():  # type: ignore[no-untyped-def]
        await _seed_events(db_path)
        async with EventStore(db_path) as store:
            return await action(_orchestrator(tmp_path, store, llm))

    return asyncio.run(_run())


def test_profile_update_strips_code_fence_and_saves(tmp_path: Path) -> None:
    llm = _FakeLLM([f"```json\n{_profile_json()}\n```"])

    result = _run_with_store(tmp_path, llm, lambda orch: orch.update_profile("Lyra"))

    assert result.outcome is SynthesisOutcome.SUCCESS
    assert result.task is SynthesisTask.PROFILE
    saved = json.loads((tmp_path / "profiles" / "Lyra.json").read_text(encoding="utf-8"))
    assert saved["summary"].startswith("A ranger")
    assert len(saved) == 10

    user_prompt = llm.calls[0][1]["content"]
    assert "Type: dialogue, Location: Riverwood" in user_prompt
    assert "Details: line: said something at 40.0" in user_prompt
    prompt_log = LlmIoLog(tmp_path / "logs").read("Lyra", "prompt", "update_profile")
    assert prompt_log is not None and "Riverwood" in prompt_log


def test_non_json_response_is_logged_and_batch_continues(tmp_path: Path) -> None:
    llm = _FakeLLM(["Sorry, I cannot help with that.", _profile_json()])

    results = _run_with_store(tmp_path, llm, lambda orch: orch.run_profile_batch(["Lyra", "Borin"]))

    assert [r.outcome for r in results] == [SynthesisOutcome.MALFORMED_RESPONSE, SynthesisOutcome.SUCCESS]
    assert not (tmp_path / "profiles" / "Lyra.json").exists()
    assert (tmp_path / "profiles" / "Borin.json").exists()

    error_log = LlmIoLog(tmp_path / "logs").read("Lyra", "error", "update_profile")
    assert error_log is not None
    record = json.loads(error_log.splitlines()[0])
    assert record["character"] == "Lyra"
    assert record["raw_response"] == "Sorry, I cannot help with that."
    assert record["timestamp"]
    assert "not valid JSON" in record["reason"]


def test_response_missing_custom_key_is_rejected(tmp_path: Path) -> None:
    (tmp_path / "instructions.json").write_text(
        json.dumps({"Lyra": {"favorite_food": "Her favourite dish."}}),
        encoding="utf-8",
    )
    llm = _FakeLLM([_profile_json()])

    result = _run_with_store(tmp_path, llm, lambda orch: orch.update_profile("Lyra"))

    assert result.outcome is SynthesisOutcome.MALFORMED_RESPONSE
    assert "favorite_food" in result.detail
    user_prompt = llm.calls[0][1]["content"]
    assert "'favorite_food' field: Her favourite dish." in user_prompt
    assert "favorite_food" in user_prompt.split("exactly these keys")[1]


def test_unknown_character_and_empty_window_are_skipped(tmp_path: Path) -> None:
    llm = _FakeLLM([])

    results = _run_with_store(tmp_path, llm, lambda orch: orch.run_profile_batch(["Ghost", "Quiet"]))

    assert [r.outcome for r in results] == [SynthesisOutcome.IDENTITY_NOT_FOUND, SynthesisOutcome.EMPTY_WINDOW]
    assert llm.calls == []


def test_upstream_failure_is_isolated_per_character(tmp_path: Path) -> None:
    llm = _FakeLLM([UpstreamFailure("OpenRouter error 401: unauthorized"), _profile_json()])

    results = _run_with_store(tmp_path, llm, lambda orch: orch.run_profile_batch(["Lyra", "Borin"]))

    assert results[0].outcome is SynthesisOutcome.UPSTREAM_FAILURE
    assert "401" in results[0].detail
    assert results[1].ok


def test_unexpected_error_is_reported_as_failed(tmp_path: Path) -> None:
    llm = _FakeLLM([KeyError("boom"), _profile_json()])

    results = _run_with_store(tmp_path, llm, lambda orch: orch.run_profile_batch(["Lyra", "Borin"]))

    assert [r.outcome for r in results] == [SynthesisOutcome.FAILED, SynthesisOutcome.SUCCESS]


def test_diary_is_written_for_the_completed_day_and_overwritten(tmp_path: Path) -> None:
    llm = _FakeLLM(["```html\n<p>First draft.</p>\n```", "<p>Second draft.</p>"])

    async def _twice(orch: SynthesisOrchestrator):  # type: ignore[no-untyped-def]
        first = await orch.generate_diary("Lyra")
        second = await orch.generate_diary("Lyra")
        return first, second

    first, second = _run_with_store(tmp_path, llm, _twice)

    assert first.ok and second.ok
    assert first.detail == D1_SLUG
    path = tmp_path / "diaries" / "Lyra" / f"{D1_SLUG}.html"
    assert first.path == path
    assert path.read_text(encoding="utf-8") == "<p>Second draft.</p>"
    assert DiaryArchive(tmp_path / "diaries").list_entries("Lyra") == [D1_SLUG]

    user_prompt = llm.calls[0][1]["content"]
    assert f"Diary date: {D1}" in user_prompt
    assert "Time: 7:00 AM" not in user_prompt


def test_diary_skips_character_with_only_the_current_day(tmp_path: Path) -> None:
    llm = _FakeLLM([])

    result = _run_with_store(tmp_path, llm, lambda orch: orch.generate_diary("Borin"))

    assert result.outcome is SynthesisOutcome.EMPTY_WINDOW
    assert not (tmp_path / "diaries" / "Borin").exists()


def test_empty_diary_response_is_malformed(tmp_path: Path) -> None:
    llm = _FakeLLM(["```\n\n```"])

    result = _run_with_store(tmp_path, llm, lambda orch: orch.generate_diary("Lyra"))

    assert result.outcome is SynthesisOutcome.MALFORMED_RESPONSE
    assert LlmIoLog(tmp_path / "logs").read("Lyra", "error", "generate_diary") is not None


def test_seed_profile_builds_profile_from_brief(tmp_path: Path) -> None:
    llm = _FakeLLM([_profile_json(occupation="Hunter")])
    orch = SynthesisOrchestrator(
        store=None,
        llm=llm,
        profiles=ProfileStore(tmp_path / "profiles"),
        diaries=DiaryArchive(tmp_path / "diaries"),
        instructions=InstructionBook(tmp_path / "instructions.json"),
        llm_log=LlmIoLog(tmp_path / "logs"),
    )

    result = asyncio.run(orch.seed_profile("Lyra", "A quiet huntress raised by the Companions."))

    assert result.ok
    assert result.task is SynthesisTask.SEED
    assert json.loads((tmp_path / "profiles" / "Lyra.json").read_text(encoding="utf-8"))["occupation"] == "Hunter"
    assert "A quiet huntress raised by the Companions." in llm.calls[0][1]["content"]


class _BrokenStore:
    async def resolve_actor_id(self, actor_name: str) -> str | None:
        raise StoreFailure("database is locked")


def test_store_failure_aborts_the_batch(tmp_path: Path) -> None:
    llm = _FakeLLM([])
    orch = _orchestrator(tmp_path, _BrokenStore(), llm)  # type: ignore[arg-type]

    with pytest.raises(StoreFailure):
        asyncio.run(orch.run_diary_batch(["Lyra", "Borin"]))


def test_concurrent_calls_for_one_character_are_serialized(tmp_path: Path) -> None:
    active = 0
    peak = 0

    class _SlowLLM(_FakeLLM):
        async def chat(self, messages, temperature=None, max_output_tokens=None):  # type: ignore[no-untyped-def]
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().chat(messages, temperature, max_output_tokens)

    llm = _SlowLLM([_profile_json(), _profile_json()])

    async def _both(orch: SynthesisOrchestrator):  # type: ignore[no-untyped-def]
        results = await asyncio.gather(orch.update_profile("Lyra"), orch.update_profile("Lyra"))
        return results, dict(orch._locks)

    results, locks_after = _run_with_store(tmp_path, llm, _both)

    assert all(result.ok for result in results)
    assert peak == 1
    assert locks_after == {}


def test_character_locks_are_released_after_a_batch(tmp_path: Path) -> None:
    llm = _FakeLLM([UpstreamFailure("timeout"), _profile_json()])

    async def _batch(orch: SynthesisOrchestrator):  # type: ignore[no-untyped-def]
        results = await orch.run_profile_batch(["Lyra", "Borin", "Ghost"])
        return results, dict(orch._locks), dict(orch._lock_users)

    results, locks, users = _run_with_store(tmp_path, llm, _batch)

    assert len(results) == 3
    assert locks == {}
    assert users == {}
