from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Sequence

from .config import Settings
from .diaries.archive import DiaryArchive
from .errors import StoreFailure
from .events.store import EventStore
from .llm_log import LlmIoLog
from .profiles.instructions import InstructionBook
from .profiles.store import ProfileStore
from .services.factory import SynthesisBackend, build_synthesis_client
from .synthesis.orchestrator import CharacterResult, SynthesisOrchestrator

logger = logging.getLogger("chronicle_keeper")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chronicle_keeper",
        description="Update character profiles and write diary entries from the game's event log.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    profiles = commands.add_parser("profiles", help="update profiles from the rolling window of recent events")
    profiles.add_argument("names", nargs="*", help="character names (default: CHARACTER_NAMES)")

    diaries = commands.add_parser("diaries", help="write a diary entry for the last completed in-game day")
    diaries.add_argument("names", nargs="*", help="character names (default: CHARACTER_NAMES)")

    seed = commands.add_parser("seed", help="create a profile from a short free-text description")
    seed.add_argument("name", help="character name")
    seed.add_argument("brief", help="free-text description of the character")
    return parser


def build_orchestrator(settings: Settings, store: EventStore | None, llm: SynthesisBackend) -> SynthesisOrchestrator:
    return SynthesisOrchestrator(
        store=store,
        llm=llm,
        profiles=ProfileStore(settings.profiles_dir),
        diaries=DiaryArchive(settings.diaries_dir, extension=settings.diary_file_extension),
        instructions=InstructionBook(settings.instructions_path),
        llm_log=LlmIoLog(settings.llm_log_dir),
        rolling_window_seconds=settings.rolling_window_seconds,
        language=settings.preferred_response_language,
    )


async def run_command(settings: Settings, args: argparse.Namespace) -> List[CharacterResult]:
    llm = build_synthesis_client(settings)
    await llm.start()
    try:
        if args.command == "seed":
            # Seeding reads no events, so the game database need not exist yet.
            orchestrator = build_orchestrator(settings, None, llm)
            return [await orchestrator.seed_profile(args.name, args.brief)]
        async with EventStore(settings.database_path) as store:
            orchestrator = build_orchestrator(settings, store, llm)
            names = list(args.names) or list(settings.character_names)
            if not names:
                logger.warning("No character names given and CHARACTER_NAMES is empty, nothing to do.")
                return []
            if args.command == "profiles":
                return await orchestrator.run_profile_batch(names)
            return await orchestrator.run_diary_batch(names)
    finally:
        await llm.close()


def _report(results: Sequence[CharacterResult]) -> None:
    for result in results:
        suffix = f" ({result.detail})" if result.detail else ""
        logger.info("[%s] %s -> %s%s", result.task.value, result.character, result.outcome.value, suffix)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        settings.validate()
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 1

    try:
        results = asyncio.run(run_command(settings, args))
    except StoreFailure as exc:
        logger.error("Event store unavailable, batch aborted: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
        return 1
    _report(results)
    return 0
