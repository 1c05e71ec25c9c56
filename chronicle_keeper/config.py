from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_path(name: str, default: str, aliases: tuple[str, ...] = ()) -> Path:
    return Path(_env_str(name, default, aliases)).expanduser()


def _env_name_list(name: str, aliases: tuple[str, ...] = ()) -> List[str]:
    raw = (_env_lookup(name, aliases) or "").strip()
    if not raw:
        return []
    names: List[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value and value not in names:
            names.append(value)
    return names


@dataclass(slots=True)
class Settings:
    database_path: Path
    character_names: List[str]

    synthesis_backend: str
    openrouter_api_key: str
    openrouter_base_url: str
    ollama_base_url: str
    llm_model: str
    llm_timeout_seconds: int
    llm_retries: int
    llm_temperature: float
    llm_max_output_tokens: int
    preferred_response_language: str

    rolling_window_seconds: int
    profiles_dir: Path
    diaries_dir: Path
    diary_file_extension: str
    instructions_path: Path
    llm_log_dir: Path
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_path=_env_path("DATABASE_PATH", "./skyrim_memory.db"),
            character_names=_env_name_list("CHARACTER_NAMES"),
            synthesis_backend=_env_str("SYNTHESIS_BACKEND", "openrouter").lower(),
            openrouter_api_key=_env_str("OPENROUTER_API_KEY", ""),
            openrouter_base_url=_env_str("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
            ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://127.0.0.1:11434"),
            llm_model=_env_str("LLM_MODEL", "gryphe/mythomax-l2-13b"),
            llm_timeout_seconds=_env_int("LLM_TIMEOUT_SECONDS", 90),
            llm_retries=_env_int("LLM_RETRIES", 3),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
            llm_max_output_tokens=_env_int("LLM_MAX_OUTPUT_TOKENS", 0),
            preferred_response_language=_env_str("PREFERRED_RESPONSE_LANGUAGE", "English"),
            rolling_window_seconds=_env_int("ROLLING_WINDOW_SECONDS", 2 * 86400),
            profiles_dir=_env_path("PROFILES_DIR", "./profiles"),
            diaries_dir=_env_path("DIARIES_DIR", "./diaries"),
            diary_file_extension=_env_str("DIARY_FILE_EXTENSION", ".html"),
            instructions_path=_env_path("INSTRUCTIONS_PATH", "./instructions.json"),
            llm_log_dir=_env_path("LLM_LOG_DIR", "./logs/llm-io"),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if self.synthesis_backend not in {"openrouter", "ollama"}:
            raise ValueError("SYNTHESIS_BACKEND must be 'openrouter' or 'ollama'")
        if self.synthesis_backend == "openrouter":
            if not self.openrouter_api_key:
                raise ValueError("OPENROUTER_API_KEY is required when SYNTHESIS_BACKEND=openrouter")
            if self.openrouter_api_key == "put_your_openrouter_api_key_here":
                raise ValueError("OPENROUTER_API_KEY is still placeholder")
        if not self.llm_model:
            raise ValueError("LLM_MODEL cannot be empty")

        if self.llm_timeout_seconds < 5:
            raise ValueError("LLM_TIMEOUT_SECONDS must be >= 5")
        if self.llm_retries < 1 or self.llm_retries > 10:
            raise ValueError("LLM_RETRIES must be in [1, 10]")
        if self.llm_temperature < 0.0 or self.llm_temperature > 2.0:
            raise ValueError("LLM_TEMPERATURE must be in [0, 2]")
        if self.llm_max_output_tokens < 0:
            raise ValueError("LLM_MAX_OUTPUT_TOKENS must be >= 0 (0 disables explicit cap)")

        if self.rolling_window_seconds < 1:
            raise ValueError("ROLLING_WINDOW_SECONDS must be >= 1")
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
