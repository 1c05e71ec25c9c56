from __future__ import annotations

from typing import Protocol

from ..config import Settings
from .ollama_chat_client import OllamaChatClient
from .openrouter_client import OpenRouterClient


class SynthesisBackend(Protocol):
    backend_name: str

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str: ...


def build_synthesis_client(settings: Settings) -> SynthesisBackend:
    backend = settings.synthesis_backend
    if backend == "openrouter":
        return OpenRouterClient(
            api_key=settings.openrouter_api_key,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout_seconds,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_output_tokens,
            base_url=settings.openrouter_base_url,
            retries=settings.llm_retries,
        )
    if backend == "ollama":
        return OllamaChatClient(
            base_url=settings.ollama_base_url,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout_seconds,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_output_tokens,
            retries=settings.llm_retries,
        )
    raise ValueError("SYNTHESIS_BACKEND must be 'openrouter' or 'ollama'")
