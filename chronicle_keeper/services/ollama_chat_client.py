from __future__ import annotations

import asyncio
import json
import random
import re
from typing import Any

import aiohttp

from ..errors import UpstreamFailure

_RETRIABLE_STATUSES = {408, 409, 429, 500, 502, 503, 504}


class OllamaChatClient:
    """Local Ollama chat backend with the same `chat` interface as OpenRouterClient."""

    backend_name = "ollama"

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_seconds: int = 90,
        temperature: float = 0.7,
        max_output_tokens: int = 0,
        retries: int = 3,
    ) -> None:
        self.base_url = (base_url or "http://127.0.0.1:11434").strip().rstrip("/")
        self.model = (model or "").strip()
        if not self.model:
            raise ValueError("Ollama model cannot be empty")
        self.timeout = aiohttp.ClientTimeout(total=max(5, int(timeout_seconds)))
        self.temperature = float(temperature)
        self.max_output_tokens = max(0, int(max_output_tokens or 0))
        self.retries = max(1, int(retries))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
        mapped_messages: list[dict[str, str]] = []
        for msg in messages:
            role = str(msg.get("role", "")).strip().lower() or "user"
            if role not in {"system", "user", "assistant"}:
                role = "user"
            content = str(msg.get("content", "")).strip()
            if not content:
                continue
            mapped_messages.append({"role": role, "content": content})
        return mapped_messages

    @staticmethod
    def _strip_reasoning_blocks(text: str) -> str:
        cleaned = str(text or "").strip()
        # Some reasoning-capable models may emit hidden-thought tags.
        cleaned = re.sub(r"<think>.*?</think>\s*", "", cleaned, flags=re.IGNORECASE | re.DOTALL).strip()
        return cleaned

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        last_error: Exception | None = None
        for attempt in range(1, self.retries + 1):
            try:
                async with self._session.post(self._endpoint(), json=payload) as response:
                    text = await response.text()
                    if response.status == 200:
                        parsed = json.loads(text)
                        if isinstance(parsed, dict):
                            return parsed
                        raise UpstreamFailure("Ollama returned non-object JSON response")
                    if response.status not in _RETRIABLE_STATUSES:
                        raise UpstreamFailure(f"Ollama error {response.status}: {text}")
                    last_error = UpstreamFailure(f"Ollama retriable error {response.status}: {text}")
            except asyncio.CancelledError:
                raise
            except UpstreamFailure:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc
            if attempt < self.retries:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.25))

        if last_error is not None:
            raise UpstreamFailure(f"Ollama request failed after retries: {last_error}")
        raise UpstreamFailure("Ollama request failed without explicit error")

    @staticmethod
    def _extract_message_text(data: dict[str, Any]) -> str:
        message = data.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                return content
        response_text = data.get("response")
        if isinstance(response_text, str) and response_text.strip():
            return response_text
        raise UpstreamFailure("Ollama returned empty message content")

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        mapped_messages = self._sanitize_messages(messages)
        if not mapped_messages:
            return ""

        options: dict[str, Any] = {
            "temperature": float(self.temperature if temperature is None else temperature),
        }
        selected_tokens = self.max_output_tokens if max_output_tokens is None else max_output_tokens
        if selected_tokens is not None:
            try:
                selected_tokens = int(selected_tokens)
            except (TypeError, ValueError):
                selected_tokens = None
        if isinstance(selected_tokens, int) and selected_tokens > 0:
            options["num_predict"] = selected_tokens

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": mapped_messages,
            "stream": False,
            "think": False,
            "options": options,
        }
        data = await self._request(payload)
        raw = self._extract_message_text(data)
        return self._strip_reasoning_blocks(raw)
