from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Dict, List

import aiohttp

from ..errors import UpstreamFailure

_RETRIABLE_STATUSES = {408, 409, 429, 500, 502, 503, 504}


class OpenRouterClient:
    """OpenAI-compatible chat completions client (OpenRouter by default)."""

    backend_name = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: int,
        temperature: float,
        max_output_tokens: int,
        base_url: str = "https://openrouter.ai/api/v1",
        retries: int = 3,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.temperature = temperature
        self.max_output_tokens: int | None = int(max_output_tokens) if int(max_output_tokens) > 0 else None
        self.retries = max(1, int(retries))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    @staticmethod
    def _map_messages(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        mapped: List[Dict[str, str]] = []
        for message in messages:
            role = str(message.get("role", "")).strip().lower() or "user"
            if role not in {"system", "user", "assistant"}:
                role = "user"
            content = str(message.get("content", "")).strip()
            if not content:
                continue
            mapped.append({"role": role, "content": content})
        return mapped

    async def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        url = self._endpoint()
        last_error: Exception | None = None

        for attempt in range(1, self.retries + 1):
            try:
                async with self._session.post(url, json=payload) as response:
                    text = await response.text()
                    if response.status == 200:
                        parsed = json.loads(text)
                        if isinstance(parsed, dict):
                            return parsed
                        raise UpstreamFailure("OpenRouter returned non-object JSON response")

                    if response.status not in _RETRIABLE_STATUSES:
                        raise UpstreamFailure(f"OpenRouter error {response.status}: {text}")
                    last_error = UpstreamFailure(f"OpenRouter retriable error {response.status}: {text}")
            except asyncio.CancelledError:
                raise
            except UpstreamFailure:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc

            if attempt < self.retries:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        if last_error is not None:
            raise UpstreamFailure(f"OpenRouter request failed after retries: {last_error}")
        raise UpstreamFailure("OpenRouter request failed without explicit error")

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise UpstreamFailure(f"OpenRouter returned an error: {message}")
        choices = data.get("choices") or []
        if not choices:
            raise UpstreamFailure("OpenRouter returned no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, str):
            return content
        finish_reason = choices[0].get("finish_reason")
        raise UpstreamFailure(f"OpenRouter empty response (finish_reason={finish_reason})")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self._map_messages(messages),
            "temperature": self.temperature if temperature is None else temperature,
        }
        selected_tokens = self.max_output_tokens if max_output_tokens is None else max_output_tokens
        if selected_tokens is not None and int(selected_tokens) > 0:
            payload["max_tokens"] = int(selected_tokens)
        data = await self._request(payload)
        return self._extract_text(data)
