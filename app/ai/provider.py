"""Completion provider — one request in, one text out.

    provider = create_completion_provider(config.ai)
    result = await provider.complete(CompletionRequest(system_prompt=..., user_prompt=...))
    result.text

Implementations:
  GroqProvider            — OpenAI-compatible POST {base_url}/chat/completions via a
                            shared httpx.AsyncClient. Bounded retries with exponential
                            backoff on 5xx and transport errors; 4xx fails at once.
  NullCompletionProvider  — always raises CompletionError (GROQ_API_KEY not set)

Every failure surfaces as CompletionError. Abilities catch it and degrade to
an empty or neutral result; it never reaches a client as a 5xx.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from app.config import AIConfig
from app.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_API_KEY = "GROQ_API_KEY"
_BACKOFF_BASE_S = 0.5


class CompletionError(Exception):
    """The provider could not produce a completion."""


@dataclass(frozen=True)
class CompletionRequest:
    user_prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class CompletionResult:
    text: str
    model: Optional[str] = None


@runtime_checkable
class CompletionProvider(Protocol):
    async def complete(self, request: CompletionRequest) -> CompletionResult:
        ...

    async def close(self) -> None:
        ...


class NullCompletionProvider:
    async def complete(self, request: CompletionRequest) -> CompletionResult:
        raise CompletionError("AI provider is not configured (GROQ_API_KEY is not set)")

    async def close(self) -> None:
        return None


assert isinstance(NullCompletionProvider(), CompletionProvider), (
    "NullCompletionProvider does not satisfy CompletionProvider protocol — implementation error"
)


class GroqProvider:
    """Groq chat completions over httpx.

    ``client`` may be injected (tests pass one built on httpx.MockTransport).
    ``sleep`` is the backoff hook; tests replace it to avoid real delays.
    """

    def __init__(
        self,
        api_key: str,
        config: AIConfig,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Any = asyncio.sleep,
    ) -> None:
        if not api_key:
            raise CompletionError("GROQ_API_KEY is required")
        self._api_key = api_key
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_seconds))
        self._sleep = sleep
        self._url = config.base_url.rstrip("/") + "/chat/completions"

    def _payload(self, request: CompletionRequest) -> dict[str, Any]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})
        return {
            "model": request.model or self._config.model,
            "messages": messages,
            "temperature": (
                request.temperature if request.temperature is not None else self._config.temperature
            ),
            "max_tokens": request.max_tokens or self._config.max_tokens,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        payload = self._payload(request)
        headers = {"Authorization": f"Bearer {self._api_key}"}
        attempts = self._config.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.post(self._url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                logger.warning(
                    "completion_transport_error",
                    attempt=attempt,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if attempt == attempts:
                    raise CompletionError(f"Completion request failed: {exc}") from exc
                await self._sleep(_BACKOFF_BASE_S * 2 ** (attempt - 1))
                continue

            if response.status_code >= 500 and attempt < attempts:
                logger.warning("completion_server_error", attempt=attempt, status=response.status_code)
                await self._sleep(_BACKOFF_BASE_S * 2 ** (attempt - 1))
                continue
            if response.status_code >= 400:
                raise CompletionError(
                    f"Completion request failed with status {response.status_code}: {response.text[:200]}"
                )
            return self._parse(response)

        raise CompletionError("Completion request failed")

    def _parse(self, response: httpx.Response) -> CompletionResult:
        try:
            data = response.json()
            choices = data.get("choices") or []
            text = choices[0]["message"]["content"] if choices else None
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as exc:
            raise CompletionError("Completion response was not valid JSON") from exc
        if not isinstance(text, str):
            raise CompletionError("Completion response contained no choices")
        return CompletionResult(text=text, model=data.get("model"))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def create_completion_provider(config: AIConfig) -> CompletionProvider:
    """GroqProvider when GROQ_API_KEY is set, otherwise NullCompletionProvider."""
    api_key = os.getenv(_ENV_API_KEY)
    if not api_key:
        logger.info("completion_provider_selected", provider="NullCompletionProvider")
        return NullCompletionProvider()
    logger.info("completion_provider_selected", provider="GroqProvider", model=config.model)
    return GroqProvider(api_key=api_key, config=config)
