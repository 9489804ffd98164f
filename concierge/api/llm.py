"""Language-model boundary -- direct httpx calls to the Anthropic Messages API.

The runner only depends on the ModelClient protocol: given a system
prompt, the tool catalog and the transcript, return one Completion.
AnthropicClient is the production implementation; tests script the
protocol directly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from concierge.api.models import Completion, parse_block
from concierge.config import Settings
from concierge.errors import ModelError

logger = logging.getLogger(__name__)

# Anthropic API version header
_API_VERSION = "2023-06-01"

_RETRY_STATUSES = (429, 500, 529)


class ModelClient(Protocol):
    async def complete(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> Completion: ...

    async def complete_text(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 1000,
    ) -> str: ...


class AnthropicClient:
    """ModelClient over the Anthropic Messages API.

    Retries once on 429/500/529 (honouring retry-after, capped at 30s) and
    once on timeout. Connection errors and other statuses raise ModelError.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._http: httpx.AsyncClient | None = None

    async def start(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings

        headers: dict[str, str] = {
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }
        if settings.anthropic_api_key:
            headers["x-api-key"] = settings.anthropic_api_key
        else:
            logger.warning("ANTHROPIC_API_KEY is not set -- API calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=transport,
        )
        logger.info("Anthropic client initialized (model: %s)", settings.model)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def complete(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> Completion:
        payload: dict[str, Any] = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools

        data = await self._call_api(payload)
        blocks = []
        for raw in data.get("content") or []:
            block = parse_block(raw)
            if block is None:
                logger.debug("Skipping unsupported content block: %s", raw.get("type"))
                continue
            blocks.append(block)
        return Completion(
            content=blocks,
            stop_reason=data.get("stop_reason"),
            usage=data.get("usage"),
        )

    async def complete_text(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 1000,
    ) -> str:
        """Single user-prompt completion without tools; returns the joined text."""
        payload: dict[str, Any] = {
            "model": model or self._settings.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        data = await self._call_api(payload)
        return "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )

    async def _call_api(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST /v1/messages, allowing one retry for overload and timeouts.

        Raises ModelError once the retry is spent or for any other failure.
        """
        if not self._http:
            raise ModelError("httpx client not initialized -- call start() first")

        retries_left = 1
        while True:
            try:
                response = await self._http.post("/v1/messages", json=payload)
            except httpx.TimeoutException as e:
                if not retries_left:
                    raise ModelError(f"API request timed out: {e}") from e
                logger.warning("API timeout, retrying: %s", e)
                retries_left -= 1
                await asyncio.sleep(1)
                continue
            except httpx.HTTPError as e:
                raise ModelError(f"HTTP error: {e}") from e

            if response.status_code == 200:
                return response.json()

            error_type, error_msg = _describe_error(response)
            if not retries_left or response.status_code not in _RETRY_STATUSES:
                raise ModelError(
                    f"Anthropic API error ({response.status_code}): {error_type} - {error_msg}"
                )

            delay = _retry_delay(response)
            logger.warning(
                "API error %d (%s), retrying in %.1fs: %s",
                response.status_code,
                error_type,
                delay,
                error_msg,
            )
            retries_left -= 1
            await asyncio.sleep(delay)


def _describe_error(response: httpx.Response) -> tuple[str, str]:
    """(error type, message) from an Anthropic error body."""
    try:
        data = response.json()
    except ValueError:
        return "http_error", f"HTTP {response.status_code}: {response.text[:500]}"
    error = (data.get("error") if isinstance(data, dict) else None) or {}
    if not isinstance(error, dict):
        return "unknown", str(error)
    return error.get("type", "unknown"), error.get("message", "unknown error")


def _retry_delay(response: httpx.Response) -> float:
    """Seconds to wait before retrying: retry-after, capped at 30s."""
    try:
        return min(max(float(response.headers.get("retry-after", "1")), 0.0), 30.0)
    except ValueError:
        return 1.0
