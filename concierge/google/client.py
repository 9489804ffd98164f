"""Minimal Google REST client over httpx.

Uses a shared httpx.AsyncClient (no auth headers on it); the bearer token
comes from the caller's Credentials on every request. A 401 triggers one
OAuth refresh when a refresh token and client credentials are available,
and the request is retried once with the new token.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from concierge.api.tools import Credentials
from concierge.config import Settings
from concierge.errors import GoogleApiError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("status") or str(error)
    if isinstance(error, str):
        return data.get("error_description") or error
    return str(data)[:500]


class GoogleClient:
    """Authenticated requests against Calendar and Gmail for one caller."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        credentials: Credentials,
    ) -> None:
        self._http = http
        self._settings = settings
        self._credentials = credentials

    @property
    def calendar_url(self) -> str:
        return self._settings.google_calendar_url.rstrip("/")

    @property
    def gmail_url(self) -> str:
        return self._settings.google_gmail_url.rstrip("/")

    def _can_refresh(self) -> bool:
        return bool(
            self._credentials.refresh_token
            and self._settings.google_client_id
            and self._settings.google_client_secret
        )

    async def refresh(self) -> str:
        """Exchange the refresh token for a new access token."""
        response = await self._http.post(
            self._settings.google_token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._credentials.refresh_token or "",
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
            },
            timeout=self._settings.google_timeout,
        )
        if response.status_code != 200:
            raise GoogleApiError(response.status_code, f"token refresh failed: {_error_message(response)}")
        token = response.json().get("access_token")
        if not token:
            raise GoogleApiError(response.status_code, "token refresh returned no access_token")
        self._credentials.access_token = token
        logger.info("Refreshed Google access token")
        return token

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body.

        Raises GoogleApiError for non-2xx responses.
        """
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        response = await self._send(method, url, params, json)
        if response.status_code == 401 and self._can_refresh():
            logger.info("Google returned 401 for %s %s, refreshing token", method, url)
            await self.refresh()
            response = await self._send(method, url, params, json)

        if response.status_code >= 400:
            raise GoogleApiError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        json: Any,
    ) -> httpx.Response:
        return await self._http.request(
            method,
            url,
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {self._credentials.access_token}"},
            timeout=self._settings.google_timeout,
        )


def tool_errors(action: str) -> Callable[[Callable[..., Awaitable[dict[str, Any]]]], Callable[..., Awaitable[dict[str, Any]]]]:
    """Turn Google and transport failures into ``{"success": False, "error": ...}``."""

    def decorator(func: Callable[..., Awaitable[dict[str, Any]]]) -> Callable[..., Awaitable[dict[str, Any]]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
            try:
                return await func(*args, **kwargs)
            except GoogleApiError as e:
                logger.warning("%s failed: %s", action, e)
                return {"success": False, "error": str(e)}
            except httpx.HTTPError as e:
                logger.warning("%s failed: %s", action, e)
                return {"success": False, "error": f"Failed to {action}: {e}"}

        return wrapper

    return decorator
