"""Authenticated REST client for the DocSynth backend API.

This module provides the Python counterpart of the dashboard's ``apiFetch``
helper: every request carries the bearer token, bodies are JSON, and any
non-2xx response raises ``ApiError`` so call sites decide whether to surface
or swallow the failure.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Self

import aiohttp

from docsynth_realtime.types.protocols import TokenProvider
from docsynth_realtime.utils.sanitization import sanitize_exception


class ApiError(Exception):
    """Raised when an API request fails or returns a non-2xx status."""

    def __init__(self, message: str, *, status: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status: int | None = status
        self.path: str | None = path


class AuthenticationRequiredError(ApiError):
    """Raised when no token is available or the backend answers 401."""


def unwrap_data(body: Mapping[str, object], *, path: str | None = None) -> object:
    """Extract ``data`` from a ``{success, data, error?}`` response envelope.

    Args:
        body: Decoded response body
        path: Request path, used in the error message

    Returns:
        The ``data`` member of the envelope

    Raises:
        ApiError: If the envelope reports ``success: false``
    """
    if body.get("success") is False:
        error = body.get("error")
        message = error if isinstance(error, str) and error else "Request was not successful"
        raise ApiError(message, path=path)
    return body.get("data")


class AIOHTTPApiClient:
    """Async REST client using aiohttp.

    Implements the ApiClient Protocol. The session is created when entering
    the async context manager.

    Example:
        >>> async with AIOHTTPApiClient("https://api.example.com", token_provider=lambda: token) as api:
        ...     body = await api.fetch("/api/notifications")
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the API client.

        Args:
            base_url: Backend base URL (e.g. ``https://api.example.com``)
            token_provider: Callable returning the current bearer token
            timeout_seconds: Per-request timeout in seconds (default: 10.0)
        """
        self._base_url: str = base_url.rstrip("/")
        self._token_provider: TokenProvider = token_provider
        self._timeout_seconds: float = timeout_seconds
        self._session: aiohttp.ClientSession | None = None
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        self._session = aiohttp.ClientSession(json_serialize=json.dumps)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(
        self,
        path: str,
        *,
        method: str = "GET",
        payload: Mapping[str, object] | None = None,
    ) -> Mapping[str, object]:
        """Perform an authenticated request and decode the JSON body.

        Args:
            path: Path relative to the base URL
            method: HTTP method (default: GET)
            payload: Optional JSON body

        Returns:
            Decoded JSON body (non-object bodies are wrapped as ``{"data": body}``)

        Raises:
            AuthenticationRequiredError: If no token is available or the status is 401
            ApiError: For any other non-2xx status, timeout or connection failure
            RuntimeError: If the client is used outside ``async with``
        """
        if self._session is None:
            msg = "API client session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        token = self._token_provider()
        if not token:
            raise AuthenticationRequiredError("No authentication token available", path=path)

        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        self._logger.debug("%s %s", method, url)

        try:
            async with asyncio.timeout(self._timeout_seconds):
                async with self._session.request(method, url, json=payload, headers=headers) as response:
                    body: object
                    try:
                        body = await response.json(content_type=None)  # pyright: ignore[reportAny]  # aiohttp returns Any
                    except (aiohttp.ContentTypeError, ValueError):
                        body = {}
                    status = response.status
        except TimeoutError as exc:
            self._logger.warning("Request %s %s timed out after %.1fs", method, path, self._timeout_seconds)
            raise ApiError(f"Request timed out after {self._timeout_seconds}s", path=path) from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Request %s %s failed: %s", method, path, sanitize_exception(exc))
            raise ApiError(f"Request failed: {sanitize_exception(exc)}", path=path) from exc

        decoded: Mapping[str, object] = body if isinstance(body, Mapping) else {"data": body}  # pyright: ignore[reportUnknownVariableType]

        if status == 401:
            raise AuthenticationRequiredError("Authentication required", status=status, path=path)
        if not 200 <= status < 300:
            error = decoded.get("error")
            detail = error if isinstance(error, str) and error else f"HTTP {status}"
            raise ApiError(f"{method} {path} failed: {detail}", status=status, path=path)

        return decoded
