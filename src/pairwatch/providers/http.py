"""JSON-over-HTTP client shared by the provider adapters.

Wraps a lazily created aiohttp session and turns every failure into one of
the ProviderError classes, so adapters only ever deal with the taxonomy in
pairwatch.exceptions.
"""

import asyncio
from typing import Any

import aiohttp

from pairwatch.exceptions import (
    AuthError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    SchemaError,
)
from pairwatch.logging import get_logger

logger = get_logger(__name__)


def error_for_status(status: int) -> type[ProviderError] | None:
    """Map an HTTP status to the error class it represents, None for 2xx."""
    if 200 <= status < 300:
        return None
    if status in (401, 403):
        return AuthError
    if status == 404:
        return NotFoundError
    if status == 429:
        return RateLimitError
    return NetworkError


class JsonHttpClient:
    """Minimal async GET-JSON client for one upstream base URL.

    Args:
        base_url: Provider root, e.g. "https://api.example.com/v3".
        headers: Headers sent with every request (API keys live here).
        timeout_seconds: Total per-request timeout.
        session: Optional shared aiohttp session; created on first use if None.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._timeout = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET base_url/path and decode the JSON body.

        Raises:
            AuthError, NotFoundError, RateLimitError, NetworkError: by status
                or transport failure.
            SchemaError: if the body is not valid JSON.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        clean_params = {k: str(v) for k, v in (params or {}).items() if v is not None}
        session = await self._get_session()
        try:
            async with session.get(url, params=clean_params, headers=self._headers) as resp:
                error_cls = error_for_status(resp.status)
                if error_cls is not None:
                    body = await resp.text()
                    raise error_cls(
                        f"HTTP {resp.status} from {url}: {body[:200]}",
                        status=resp.status,
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise SchemaError(f"Invalid JSON from {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Timeout calling {url}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
