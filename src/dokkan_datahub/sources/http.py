"""Shared async HTTP plumbing for web source adapters."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from dokkan_datahub.core.config import SourceConfig
from dokkan_datahub.core.exceptions import RateLimitError, TransientSourceError
from dokkan_datahub.sources.base import RawRecord

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES_429 = 3
_DEFAULT_RETRY_AFTER = 12
_MAX_RETRIES_SERVER = 3
_MAX_RETRIES_CONNECTION = 2
_CONNECTION_RETRY_DELAY = 2.0


class HttpSource:
    """Base class for adapters that talk to a website over HTTP.

    Subclasses implement `fetch()` and declare `DEFAULT_CATEGORIES`, the
    upstream category/page name for each data type they know. Configured
    `categories` extend or override those defaults.

    Use via `async with Subclass(...) as source:` or call `close()`.
    """

    DEFAULT_CATEGORIES: Mapping[str, str] = {}

    def __init__(
        self,
        name: str,
        config: SourceConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._name = name
        self._config = config
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )
        self._categories = {**self.DEFAULT_CATEGORIES, **config.categories}

    @property
    def name(self) -> str:
        return self._name

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def __aenter__(self) -> HttpSource:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    def category_for(self, data_type: str) -> str:
        return self._categories.get(data_type, data_type)

    async def available_data_types(self) -> list[str]:
        return list(self._categories)

    async def fetch(
        self, data_type: str, params: Mapping[str, Any] | None = None
    ) -> list[RawRecord]:
        raise NotImplementedError

    async def sample(self, data_type: str, limit: int) -> list[RawRecord]:
        records = await self.fetch(data_type, {"limit": limit})
        return records[:limit]

    # --- Retry ---

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with retry logic.

        Retry policy:
            - HTTP 429: Wait for Retry-After header value (or 12s default),
              then retry up to 3 times.
            - HTTP 500/502/503: Retry up to 3 times with exponential backoff.
            - Other HTTP errors: Raise immediately (no retry).
            - Transport errors: Retry up to 2 times with 2s delay.

        Returns:
            httpx.Response with status 200.

        Raises:
            RateLimitError: If retries exhausted on 429 responses.
            TransientSourceError: On any other failure.
        """
        context = {"source": self._name, "url": url}

        for attempt in range(_MAX_RETRIES_429 + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt < _MAX_RETRIES_CONNECTION:
                    logger.warning(
                        "Transport error on %s (%s), retrying in %ss (attempt %d/%d)",
                        url, type(e).__name__, _CONNECTION_RETRY_DELAY,
                        attempt + 1, _MAX_RETRIES_CONNECTION,
                    )
                    await asyncio.sleep(_CONNECTION_RETRY_DELAY)
                    continue
                raise TransientSourceError(
                    f"Connection to {self._name} failed after retries: {url}",
                    context={**context, "error": str(e)},
                ) from e

            if response.status_code == 200:
                return response

            if response.status_code == 429:
                retry_after = _retry_after(response)
                if attempt < _MAX_RETRIES_429:
                    logger.warning(
                        "Rate limited (429) by %s on %s, waiting %ds (attempt %d/%d)",
                        self._name, url, retry_after, attempt + 1, _MAX_RETRIES_429,
                    )
                    await asyncio.sleep(retry_after)
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded after {_MAX_RETRIES_429} retries: {url}",
                    context={**context, "retry_after": retry_after, "status_code": 429},
                )

            if response.status_code in (500, 502, 503):
                if attempt < _MAX_RETRIES_SERVER:
                    delay = 2**attempt
                    logger.warning(
                        "Server error %d from %s on %s, retrying in %ds (attempt %d/%d)",
                        response.status_code, self._name, url, delay,
                        attempt + 1, _MAX_RETRIES_SERVER,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransientSourceError(
                    f"Server error {response.status_code} after retries: {url}",
                    context={**context, "status_code": response.status_code},
                )

            raise TransientSourceError(
                f"HTTP {response.status_code} from {url}",
                context={**context, "status_code": response.status_code},
            )

        raise TransientSourceError(f"Request failed after all retries: {url}", context=context)

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self._request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise TransientSourceError(
                f"Invalid JSON from {self._name}: {url}",
                context={"source": self._name, "url": url},
            ) from e

    async def _get_text(self, url: str, **kwargs: Any) -> str:
        response = await self._request("GET", url, **kwargs)
        return response.text


def _retry_after(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Retry-After", _DEFAULT_RETRY_AFTER))
    except ValueError:
        return _DEFAULT_RETRY_AFTER
