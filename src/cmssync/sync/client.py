"""Async client for the headless CMS delivery API using httpx.

Endpoints (relative to ``{base}/{guid}/{fetch|preview}/{language}``):
- GET /sync/items (content item deltas since a sync token)
- GET /sync/pages (page deltas since a sync token)
- GET /sitemap/flat/{channel} (flattened sitemap, keyed by path)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from cmssync.config import ApiConfig

log = structlog.get_logger(__name__)

_DEFAULT_BASE = "https://api.aglty.io"
_REGION_BASES = {
    "d": "https://api-dev.aglty.io",
    "c": "https://api-ca.aglty.io",
    "e": "https://api-eu.aglty.io",
    "a": "https://api-aus.aglty.io",
}


class CmsAuthError(Exception):
    """Raised when the API rejects the configured key."""


class CmsAPIError(Exception):
    """Raised for transport failures, error responses and malformed payloads."""


@dataclass(frozen=True)
class SyncBatch:
    """One page of a sync endpoint response."""

    sync_token: int
    items: list[dict[str, Any]] = field(default_factory=list)


def resolve_base_url(config: ApiConfig) -> str:
    """Pick the API host from the instance GUID's region suffix unless overridden."""
    if config.base_url:
        return config.base_url.rstrip("/")
    _, sep, suffix = config.guid.rpartition("-")
    if sep and suffix in _REGION_BASES:
        return _REGION_BASES[suffix]
    return _DEFAULT_BASE


def _segment(value: str) -> str:
    """Quote *value* as a single URL path segment."""
    return quote(value, safe="")


class CmsClient:
    """Async CMS delivery API client authenticated with an ``APIKey`` header."""

    def __init__(
        self,
        config: ApiConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    @property
    def api_root(self) -> str:
        api_type = "preview" if self._config.preview else "fetch"
        return f"{resolve_base_url(self._config)}/{self._config.guid}/{api_type}"

    async def __aenter__(self) -> CmsClient:
        kw: dict = {
            "timeout": self._config.timeout_seconds,
            "headers": {
                "APIKey": self._config.api_key.get_secret_value(),
                "Accept": "application/json",
            },
        }
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- request helper --

    async def _get(self, path: str, *, params: dict | None = None) -> Any:
        assert self._client is not None  # noqa: S101

        url = f"{self.api_root}/{path}"
        try:
            resp = await self._client.get(url, params=params)
        except httpx.TransportError as exc:
            log.warning("cms_network_error", url=url, error=str(exc))
            raise CmsAPIError(f"Network error calling {url}: {exc}") from exc

        if resp.status_code in (401, 403):
            raise CmsAuthError(
                f"CMS API rejected the API key ({resp.status_code}). "
                "Check it with: cmssync config set api.api_key <key>"
            )

        if resp.status_code >= 400:
            raise CmsAPIError(f"CMS API error: {resp.status_code} {resp.text}")

        try:
            return resp.json()
        except ValueError as exc:
            raise CmsAPIError(f"CMS API returned invalid JSON from {url}") from exc

    async def _get_sync_batch(
        self, endpoint: str, language_code: str, sync_token: int, page_size: int
    ) -> SyncBatch:
        data = await self._get(
            f"{_segment(language_code)}/sync/{endpoint}",
            params={"syncToken": sync_token, "pageSize": page_size},
        )
        if not isinstance(data, dict) or "syncToken" not in data:
            raise CmsAPIError(f"Malformed sync/{endpoint} response for {language_code}")

        items = data.get("items") or []
        log.debug(
            "cms_sync_batch",
            endpoint=endpoint,
            language=language_code,
            sync_token=sync_token,
            received=len(items),
        )
        return SyncBatch(sync_token=int(data["syncToken"]), items=items)

    # -- public API --

    async def get_sync_items(
        self, language_code: str, sync_token: int, page_size: int
    ) -> SyncBatch:
        """Fetch the next page of content item changes after *sync_token*."""
        return await self._get_sync_batch("items", language_code, sync_token, page_size)

    async def get_sync_pages(
        self, language_code: str, sync_token: int, page_size: int
    ) -> SyncBatch:
        """Fetch the next page of page changes after *sync_token*."""
        return await self._get_sync_batch("pages", language_code, sync_token, page_size)

    async def get_sitemap_flat(self, channel_name: str, language_code: str) -> dict[str, Any]:
        """Fetch the flattened sitemap for *channel_name*, keyed by page path.

        An empty channel comes back as an empty dict.
        """
        data = await self._get(f"{_segment(language_code)}/sitemap/flat/{_segment(channel_name)}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise CmsAPIError(f"Malformed sitemap response for {channel_name}/{language_code}")
        return data
