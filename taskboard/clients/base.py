"""
Upstream client contract shared by every widget type.

A client turns a widget's settings into one fresh fetch of remote data. It
knows nothing about caching: it raises NotFound / UpstreamError /
UpstreamUnavailable on failure and leaves the stale-or-raise decision to
the orchestrator.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping

import httpx

from taskboard.errors import UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Raw data of one successful fetch plus settings derived while fetching."""

    data: Any
    derived: dict[str, str] = field(default_factory=dict)


class UpstreamClient:
    widget_type: ClassVar[str] = ""
    default_refresh_seconds: ClassVar[int] = 300
    # settings whose change invalidates the cached payload
    cache_settings: ClassVar[tuple[str, ...]] = ()
    # setting -> settings derived from it by a fetch
    derived_settings: ClassVar[dict[str, tuple[str, ...]]] = {}

    async def fetch(self, settings: Mapping[str, str]) -> FetchResult:
        raise NotImplementedError

    def cache_identity(self, settings: Mapping[str, str]) -> dict[str, str]:
        """The fetch-relevant subset of settings; part of the cache key."""
        return {k: settings[k] for k in self.cache_settings if settings.get(k)}


def clamp_count(raw: str | None, default: int, low: int, high: int) -> int:
    """Parse an item count setting; unparsable or zero falls back to default."""
    try:
        value = int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        value = 0
    if not value:
        value = default
    return min(max(value, low), high)


async def get_json(
    http: httpx.AsyncClient,
    url: str,
    what: str,
    params: Mapping[str, Any] | None = None,
) -> Any:
    """GET url and decode JSON, mapping httpx failures onto the error taxonomy."""
    try:
        response = await http.get(url, params=params)
    except httpx.TransportError as e:
        logger.warning(f"{what}: 请求失败 {url}: {e!r}")
        raise UpstreamUnavailable(f"{what} service unavailable") from e
    except httpx.HTTPError as e:
        # redirect loops, undecodable bodies
        logger.warning(f"{what}: 请求异常 {url}: {e!r}")
        raise UpstreamError(f"Failed to fetch {what} data") from e

    if not response.is_success:
        logger.warning(f"{what}: {url} 返回 HTTP {response.status_code}")
        raise UpstreamError(f"Failed to fetch {what} data")

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamError(f"Invalid response from {what} service") from e
