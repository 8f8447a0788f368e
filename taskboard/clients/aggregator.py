"""
Blog-post aggregator widget client.

Fetches the first page of posts, optionally filtered by topic and source
tags, and normalizes every provider record into the shape the widget renders.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from taskboard.clients.base import FetchResult, UpstreamClient, clamp_count, get_json
from taskboard.errors import UpstreamUnavailable
from taskboard.models import WidgetType

logger = logging.getLogger(__name__)

MIN_COUNT = 5
MAX_COUNT = 20
DEFAULT_COUNT = 10
WORDS_PER_MINUTE = 200


def parse_tags(raw: str | None) -> list[str]:
    """Comma-separated tag setting; empty or "all" means no filter."""
    if not raw or raw.strip().lower() == "all":
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def format_time_ago(published: datetime, now: datetime | None = None) -> str:
    if now is None:
        now = datetime.now(timezone.utc)
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)

    minutes = max(int((now - published).total_seconds() // 60), 0)
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    days = hours // 24
    if days < 7:
        return _plural(days, "day")
    if days < 30:
        return _plural(days // 7, "week")
    return _plural(days // 30, "month")


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_number(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return number


def estimate_read_time(record: Mapping[str, Any]) -> str:
    """Provider reading_time, else word_count / 200; garbage falls back to 1 min."""
    minutes = _parse_number(record.get("reading_time"))
    if minutes is None:
        words = _parse_number(record.get("word_count")) or 0
        minutes = words / WORDS_PER_MINUTE
    return f"{max(math.ceil(minutes), 1)} min read"


def _name_of(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or value.get("slug") or "")
    return str(value) if value is not None else ""


def _unwrap_list(data: Any, key: str) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        inner = data.get(key, data.get("data"))
        if isinstance(inner, list):
            return inner
    return []


class AggregatorClient(UpstreamClient):
    widget_type = WidgetType.AGGREGATOR.value
    default_refresh_seconds = 1800
    cache_settings = ("topics", "sources", "count")

    def __init__(self, http: httpx.AsyncClient, base_url: str):
        self._http = http
        self.base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        if not self.base_url:
            raise UpstreamUnavailable("Aggregator service is not configured (upstream.aggregator_url)")
        return f"{self.base_url}/{path}"

    def normalize(self, record: Mapping[str, Any], now: datetime | None = None) -> dict[str, Any]:
        """Provider record -> widget item."""
        link = record.get("url")
        if not link and record.get("slug"):
            link = f"{self.base_url}/posts/{record['slug']}"
        published = _parse_timestamp(record.get("published_at"))
        return {
            "title": record.get("title", ""),
            "link": link or "",
            "external_link": record.get("external_url") or link or "",
            "source": _name_of(record.get("source")),
            "time_ago": format_time_ago(published, now) if published else "",
            "read_time": estimate_read_time(record),
            "topics": [_name_of(t) for t in record.get("topics") or []],
        }

    async def fetch(self, settings: Mapping[str, str]) -> FetchResult:
        count = clamp_count(settings.get("count"), DEFAULT_COUNT, MIN_COUNT, MAX_COUNT)
        params: dict[str, Any] = {"page": 1, "per_page": count}
        topics = parse_tags(settings.get("topics"))
        if topics:
            params["topics"] = ",".join(topics)
        sources = parse_tags(settings.get("sources"))
        if sources:
            params["sources"] = ",".join(sources)

        data = await get_json(self._http, self._url("posts"), "Aggregator", params=params)
        now = datetime.now(timezone.utc)
        posts = [self.normalize(r, now) for r in _unwrap_list(data, "posts")[:count]]
        return FetchResult(data=posts)

    # ── 参考数据 ──────────────────────────────────────────

    async def list_topics(self) -> list:
        data = await get_json(self._http, self._url("topics"), "Aggregator topics")
        return _unwrap_list(data, "topics")

    async def list_sources(self) -> list:
        data = await get_json(self._http, self._url("sources"), "Aggregator sources")
        return _unwrap_list(data, "sources")
