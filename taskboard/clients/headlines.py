"""
Headline-list widget client (Hacker News top stories).

Items are fetched concurrently. An item whose fetch fails, or which the
provider returns as null, is dropped from the list instead of failing the
whole request; the remaining items keep the order of the id list.
"""

import asyncio
import logging
from typing import Any, Mapping

import httpx

from taskboard.clients.base import FetchResult, UpstreamClient, clamp_count, get_json
from taskboard.errors import FetchError
from taskboard.models import WidgetType

logger = logging.getLogger(__name__)

MIN_COUNT = 5
MAX_COUNT = 25
DEFAULT_COUNT = 10


class HeadlineListClient(UpstreamClient):
    widget_type = WidgetType.HEADLINE_LIST.value
    default_refresh_seconds = 300
    cache_settings = ("count",)

    def __init__(self, http: httpx.AsyncClient, base_url: str):
        self._http = http
        self.base_url = base_url.rstrip("/")

    async def _fetch_item(self, item_id: Any) -> dict | None:
        try:
            return await get_json(self._http, f"{self.base_url}/item/{item_id}.json", "Headline item")
        except FetchError as e:
            logger.info(f"Headline item {item_id} dropped: {e.message}")
            return None

    async def fetch(self, settings: Mapping[str, str]) -> FetchResult:
        count = clamp_count(settings.get("count"), DEFAULT_COUNT, MIN_COUNT, MAX_COUNT)

        ids = await get_json(self._http, f"{self.base_url}/topstories.json", "Headline list")
        if not isinstance(ids, list):
            ids = []
        ids = ids[:count]

        # gather keeps the order of ids regardless of completion order
        items = await asyncio.gather(*(self._fetch_item(item_id) for item_id in ids))
        return FetchResult(data=[item for item in items if item is not None])
