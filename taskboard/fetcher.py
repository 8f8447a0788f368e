"""
缓存刷新编排：为每种组件类型的上游客户端包装 TTL 缓存。

读穿缓存 + 失败降级：
- 未强制刷新、缓存键一致且未过期时直接返回 cached_data，不访问上游；
- 否则调用上游，成功后将 cached_data / last_fetched / cache_key 一次性写回；
- 上游失败时若有同键的旧缓存则返回旧数据，否则抛出带状态码的异常。
失败不会更新 last_fetched，下一次请求会立即重试。
"""

import hashlib
import json
import logging
import time
from typing import Any, Callable, Mapping

from taskboard.clients.base import UpstreamClient
from taskboard.data_controller import DataController
from taskboard.errors import FetchError, UpstreamError

logger = logging.getLogger(__name__)

CACHED_DATA = "cached_data"
LAST_FETCHED = "last_fetched"
CACHE_KEY = "cache_key"
CACHE_FIELDS = (CACHED_DATA, LAST_FETCHED, CACHE_KEY)

_MISS = object()


def compute_cache_key(widget_type: str, identity: Mapping[str, str]) -> str:
    """类型 + 影响抓取结果的设置 -> sha256。"""
    payload = json.dumps({"type": widget_type, "settings": dict(identity)}, sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _parse_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CachedFetcher:
    """单个组件类型的缓存编排器。"""

    def __init__(
        self,
        client: UpstreamClient,
        data_controller: DataController,
        default_refresh_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self._data_controller = data_controller
        self.default_refresh_seconds = default_refresh_seconds or client.default_refresh_seconds
        self._clock = clock

    @property
    def widget_type(self) -> str:
        return self.client.widget_type

    def ttl_for(self, settings: Mapping[str, str]) -> int:
        ttl = _parse_int(settings.get("refresh_period"))
        if ttl is None or ttl <= 0:
            return self.default_refresh_seconds
        return ttl

    def cache_key_for(self, settings: Mapping[str, str]) -> str:
        return compute_cache_key(self.widget_type, self.client.cache_identity(settings))

    def _load_cached(self, widget_id: int, settings: Mapping[str, str], key: str) -> Any:
        """反序列化同键缓存；缺失、键不一致或损坏都视为未命中。"""
        raw = settings.get(CACHED_DATA)
        if not raw:
            return _MISS
        stored_key = settings.get(CACHE_KEY)
        if stored_key and stored_key != key:
            return _MISS
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"[{widget_id}] cached_data 无法解析，按未命中处理")
            return _MISS

    async def get_data(
        self,
        widget_id: int,
        settings: Mapping[str, str],
        force_refresh: bool = False,
    ) -> Any:
        now = int(self._clock())
        key = self.cache_key_for(settings)

        if not force_refresh:
            age = now - (_parse_int(settings.get(LAST_FETCHED)) or 0)
            if age < self.ttl_for(settings):
                cached = self._load_cached(widget_id, settings, key)
                if cached is not _MISS:
                    logger.debug(f"[{widget_id}] 缓存命中 (age={age}s)")
                    return cached

        try:
            result = await self.client.fetch(settings)
        except FetchError as e:
            error = e
        except Exception as e:
            logger.error(f"[{widget_id}] {self.widget_type} 抓取异常: {e}", exc_info=True)
            error = UpstreamError(f"{self.widget_type} fetch failed")
        else:
            self._data_controller.upsert_settings(widget_id, {
                **result.derived,
                CACHED_DATA: json.dumps(result.data, ensure_ascii=False),
                LAST_FETCHED: now,
                CACHE_KEY: key,
            })
            logger.info(f"[{widget_id}] {self.widget_type} 数据已刷新")
            return result.data

        cached = self._load_cached(widget_id, settings, key)
        if cached is not _MISS:
            logger.warning(f"[{widget_id}] 上游失败，返回旧缓存: {error.message}")
            return cached

        logger.warning(f"[{widget_id}] 上游失败且无缓存: {error.message}")
        raise error
