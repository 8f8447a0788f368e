"""
组件注册表：组件类型 -> (上游客户端, 缓存编排器)。
对 API 层只暴露统一的 get_widget_data / update_settings。
"""

import logging
import time
from typing import Any, Callable, Mapping

from taskboard.clients.base import UpstreamClient
from taskboard.data_controller import DataController, to_setting_value
from taskboard.errors import UnknownWidgetType, WidgetNotFound
from taskboard.fetcher import CACHE_FIELDS, CachedFetcher
from taskboard.models import WidgetTypeInfo

logger = logging.getLogger(__name__)


class WidgetRegistry:
    def __init__(self, data_controller: DataController, clock: Callable[[], float] = time.time):
        self._data_controller = data_controller
        self._clock = clock
        self._fetchers: dict[str, CachedFetcher] = {}

    def register(self, client: UpstreamClient, default_refresh_seconds: int | None = None) -> CachedFetcher:
        if not client.widget_type:
            raise ValueError(f"{type(client).__name__} has no widget_type")
        fetcher = CachedFetcher(
            client,
            self._data_controller,
            default_refresh_seconds=default_refresh_seconds,
            clock=self._clock,
        )
        self._fetchers[client.widget_type] = fetcher
        logger.info(f"组件类型已注册: {client.widget_type} (默认刷新 {fetcher.default_refresh_seconds}s)")
        return fetcher

    def get(self, widget_type: str) -> CachedFetcher | None:
        return self._fetchers.get(widget_type)

    def widget_types(self) -> list[WidgetTypeInfo]:
        return [
            WidgetTypeInfo(
                type=widget_type,
                default_refresh_seconds=fetcher.default_refresh_seconds,
                cache_settings=list(fetcher.client.cache_settings),
            )
            for widget_type, fetcher in self._fetchers.items()
        ]

    def _require_widget(self, widget_id: int) -> dict[str, Any]:
        widget = self._data_controller.get_widget(widget_id)
        if widget is None:
            raise WidgetNotFound(widget_id)
        return widget

    # ── 数据 ──────────────────────────────────────────

    async def get_widget_data(self, widget_id: int, force_refresh: bool = False) -> Any:
        widget = self._require_widget(widget_id)
        settings = self._data_controller.get_settings(widget_id)

        fetcher = self.get(widget["type"])
        if fetcher is None:
            raise UnknownWidgetType(widget["type"])

        return await fetcher.get_data(widget_id, settings, force_refresh=force_refresh)

    # ── 设置 ──────────────────────────────────────────

    def stale_keys_for(self, widget_type: str, current: Mapping[str, str], incoming: Mapping[str, Any]) -> set[str]:
        """
        计算设置更新需要删除的键。
        只要某个影响抓取结果的设置值发生变化，就清除缓存三元组及其派生设置。
        """
        fetcher = self.get(widget_type)
        if fetcher is None:
            return set()
        client = fetcher.client

        stale: set[str] = set()
        for key, value in incoming.items():
            if key not in client.cache_settings:
                continue
            if current.get(key) == to_setting_value(value):
                continue
            stale.update(CACHE_FIELDS)
            stale.update(client.derived_settings.get(key, ()))
        # explicitly supplied values win over invalidation
        return stale - set(incoming)

    def update_settings(self, widget_id: int, values: Mapping[str, Any]) -> dict[str, str]:
        """先按需失效缓存，再写入新设置。"""
        widget = self._require_widget(widget_id)
        current = self._data_controller.get_settings(widget_id)

        stale = self.stale_keys_for(widget["type"], current, values)
        if stale:
            logger.info(f"[{widget_id}] 设置变更，清除缓存: {sorted(stale)}")
            self._data_controller.delete_settings(widget_id, stale)

        if values:
            self._data_controller.upsert_settings(widget_id, values)
        return self._data_controller.get_settings(widget_id)
