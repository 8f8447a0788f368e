"""
进程内参考数据缓存（聚合器的话题/来源列表）。

单值缓存格 + 固定 TTL。未过期直接返回；过期后调用 loader 重新填充；
loader 失败时返回上一次成功的值（初始为空列表），不抛异常，也不推进抓取时间。
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class ReferenceCache:
    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[list[Any]]],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: list[Any] = []
        self._fetched_at: float | None = None
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return self._fetched_at is not None and self._clock() - self._fetched_at < self.ttl_seconds

    async def get(self) -> list[Any]:
        if self._fresh():
            return self._value

        async with self._lock:
            # another waiter may have refilled while we queued
            if self._fresh():
                return self._value
            try:
                value = await self._loader()
            except Exception as e:
                logger.warning(f"参考数据 {self.name} 刷新失败，返回旧值: {e}")
                return self._value
            self._value = list(value)
            self._fetched_at = self._clock()
            logger.info(f"参考数据 {self.name} 已刷新 ({len(self._value)} 条)")
            return self._value
