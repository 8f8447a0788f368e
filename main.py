"""
Task Board 主入口：启动组件数据 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from taskboard import api
from taskboard.clients.aggregator import AggregatorClient
from taskboard.clients.headlines import HeadlineListClient
from taskboard.clients.pr_status import PullRequestClient
from taskboard.clients.weather import WeatherClient
from taskboard.config_loader import AppConfig, load_config
from taskboard.data_controller import DataController
from taskboard.errors import FetchError
from taskboard.reference_cache import ReferenceCache
from taskboard.registry import WidgetRegistry

logger = logging.getLogger(__name__)


def build_registry(
    config: AppConfig,
    data_controller: DataController,
    http: httpx.AsyncClient,
) -> tuple[WidgetRegistry, ReferenceCache, ReferenceCache]:
    """注册所有组件类型，并构建聚合器的参考数据缓存。"""
    upstream = config.upstream
    aggregator = AggregatorClient(http, upstream.aggregator_url)
    clients = [
        WeatherClient(http, upstream.geocoding_url, upstream.forecast_url),
        HeadlineListClient(http, upstream.headlines_url),
        aggregator,
        PullRequestClient(upstream.gh_binary, timeout=upstream.timeout),
    ]

    registry = WidgetRegistry(data_controller)
    for client in clients:
        registry.register(
            client,
            default_refresh_seconds=config.refresh_seconds_for(
                client.widget_type, client.default_refresh_seconds
            ),
        )

    ttl = config.cache.reference_ttl_seconds
    topics_cache = ReferenceCache("topics", aggregator.list_topics, ttl_seconds=ttl)
    sources_cache = ReferenceCache("sources", aggregator.list_sources, ttl_seconds=ttl)
    return registry, topics_cache, sources_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：启动时打开数据库与 HTTP 客户端，关闭时释放。"""
    config: AppConfig = app.state.config

    # ── 初始化核心组件 ────────────────────────────────────────
    logger.info(f"数据库: {config.storage.db_path}")
    data_controller = DataController(config.storage.db_path)
    http = httpx.AsyncClient(timeout=config.upstream.timeout, follow_redirects=True)
    registry, topics_cache, sources_cache = build_registry(config, data_controller, http)

    # 注入依赖到 API 模块
    api.init_api(
        data_controller=data_controller,
        registry=registry,
        topics_cache=topics_cache,
        sources_cache=sources_cache,
    )

    app.state.http = http
    app.state.data_controller = data_controller
    app.state.registry = registry

    yield  # 应用运行中

    logger.info("正在关闭...")
    await http.aclose()
    data_controller.close()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用；数据库与上游客户端在 lifespan 中打开。"""
    if config is None:
        logger.info("正在加载配置...")
        config = load_config()

    app = FastAPI(
        title="Task Board API",
        description="Dashboard widgets with cached upstream data",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router)
    app.add_exception_handler(FetchError, api.fetch_error_handler)
    app.add_exception_handler(RequestValidationError, api.validation_error_handler)

    app.state.config = config

    return app


def main():
    """主入口。"""
    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.server.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    port = int(sys.argv[1]) if len(sys.argv) > 1 else config.server.port
    logger.info(f"🚀 启动 Task Board 后端 (port={port})...")

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=port,
        log_level=config.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
