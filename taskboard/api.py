"""
FastAPI 路由：组件 CRUD、设置与数据接口。
"""

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskboard.data_controller import DataController
from taskboard.errors import FetchError, WidgetNotFound
from taskboard.models import WidgetCreate, WidgetLayoutUpdate, WidgetTypeInfo, WidgetView
from taskboard.reference_cache import ReferenceCache
from taskboard.registry import WidgetRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# 这些全局引用会在 main.py 中注入
_data_controller: DataController | None = None
_registry: WidgetRegistry | None = None
_topics_cache: ReferenceCache | None = None
_sources_cache: ReferenceCache | None = None


def init_api(data_controller, registry, topics_cache, sources_cache):
    """注入全局依赖（由 main.py 调用）。"""
    global _data_controller, _registry, _topics_cache, _sources_cache
    _data_controller = data_controller
    _registry = registry
    _topics_cache = topics_cache
    _sources_cache = sources_cache


async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    """领域异常 -> {"error": message} + 对应状态码。"""
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求校验失败 -> 400 {"error": message}，只报告第一个错误。"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    if field == "type" and first.get("type") == "missing":
        message = "Widget type is required"
    else:
        message = f"Invalid {field or 'request'}: {first.get('msg', 'validation failed')}"
    return JSONResponse({"error": message}, status_code=400)


def _widget_view(widget: dict[str, Any]) -> WidgetView:
    return WidgetView(**widget, settings=_data_controller.get_settings(widget["id"]))


# ── 组件 ──────────────────────────────────────────

@router.get("/widgets")
async def list_widgets() -> list[WidgetView]:
    """获取所有组件（按 z_index 升序），包含设置。"""
    return [_widget_view(w) for w in _data_controller.list_widgets()]


@router.post("/widgets", status_code=201)
async def create_widget(body: WidgetCreate) -> WidgetView:
    widget = _data_controller.create_widget(
        body.type,
        x=body.x,
        y=body.y,
        width=body.width,
        height=body.height,
        settings=body.settings,
    )
    return _widget_view(widget)


@router.put("/widgets/{widget_id}")
async def update_widget(widget_id: int, body: WidgetLayoutUpdate) -> WidgetView:
    """更新组件位置/尺寸/层级。"""
    widget = _data_controller.update_widget(widget_id, **body.model_dump())
    if widget is None:
        raise WidgetNotFound(widget_id)
    return _widget_view(widget)


@router.delete("/widgets/{widget_id}")
async def delete_widget(widget_id: int) -> dict:
    if not _data_controller.delete_widget(widget_id):
        raise WidgetNotFound(widget_id)
    return {"success": True}


# ── 设置 ──────────────────────────────────────────

@router.get("/widgets/{widget_id}/settings")
async def get_widget_settings(widget_id: int) -> dict[str, str]:
    if _data_controller.get_widget(widget_id) is None:
        raise WidgetNotFound(widget_id)
    return _data_controller.get_settings(widget_id)


@router.put("/widgets/{widget_id}/settings")
async def update_widget_settings(widget_id: int, body: dict[str, Any]) -> dict[str, str]:
    """更新设置；影响抓取结果的设置变化时会先清除缓存。"""
    return _registry.update_settings(widget_id, body)


# ── 数据 ──────────────────────────────────────────

@router.get("/widgets/{widget_id}/data")
async def get_widget_data(widget_id: int, force: bool = False) -> Any:
    """获取组件数据；force=true 时跳过 TTL 直接访问上游。"""
    return await _registry.get_widget_data(widget_id, force_refresh=force)


@router.get("/widget-types")
async def list_widget_types() -> list[WidgetTypeInfo]:
    return _registry.widget_types()


# ── 参考数据 ──────────────────────────────────────────

@router.get("/aggregator/topics")
async def list_aggregator_topics() -> list:
    return await _topics_cache.get()


@router.get("/aggregator/sources")
async def list_aggregator_sources() -> list:
    return await _sources_cache.get()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}
