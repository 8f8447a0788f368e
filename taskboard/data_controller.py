"""
数据控制器：基于 TinyDB 的组件持久化层。
widgets 表保存组件元数据（文档 id 即组件 id），
widget_settings 表每个组件一条文档，保存其全部 key/value 设置。
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from tinydb import Query, TinyDB

logger = logging.getLogger(__name__)

_LAYOUT_FIELDS = ("x", "y", "width", "height", "z_index")


def to_setting_value(value: Any) -> str:
    """设置值统一按字符串存储。"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class DataController:
    """TinyDB 数据操作封装。"""

    def __init__(self, db_path: str | Path):
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = TinyDB(str(db_path), indent=2, ensure_ascii=False)
        self.widgets_table = self.db.table("widgets")
        self.settings_table = self.db.table("widget_settings")
        logger.info(f"TinyDB 数据库已打开: {db_path}")

    # ── 组件 ──────────────────────────────────────────

    def create_widget(
        self,
        widget_type: str,
        x: int = 0,
        y: int = 0,
        width: int = 2,
        height: int = 2,
        settings: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """创建组件，z_index 取当前最大值 + 1。"""
        max_z = max((w.get("z_index", 0) for w in self.widgets_table.all()), default=0)
        widget_id = self.widgets_table.insert({
            "type": widget_type,
            "x": x,
            "y": y,
            "width": width,
            "height": height,
            "z_index": max_z + 1,
        })
        if settings:
            self.upsert_settings(widget_id, settings)
        logger.info(f"[{widget_id}] 组件已创建: {widget_type}")
        return self.get_widget(widget_id)

    def get_widget(self, widget_id: int) -> dict[str, Any] | None:
        doc = self.widgets_table.get(doc_id=widget_id)
        if doc is None:
            return None
        return {"id": doc.doc_id, **doc}

    def list_widgets(self) -> list[dict[str, Any]]:
        """按 z_index 升序返回所有组件。"""
        widgets = [{"id": doc.doc_id, **doc} for doc in self.widgets_table.all()]
        widgets.sort(key=lambda w: w.get("z_index", 0))
        return widgets

    def update_widget(self, widget_id: int, **fields: Any) -> dict[str, Any] | None:
        """更新位置/尺寸/层级；None 值保持原值。"""
        if self.widgets_table.get(doc_id=widget_id) is None:
            return None
        changes = {k: v for k, v in fields.items() if k in _LAYOUT_FIELDS and v is not None}
        if changes:
            self.widgets_table.update(changes, doc_ids=[widget_id])
        return self.get_widget(widget_id)

    def delete_widget(self, widget_id: int) -> bool:
        """删除组件及其全部设置。"""
        if self.widgets_table.get(doc_id=widget_id) is None:
            return False
        Settings = Query()
        self.settings_table.remove(Settings.widget_id == widget_id)
        self.widgets_table.remove(doc_ids=[widget_id])
        logger.info(f"[{widget_id}] 组件已删除")
        return True

    # ── 设置 ──────────────────────────────────────────

    def get_settings(self, widget_id: int) -> dict[str, str]:
        Settings = Query()
        doc = self.settings_table.get(Settings.widget_id == widget_id)
        if doc is None:
            return {}
        return dict(doc.get("values", {}))

    def upsert_setting(self, widget_id: int, key: str, value: Any):
        self.upsert_settings(widget_id, {key: value})

    def upsert_settings(self, widget_id: int, values: Mapping[str, Any]):
        """
        合并写入多个设置。
        所有键在同一次 TinyDB 写入中落盘，缓存数据与时间戳因此总是成对出现。
        """
        merged = self.get_settings(widget_id)
        merged.update({k: to_setting_value(v) for k, v in values.items()})
        Settings = Query()
        self.settings_table.upsert(
            {"widget_id": widget_id, "values": merged},
            Settings.widget_id == widget_id,
        )
        logger.debug(f"[{widget_id}] 设置已更新: {sorted(values)}")

    def delete_settings(self, widget_id: int, keys: Iterable[str]):
        keys = set(keys)
        current = self.get_settings(widget_id)
        remaining = {k: v for k, v in current.items() if k not in keys}
        if len(remaining) == len(current):
            return
        Settings = Query()
        self.settings_table.update({"values": remaining}, Settings.widget_id == widget_id)
        logger.debug(f"[{widget_id}] 设置已删除: {sorted(keys & current.keys())}")

    # ── 管理 ──────────────────────────────────────────

    def close(self):
        """关闭数据库。"""
        self.db.close()
