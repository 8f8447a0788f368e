"""
配置加载器：将 YAML 配置文件解析为 Pydantic 模型。
未找到配置文件时使用内置默认值。
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ── 服务配置 ──────────────────────────────────────────

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5555
    log_level: str = "INFO"
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5555", "http://localhost:5173"]
    )


class StorageConfig(BaseModel):
    data_dir: str = "data"
    db_file: str = "taskboard.json"

    @property
    def db_path(self) -> Path:
        base = Path(os.path.expanduser(os.path.expandvars(self.data_dir)))
        if not base.is_absolute():
            base = Path(os.getenv("TASKBOARD_ROOT", ".")) / base
        return base / self.db_file


# ── 上游配置 ──────────────────────────────────────────

class UpstreamConfig(BaseModel):
    timeout: float = 10.0
    geocoding_url: str = "https://geocoding-api.open-meteo.com/v1/search"
    forecast_url: str = "https://api.open-meteo.com/v1/forecast"
    headlines_url: str = "https://hacker-news.firebaseio.com/v0"
    # blog aggregator REST API root (serves /posts, /topics, /sources)
    aggregator_url: str = ""
    gh_binary: str = "gh"


# ── 缓存配置 ──────────────────────────────────────────

class CacheConfig(BaseModel):
    # widget type -> seconds, overrides the client's own default
    refresh_seconds: Dict[str, int] = Field(default_factory=dict)
    reference_ttl_seconds: int = 24 * 60 * 60


# ── 顶层配置 ──────────────────────────────────────────

class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    def refresh_seconds_for(self, widget_type: str, default: int) -> int:
        return int(self.cache.refresh_seconds.get(widget_type, default))


# ── Loading ──────────────────────────────────────────

_CONFIG_SEARCH_PATHS = [
    "config/config.yaml",
    "config.yaml",
]


def find_config_root() -> Path:
    """Find the root config file or directory."""
    base = Path(os.getenv("TASKBOARD_ROOT", "."))
    config_dir = base / "config"
    if config_dir.is_dir():
        return config_dir

    for p in _CONFIG_SEARCH_PATHS:
        path = base / p
        if path.exists():
            return path

    return base


def deep_merge_dict(base: dict, update: dict) -> dict:
    """Deep merge two dictionaries; values from update win."""
    for k, v in update.items():
        if isinstance(v, dict) and k in base and isinstance(base[k], dict):
            base[k] = deep_merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def load_all_yamls(root: Path) -> dict[str, Any]:
    """Load and merge all YAML files under root (or root itself if it is a file)."""
    combined: dict[str, Any] = {}

    files = []
    if root.is_file():
        files.append(root)
    elif root.is_dir():
        files.extend(root.glob("*.yaml"))
        files.extend(root.glob("*.yml"))
        files.sort()

    for f in files:
        try:
            with open(f, "r", encoding="utf-8") as fp:
                content = yaml.safe_load(fp)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"加载配置文件失败 {f}: {e}")
            continue
        if not content:
            continue
        if not isinstance(content, dict):
            logger.warning(f"配置文件 {f} 顶层不是映射，已忽略")
            continue
        deep_merge_dict(combined, content)

    return combined


def load_config(path: Optional[str | Path] = None) -> AppConfig:
    """
    Load, merge, and validate configuration from YAML files.
    """
    if path is None:
        path = find_config_root()
    path = Path(path)

    raw = load_all_yamls(path)
    return AppConfig.model_validate(raw)
