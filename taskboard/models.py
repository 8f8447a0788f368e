"""
Data models for stored widgets and their API payloads.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WidgetType(str, Enum):
    WEATHER = "weather"
    HEADLINE_LIST = "headline-list"
    AGGREGATOR = "aggregator"
    PR_STATUS = "pr-status"


class StoredWidget(BaseModel):
    """A widget row: identity, type and grid layout."""
    id: int
    type: str
    x: int = Field(default=0, description="X position in grid cells")
    y: int = Field(default=0, description="Y position in grid cells")
    width: int = Field(default=2, description="Width in grid cells")
    height: int = Field(default=2, description="Height in grid cells")
    z_index: int = Field(default=1, description="Stacking order, higher is on top")


class WidgetView(StoredWidget):
    """A widget together with its settings mapping, as returned by the API."""
    settings: Dict[str, str] = Field(default_factory=dict)


class WidgetCreate(BaseModel):
    type: str
    x: int = 0
    y: int = 0
    width: int = 2
    height: int = 2
    settings: Dict[str, Any] = Field(default_factory=dict)


class WidgetLayoutUpdate(BaseModel):
    """Partial layout update; omitted fields keep their stored value."""
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    z_index: Optional[int] = None


class WidgetTypeInfo(BaseModel):
    type: str
    default_refresh_seconds: int
    cache_settings: list[str] = Field(default_factory=list)
