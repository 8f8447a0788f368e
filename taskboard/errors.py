"""
组件数据层的异常类型。
每个异常携带 HTTP 状态码，由 API 层统一渲染为 {"error": message}。
"""


class FetchError(Exception):
    """Base class for errors surfaced to the HTTP boundary."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(FetchError):
    """上游找不到请求的资源（如无法解析的地名）。"""

    status_code = 404


class WidgetNotFound(NotFound):
    def __init__(self, widget_id: int):
        self.widget_id = widget_id
        super().__init__("Widget not found")


class UnknownWidgetType(FetchError):
    status_code = 400

    def __init__(self, widget_type: str):
        self.widget_type = widget_type
        super().__init__(f"Unknown widget type: {widget_type}")


class UpstreamError(FetchError):
    """上游可达，但返回了失败状态或无法解析的内容。"""

    status_code = 502


class UpstreamUnavailable(FetchError):
    """网络/传输失败，或外部 CLI 工具缺失、未登录。"""

    status_code = 503
