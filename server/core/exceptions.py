"""
统一异常体系
"""
from typing import Optional


class CopilotError(Exception):
    """服务内异常的基类"""
    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class GenerationError(CopilotError):
    """生成请求失败异常"""
    pass


class GenerationHTTPError(GenerationError):
    """远端返回非2xx状态码，响应体保存在消息中"""
    def __init__(self, status: int, body: str):
        super().__init__(f"generation service returned HTTP {status}: {body}")
        self.status = status
        self.body = body


class GenerationTransportError(GenerationError):
    """网络/传输层失败"""
    pass


class GenerationCancelled(GenerationError):
    """请求被主动取消（不视为用户可见错误）"""
    def __init__(self, message: str = "generation cancelled"):
        super().__init__(message)


class ScreenshotError(CopilotError):
    """截图获取失败异常"""
    pass
