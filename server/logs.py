"""
结构化日志与指标模块
"""
import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from functools import wraps

from config import settings


class StructuredFormatter(logging.Formatter):
    """结构化JSON日志格式化器"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # 添加异常信息
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class MetricsCollector:
    """指标收集器"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {
            "audio_events": 0,
            "hint_requests": 0,
            "hints_completed": 0,
            "hints_skipped": 0,
            "hint_errors": 0,
            "chat_requests": 0,
            "chat_errors": 0,
            "chat_cancelled": 0,
            "stream_parse_errors": 0,
            "model_list_requests": 0,
            "model_list_requests_errors": 0,
            "ws_connections": 0,
            "ws_disconnections": 0,
            "ws_rejected": 0,
        }

    def increment(self, metric: str, value: int = 1):
        """增加指标值"""
        if metric in self.metrics:
            self.metrics[metric] += value

    def get(self, metric: str) -> Any:
        """获取指标值"""
        return self.metrics.get(metric, 0)

    def get_all(self) -> Dict[str, Any]:
        """获取所有指标"""
        return self.metrics.copy()


# 全局指标收集器
metrics = MetricsCollector()


def setup_logger(
    name: str = "copilot",
    level: Optional[str] = None
) -> logging.Logger:
    """
    设置并返回日志记录器

    Args:
        name: 日志记录器名称
        level: 日志级别（默认从配置读取）

    Returns:
        配置好的日志记录器
    """
    logger = logging.getLogger(name)

    if level is None:
        level = settings.LOG_LEVEL

    logger.setLevel(getattr(logging, level.upper()))

    # 避免重复添加处理器
    if logger.handlers:
        return logger

    # 控制台处理器
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)

    # 根据配置选择格式化器
    if settings.LOG_FORMAT == "json":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def log_metric(metric: str):
    """装饰器（协程函数）：记录调用次数、失败次数与耗时"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
                metrics.increment(metric)
                return result
            except Exception:
                metrics.increment(f"{metric}_errors")
                raise
            finally:
                duration = time.time() - start_time
                logger = logging.getLogger(func.__module__)
                logger.debug(f"{func.__name__} took {duration:.3f}s")

        return wrapper

    return decorator
