"""
WebSocket 工具函数
"""
import json
from typing import Any, Dict

from logs import setup_logger

logger = setup_logger(__name__)


async def send_json(ws, payload: Dict[str, Any]):
    """
    发送JSON消息到WebSocket客户端

    Args:
        ws: WebSocket连接对象
        payload: 要发送的字典数据
    """
    try:
        await ws.send_text(json.dumps(payload, ensure_ascii=False))
    except Exception as e:
        logger.warning(f"[WS SEND ERROR] {e}")
