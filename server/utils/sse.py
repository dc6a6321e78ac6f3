"""
SSE（Server-Sent Events）响应工具
"""
import json
from typing import Any, AsyncGenerator, Dict

from fastapi.responses import StreamingResponse

from logs import setup_logger

logger = setup_logger(__name__)


async def sse_response(generator: AsyncGenerator[Dict[str, Any], None], event: str = "snapshot"):
    """
    将异步生成器转换为SSE响应

    Args:
        generator: 异步生成器，yield可JSON序列化的字典
        event: 每条数据使用的事件名

    Returns:
        StreamingResponse对象
    """
    async def event_stream():
        try:
            async for item in generator:
                yield f"event: {event}\n"
                yield f"data: {json.dumps(item, ensure_ascii=False)}\n\n"

            # 发送完成信号
            yield "event: done\n"
            yield f"data: {json.dumps({'done': True}, ensure_ascii=False)}\n\n"
        except Exception as e:
            logger.error(f"SSE流式响应失败: {e}")
            # 发送错误信号
            yield "event: error\n"
            yield f"data: {json.dumps({'error': str(e)}, ensure_ascii=False)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # 禁用nginx缓冲
        }
    )
