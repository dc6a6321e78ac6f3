"""
WebSocket语音网关
/ws/voice：接收音频采集端的音频块事件，推送提示列表/对话记录/音量快照
"""
import contextlib
import json

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from config import settings
from core.types import AudioChunkEvent
from gateway.presenter import Presenter
from services.copilot import Copilot
from utils.websocket_tools import send_json
from logs import setup_logger, metrics

logger = setup_logger(__name__)

# 当前活跃的语音连接数
_active_connections = 0


async def handle_voice_websocket(ws: WebSocket, copilot: Copilot):
    """
    处理语音WebSocket连接

    客户端消息：
        {"type": "audio-chunk", "speaker": "interviewer", "data": "<base64 wav>", "amplitude": 450}
        {"type": "voice", "active": true}
        {"type": "stop"}

    Args:
        ws: WebSocket连接
        copilot: 应用实例
    """
    global _active_connections
    if _active_connections >= settings.WS_MAX_CONNECTIONS:
        logger.warning(f"语音连接数已达上限 ({settings.WS_MAX_CONNECTIONS})，拒绝新连接")
        metrics.increment("ws_rejected")
        await ws.close(code=1013)
        return

    _active_connections += 1
    try:
        await _serve(ws, copilot)
    finally:
        _active_connections -= 1


async def _serve(ws: WebSocket, copilot: Copilot):
    await ws.accept()
    await send_json(ws, {"type": "info", "text": "connected"})

    hints = copilot.hints
    presenter = Presenter(lambda payload: send_json(ws, payload))
    presenter.start()
    presenter.attach(hints.board, copilot.chat.transcript, lambda: copilot.chat.busy)
    presenter.push_levels(hints.levels, hints.voice_active)
    metrics.increment("ws_connections")

    try:
        while True:
            msg = await ws.receive()
            if msg.get("type") == "websocket.disconnect":
                logger.info("WebSocket断开")
                break

            text = msg.get("text")
            if not text:
                continue

            try:
                data = json.loads(text)
                msg_type = data.get("type")

                if msg_type == "audio-chunk":
                    event = AudioChunkEvent.model_validate(data)
                    hints.on_audio_chunk(event)
                    presenter.push_levels(hints.levels, hints.voice_active)

                elif msg_type == "voice":
                    hints.set_voice_active(bool(data.get("active")))
                    presenter.push_levels(hints.levels, hints.voice_active)

                elif msg_type == "stop":
                    break

                else:
                    await send_json(ws, {"type": "error", "text": f"unknown message type: {msg_type}"})

            except json.JSONDecodeError as e:
                logger.error(f"JSON解析错误: {e}")
                await send_json(ws, {"type": "error", "text": "invalid JSON"})
            except ValidationError as e:
                logger.warning(f"无效的音频块事件: {e}")
                await send_json(ws, {"type": "error", "text": "invalid audio-chunk event"})

    except WebSocketDisconnect:
        logger.info("WebSocket断开")
    except Exception as e:
        logger.error(f"WebSocket处理错误: {e}", exc_info=True)

    finally:
        await presenter.close()
        metrics.increment("ws_disconnections")
        with contextlib.suppress(Exception):
            await ws.close()
        logger.info("[WS] voice closed")
