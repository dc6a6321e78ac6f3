"""
API路由模块
"""
import asyncio
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, HTTPException, Request

from core.exceptions import GenerationError
from services.copilot import Copilot
from utils.schemas import (
    AcceptedResponse, CancelResponse,
    ChatRequest, ChatStateResponse, ScreenshotRequest,
    HintsResponse, VoiceModeRequest,
    ModelsResponse, SettingsRequest, SettingsResponse,
)
from utils.sse import sse_response
from logs import setup_logger

logger = setup_logger(__name__)

# 创建路由器
router = APIRouter()


def _copilot(request: Request) -> Copilot:
    return request.app.state.copilot


def _ensure_ready(copilot: Copilot):
    if not copilot.client.configured:
        raise HTTPException(status_code=503, detail="API key is not configured")
    if copilot.chat.busy:
        raise HTTPException(status_code=409, detail="a chat request is already in progress")


# =====================================================
# 对话
# =====================================================

@router.post("/chat", status_code=202, response_model=AcceptedResponse)
async def send_chat(body: ChatRequest, request: Request):
    """发送文字消息（回答通过 /chat/stream 或 WebSocket 推送）"""
    copilot = _copilot(request)
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text must not be empty")
    _ensure_ready(copilot)

    if copilot.chat.send_message(body.text) is None:
        raise HTTPException(status_code=409, detail="chat request rejected")
    return AcceptedResponse()


@router.post("/chat/screenshot", status_code=202, response_model=AcceptedResponse)
async def analyze_screenshot(body: ScreenshotRequest, request: Request):
    """截图分析"""
    copilot = _copilot(request)
    _ensure_ready(copilot)

    async def capture() -> str:
        return body.image

    task = copilot.chat.analyze_screenshot(capture, prompt=body.prompt, mime_type=body.mime_type)
    if task is None:
        raise HTTPException(status_code=409, detail="chat request rejected")
    return AcceptedResponse()


@router.post("/chat/cancel", response_model=CancelResponse)
async def cancel_chat(request: Request):
    """取消进行中的对话请求"""
    return CancelResponse(cancelled=_copilot(request).chat.cancel())


@router.get("/chat/messages", response_model=ChatStateResponse)
async def get_messages(request: Request):
    chat = _copilot(request).chat
    return ChatStateResponse(messages=chat.transcript.messages, busy=chat.busy)


@router.delete("/chat/messages", response_model=ChatStateResponse)
async def clear_messages(request: Request):
    chat = _copilot(request).chat
    if not chat.clear():
        raise HTTPException(status_code=409, detail="cannot clear while a chat request is in progress")
    return ChatStateResponse(messages=[], busy=False)


@router.get("/chat/stream")
async def stream_chat(request: Request):
    """以SSE推送对话记录快照，直到当前请求结束"""
    chat = _copilot(request).chat

    async def snapshots() -> AsyncGenerator[Dict[str, Any], None]:
        # 只记录"有变化"，每次发送时取当前快照，慢速客户端不会积压
        changed = asyncio.Event()
        unsubscribe = chat.transcript.subscribe(changed.set)
        try:
            yield {"messages": chat.transcript.snapshot(), "busy": chat.busy}
            while chat.busy:
                try:
                    await asyncio.wait_for(changed.wait(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
                changed.clear()
                yield {"messages": chat.transcript.snapshot(), "busy": chat.busy}
            if changed.is_set():
                yield {"messages": chat.transcript.snapshot(), "busy": False}
        finally:
            unsubscribe()

    return await sse_response(snapshots())


# =====================================================
# 语音提示
# =====================================================

@router.get("/hints", response_model=HintsResponse)
async def get_hints(request: Request):
    hints = _copilot(request).hints
    return HintsResponse(items=hints.board.snapshot(), voice_active=hints.voice_active, levels=hints.levels)


@router.post("/voice", response_model=HintsResponse)
async def set_voice_mode(body: VoiceModeRequest, request: Request):
    """语音模式开关"""
    hints = _copilot(request).hints
    hints.set_voice_active(body.active)
    return HintsResponse(items=hints.board.snapshot(), voice_active=hints.voice_active, levels=hints.levels)


# =====================================================
# 设置与模型
# =====================================================

@router.get("/settings", response_model=SettingsResponse)
async def get_settings(request: Request):
    client = _copilot(request).client
    return SettingsResponse(configured=client.configured, model=client.model, streaming=client.streaming)


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(body: SettingsRequest, request: Request):
    """更新API密钥/模型并保存到本地设置"""
    copilot = _copilot(request)
    try:
        copilot.update_settings(api_key=body.api_key, model=body.model)
    except OSError as e:
        logger.error(f"保存设置失败: {e}")
        raise HTTPException(status_code=500, detail=f"failed to save settings: {e}")
    client = copilot.client
    return SettingsResponse(configured=client.configured, model=client.model, streaming=client.streaming)


@router.get("/models", response_model=ModelsResponse)
async def list_models(request: Request):
    """列出支持 generateContent 的模型"""
    client = _copilot(request).client
    if not client.configured:
        raise HTTPException(status_code=503, detail="API key is not configured")
    try:
        models = await client.list_models()
    except GenerationError as e:
        logger.error(f"获取模型列表失败: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    return ModelsResponse(models=models)
