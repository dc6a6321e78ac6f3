"""
Pydantic模型定义（HTTP请求/响应）
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from core.types import ChatMessage, Hint


# =====================================================
# 对话模型
# =====================================================

class ChatRequest(BaseModel):
    """文字对话请求"""
    text: str = Field(..., description="用户输入")


class ScreenshotRequest(BaseModel):
    """截图分析请求（截图由桌面端采集后上传）"""
    image: str = Field(..., description="base64编码的图片")
    mime_type: Optional[str] = Field(None, description="图片类型，默认 image/png")
    prompt: Optional[str] = Field(None, description="自定义分析指令")


class ChatStateResponse(BaseModel):
    """对话记录快照"""
    messages: List[ChatMessage]
    busy: bool


class AcceptedResponse(BaseModel):
    """异步任务已受理"""
    accepted: bool = True


class CancelResponse(BaseModel):
    cancelled: bool


# =====================================================
# 语音提示模型
# =====================================================

class VoiceModeRequest(BaseModel):
    """语音模式开关"""
    active: bool


class HintsResponse(BaseModel):
    """提示列表快照（最新在前）"""
    items: List[Hint]
    voice_active: bool
    levels: Dict[str, float]


# =====================================================
# 设置与模型
# =====================================================

class SettingsRequest(BaseModel):
    """更新凭证/模型"""
    api_key: Optional[str] = Field(None, description="API密钥")
    model: Optional[str] = Field(None, description="模型名，如 models/gemini-1.5-flash")


class SettingsResponse(BaseModel):
    configured: bool
    model: str
    streaming: bool


class ModelsResponse(BaseModel):
    models: List[Dict[str, Any]]
