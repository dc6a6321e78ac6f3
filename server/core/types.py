"""
核心类型定义
"""
from typing import Awaitable, Callable, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


Speaker = Literal["user", "interviewer"]
HintStatus = Literal["pending", "streaming", "skipped", "complete"]

# 截图协作方：返回base64编码的图片
ScreenshotProvider = Callable[[], Awaitable[str]]


class ChatMessage(BaseModel):
    """对话消息（最后一条在流式生成期间原地更新）"""
    role: Literal["user", "model", "system"]
    content: str = ""


class Hint(BaseModel):
    """语音提示条目"""
    id: str
    text: str = ""
    status: HintStatus = "pending"


class AudioChunkEvent(BaseModel):
    """音频采集端推送的音频块事件"""
    model_config = ConfigDict(populate_by_name=True)

    speaker: Speaker
    payload: Optional[str] = Field(None, alias="data", description="base64编码的WAV，静音块为空")
    amplitude: float = Field(0, ge=0)

    @property
    def has_payload(self) -> bool:
        return bool(self.payload)


class InlineMedia(BaseModel):
    """请求体中的内联二进制媒体"""
    mime_type: str
    data: str  # base64
