"""
扩展配置模块（生成服务、提示与会话相关）
"""
import os
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# 获取server目录的绝对路径
SERVER_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE_PATH = SERVER_DIR / ".env"


DEFAULT_HINT_PROMPT = (
    "This is the interviewer speaking. Briefly restate the question and give "
    "3 short talking points for the answer. If the audio contains no genuine "
    "question or request (small talk, noise, filler), reply with exactly SKIP "
    "and nothing else."
)

DEFAULT_SCREENSHOT_PROMPT = (
    "Analyze this screenshot. If you see a task, code, a question or a problem, "
    "help solve it, explain it or give recommendations."
)


class AgentSettings(BaseSettings):
    """生成服务配置"""

    # 远端生成服务配置
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_BASE_URL: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "models/gemini-1.5-flash")
    GEMINI_STREAMING: bool = os.getenv("GEMINI_STREAMING", "true").lower() == "true"  # false 时退化为一次性返回

    # 提示列表配置
    HINT_MAX_ITEMS: int = int(os.getenv("HINT_MAX_ITEMS", "10"))  # 展示的最近N条提示
    HINT_SKIP_TOKEN: str = os.getenv("HINT_SKIP_TOKEN", "SKIP")  # 模型判定“无需提示”时返回的保留词
    HINT_PROMPT: str = os.getenv("HINT_PROMPT", DEFAULT_HINT_PROMPT)
    AUDIO_MIME_TYPE: str = "audio/wav"

    # 截图分析配置
    SCREENSHOT_PROMPT: str = os.getenv("SCREENSHOT_PROMPT", DEFAULT_SCREENSHOT_PROMPT)
    SCREENSHOT_MIME_TYPE: str = "image/png"

    # Pydantic V2 配置
    model_config = ConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# 全局Agent配置实例
agent_settings = AgentSettings()
