"""
统一配置模块
"""
import os
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# 获取server目录的绝对路径
SERVER_DIR = Path(__file__).parent.resolve()
ENV_FILE_PATH = SERVER_DIR / ".env"


class Settings(BaseSettings):
    """应用配置"""

    # 应用基础配置
    APP_NAME: str = "Interview Copilot"
    APP_VERSION: str = "1.0.0"

    # 服务器配置
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # WebSocket配置
    WS_MAX_CONNECTIONS: int = 8

    # 本地设置存储（api_key、selected_model 等键值）
    SETTINGS_STORE_PATH: str = os.getenv("SETTINGS_STORE_PATH", str(SERVER_DIR / "settings.json"))

    # 日志配置
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or text

    # Pydantic V2 配置
    model_config = ConfigDict(
        env_file=str(ENV_FILE_PATH),  # 使用绝对路径，确保能找到.env文件
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# 全局配置实例
settings = Settings()
