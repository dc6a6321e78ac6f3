"""
Copilot：组装生成客户端、提示管理器与对话会话
"""
from typing import Optional

from agents.chat_session import ChatSession
from agents.hint_manager import HintManager
from services.generation import GenerationClient
from storage.settings_store import SettingsStore
from logs import setup_logger

logger = setup_logger(__name__)


class Copilot:
    """应用级单例：语音提示与对话共享同一个生成客户端，但各自独立失败"""

    def __init__(self, client: Optional[GenerationClient] = None, store: Optional[SettingsStore] = None):
        self.store = store
        if client is None:
            # 本地设置优先于环境变量
            client = GenerationClient(
                api_key=store.get("api_key") if store else None,
                model=store.get("selected_model") if store else None,
            )
        self.client = client
        self.hints = HintManager(client)
        self.chat = ChatSession(client)

    def update_settings(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """更新凭证/模型并持久化"""
        self.client.configure(api_key=api_key, model=model)
        if self.store is None:
            return
        if api_key is not None:
            self.store.set("api_key", api_key)
        if model:
            self.store.set("selected_model", self.client.model)
        self.store.save()

    async def close(self):
        await self.chat.close()
        await self.hints.close()
        logger.info("Copilot已关闭")
