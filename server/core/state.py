"""
可观察的会话状态：提示列表（HintBoard）与对话记录（Transcript）
两者都只能通过自身的更新方法修改，每次修改后通知监听者
"""
from typing import Any, Callable, Dict, List, Optional

from core.config import agent_settings
from core.types import ChatMessage, Hint
from logs import setup_logger

logger = setup_logger(__name__)

Listener = Callable[[], None]


class _Observable:
    """简单的同步监听者列表"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册监听者，返回取消订阅函数"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"状态监听者执行失败: {e}", exc_info=True)


class HintBoard(_Observable):
    """
    提示列表
    - 最新的在最前，只在头部插入、尾部淘汰
    - 最多保留 max_items 条
    - 所有更新按 id 定位；id 不存在（已淘汰/已移除）时更新为空操作
    - 被挤出的已完成提示暂存起来，较新的条目被跳过/移除后按新旧顺序补回尾部
    """

    def __init__(self, max_items: Optional[int] = None):
        super().__init__()
        self.max_items = max_items or agent_settings.HINT_MAX_ITEMS
        self._items: List[Hint] = []
        # 被挤出的已完成提示，最后一个最新
        self._evicted: List[Hint] = []

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, hint_id: str) -> bool:
        return self.get(hint_id) is not None

    def get(self, hint_id: str) -> Optional[Hint]:
        for hint in self._items:
            if hint.id == hint_id:
                return hint
        return None

    def add(self, hint: Hint) -> List[Hint]:
        """
        在头部插入新提示

        Returns:
            被挤出列表的旧提示
        """
        if hint.id in self:
            raise ValueError(f"duplicate hint id: {hint.id}")
        self._items.insert(0, hint)
        evicted = self._items[self.max_items:]
        del self._items[self.max_items:]
        # 被挤出的总比暂存区里的新
        for old in reversed(evicted):
            if old.status == "complete":
                self._evicted.append(old)
        del self._evicted[:-self.max_items]
        self._notify()
        return evicted

    def publish_text(self, hint_id: str, text: str) -> Optional[Hint]:
        """写入累计文本并切换到 streaming（文本只增不减）"""
        hint = self.get(hint_id)
        if hint is None or hint.status not in ("pending", "streaming"):
            return None
        if len(text) < len(hint.text):
            logger.warning(f"忽略变短的提示文本 (hint={hint_id})")
            return hint
        if hint.text == text and hint.status == "streaming":
            return hint
        hint.text = text
        hint.status = "streaming"
        self._notify()
        return hint

    def complete(self, hint_id: str) -> Optional[Hint]:
        hint = self.get(hint_id)
        if hint is None:
            return None
        hint.status = "complete"
        self._notify()
        return hint

    def skip(self, hint_id: str) -> Optional[Hint]:
        """标记为 skipped：清空文本并立即移除"""
        hint = self._pop(hint_id)
        if hint is None:
            return None
        hint.status = "skipped"
        hint.text = ""
        self._notify()
        return hint

    def remove(self, hint_id: str) -> Optional[Hint]:
        hint = self._pop(hint_id)
        if hint is not None:
            self._notify()
        return hint

    def _pop(self, hint_id: str) -> Optional[Hint]:
        for index, hint in enumerate(self._items):
            if hint.id == hint_id:
                removed = self._items.pop(index)
                self._restore()
                return removed
        return None

    def _restore(self):
        """空出位置时补回最近被挤出的已完成提示"""
        while self._evicted and len(self._items) < self.max_items:
            self._items.append(self._evicted.pop())

    def snapshot(self) -> List[Dict[str, Any]]:
        """只读投影（最新在前）"""
        return [hint.model_dump() for hint in self._items]


class Transcript(_Observable):
    """
    对话记录
    只允许追加；唯一例外是当前正在生成的模型消息（open entry），
    生成结束后调用 close() 封存，之后不可再修改
    """

    def __init__(self):
        super().__init__()
        self._messages: List[ChatMessage] = []
        self._open: Optional[ChatMessage] = None

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def append(self, role: str, content: str) -> ChatMessage:
        self.close()
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        self._notify()
        return message

    def open_model_entry(self) -> ChatMessage:
        """追加一条空的模型消息，并允许后续增量写入"""
        message = self.append("model", "")
        self._open = message
        return message

    def append_delta(self, entry: ChatMessage, delta: str) -> bool:
        """向仍处于打开状态的模型消息追加增量文本"""
        if entry is not self._open or not delta:
            return False
        entry.content += delta
        self._notify()
        return True

    def close(self):
        """封存当前打开的消息"""
        self._open = None

    def clear(self):
        self._messages.clear()
        self._open = None
        self._notify()

    def snapshot(self) -> List[Dict[str, Any]]:
        return [message.model_dump() for message in self._messages]
