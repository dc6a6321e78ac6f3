"""
展示适配层
把 HintBoard / Transcript 的变化转换为只读投影推送给视图（只推送，不含业务逻辑）
"""
import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.state import HintBoard, Transcript
from logs import setup_logger

logger = setup_logger(__name__)

Sink = Callable[[Dict[str, Any]], Awaitable[None]]


class Presenter:
    """
    视图推送器
    快照在状态变更时同步生成；同类快照在发送前只保留最新一份，
    按最近一次变更的顺序发送，慢速视图不会积压过期快照
    """

    def __init__(self, sink: Sink):
        self._sink = sink
        # 待发送快照，按类型合并
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._ready = asyncio.Event()
        self._unsubscribe: List[Callable[[], None]] = []
        self._pump: Optional[asyncio.Task] = None

    def attach(
        self,
        board: HintBoard,
        transcript: Transcript,
        busy: Callable[[], bool] = lambda: False
    ):
        """订阅状态变化，并立即推送一次当前快照"""
        def push_hints():
            self.push({"type": "hints", "items": board.snapshot()})

        def push_transcript():
            self.push({"type": "transcript", "messages": transcript.snapshot(), "busy": busy()})

        self._unsubscribe.append(board.subscribe(push_hints))
        self._unsubscribe.append(transcript.subscribe(push_transcript))
        push_hints()
        push_transcript()

    def push_levels(self, levels: Dict[str, float], voice_active: bool):
        self.push({"type": "levels", "levels": dict(levels), "voice_active": voice_active})

    def push(self, payload: Dict[str, Any]):
        kind = payload["type"]
        self._pending.pop(kind, None)
        self._pending[kind] = payload
        self._ready.set()

    def start(self):
        if self._pump is None:
            self._pump = asyncio.create_task(self._run())

    async def _run(self):
        while True:
            await self._ready.wait()
            self._ready.clear()
            while self._pending:
                payload = self._pending.pop(next(iter(self._pending)))
                try:
                    await self._sink(payload)
                except Exception as e:
                    logger.warning(f"推送视图消息失败: {e}")

    async def close(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if self._pump:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
            self._pump = None
