"""
HintManager：语音提示生命周期管理
面试官的每个音频块触发一次独立的生成请求，结果按 id 写入 HintBoard

单条提示的状态：
    pending -> streaming -> complete
    pending/streaming -> skipped（模型返回保留词）-> 移除
"""
import asyncio
import contextlib
import uuid
from typing import Dict, Literal, Optional, Tuple

from core.config import agent_settings
from core.exceptions import GenerationCancelled
from core.state import HintBoard
from core.types import AudioChunkEvent, Hint, InlineMedia
from services.generation import CancellationToken, GenerationClient
from logs import setup_logger, metrics

logger = setup_logger(__name__)

Verdict = Literal["show", "hold", "skip"]


class _HintStream:
    """单个提示请求的本地累计状态（即使已被挤出列表也继续累计）"""

    def __init__(self, hint_id: str):
        self.hint_id = hint_id
        self.text = ""
        self.shown = ""
        self.skipped = False


class HintManager:
    """语音提示管理器"""

    def __init__(
        self,
        client: GenerationClient,
        board: Optional[HintBoard] = None,
        skip_token: Optional[str] = None,
        prompt: Optional[str] = None
    ):
        """
        Args:
            client: 生成服务客户端
            board: 提示列表（默认新建）
            skip_token: 表示“无需提示”的保留词
            prompt: 面试官音频的提示指令
        """
        self.client = client
        self.board = board or HintBoard()
        self.skip_token = skip_token or agent_settings.HINT_SKIP_TOKEN
        self.prompt = prompt or agent_settings.HINT_PROMPT
        self.voice_active = False
        self.levels: Dict[str, float] = {"user": 0.0, "interviewer": 0.0}
        self._inflight: Dict[str, Tuple[asyncio.Task, CancellationToken]] = {}

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def set_voice_active(self, active: bool):
        """语音模式开关（由外层应用控制）"""
        self.voice_active = active
        if not active:
            self.levels = {"user": 0.0, "interviewer": 0.0}
        logger.info(f"语音模式: {'开启' if active else '关闭'}")

    def classify(self, text: str) -> Verdict:
        """
        判断累计文本的去向

        - skip: 去除空白后恰好等于保留词
        - hold: 仍可能成为保留词（空或保留词前缀），暂不展示
        - show: 其余情况
        """
        trimmed = text.strip()
        if trimmed == self.skip_token:
            return "skip"
        if not trimmed or self.skip_token.startswith(trimmed):
            return "hold"
        return "show"

    def on_audio_chunk(self, event: AudioChunkEvent) -> Optional[asyncio.Task]:
        """
        处理一个音频块事件

        Args:
            event: 音频块事件

        Returns:
            新建的提示任务；未触发生成时返回None
        """
        metrics.increment("audio_events")
        self.levels[event.speaker] = event.amplitude

        if not self.voice_active or not event.has_payload:
            return None
        if event.speaker != "interviewer":
            return None
        if not self.client.configured:
            logger.debug("未配置API密钥，忽略音频块")
            return None

        hint = Hint(id=uuid.uuid4().hex)
        for evicted in self.board.add(hint):
            logger.debug(f"提示被挤出列表: {evicted.id} ({evicted.status})")
        metrics.increment("hint_requests")

        signal = CancellationToken()
        task = asyncio.create_task(self._run(hint.id, event.payload, signal))
        self._inflight[hint.id] = (task, signal)
        task.add_done_callback(lambda _t, hint_id=hint.id: self._inflight.pop(hint_id, None))
        return task

    async def _run(self, hint_id: str, payload: str, signal: CancellationToken):
        stream = _HintStream(hint_id)

        def on_delta(delta: str):
            if stream.skipped:
                return
            stream.text += delta
            verdict = self.classify(stream.text)
            if verdict == "skip":
                stream.skipped = True
                self.board.skip(hint_id)
                metrics.increment("hints_skipped")
                logger.info(f"提示被判定为无关，已移除: {hint_id}")
            elif verdict == "show":
                stream.shown = stream.text
                self.board.publish_text(hint_id, stream.shown)
            else:
                # 只切换到 streaming，文本暂不展示
                self.board.publish_text(hint_id, stream.shown)

        media = InlineMedia(mime_type=agent_settings.AUDIO_MIME_TYPE, data=payload)
        try:
            await self.client.generate(self.prompt, media=media, on_delta=on_delta, signal=signal)
        except GenerationCancelled:
            logger.debug(f"提示请求已取消: {hint_id}")
            self.board.remove(hint_id)
            return
        except Exception as e:
            # 单条提示失败不影响其他提示
            metrics.increment("hint_errors")
            logger.error(f"提示生成失败 (hint={hint_id}): {e}")
            self.board.remove(hint_id)
            return

        if stream.skipped or not stream.text.strip():
            self.board.remove(hint_id)
            return

        if stream.shown != stream.text:
            self.board.publish_text(hint_id, stream.text)
        if self.board.complete(hint_id) is not None:
            metrics.increment("hints_completed")
            logger.info(f"提示生成完成: {hint_id}, 长度: {len(stream.text)}")

    async def close(self):
        """取消所有进行中的提示请求"""
        pending = list(self._inflight.values())
        for _task, signal in pending:
            signal.cancel()
        for task, _signal in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
