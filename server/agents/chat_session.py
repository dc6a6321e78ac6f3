"""
ChatSession：文字对话与截图分析
同一时间只允许一个生成请求（single-flight），支持用户主动取消
"""
import asyncio
from typing import Optional

from core.config import agent_settings
from core.exceptions import GenerationCancelled, ScreenshotError
from core.state import Transcript
from core.types import ChatMessage, InlineMedia, ScreenshotProvider
from services.generation import CancellationToken, GenerationClient
from logs import setup_logger, metrics

logger = setup_logger(__name__)

SCREENSHOT_ENTRY = "[Screenshot captured]"


class ChatSession:
    """对话会话，独占 Transcript"""

    def __init__(self, client: GenerationClient, transcript: Optional[Transcript] = None):
        self.client = client
        self.transcript = transcript or Transcript()
        self._signal: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._signal is not None

    def send_message(self, text: str) -> Optional[asyncio.Task]:
        """
        发送文字消息

        Args:
            text: 用户输入

        Returns:
            生成任务；忙碌、未配置密钥或输入为空时返回None
        """
        if not text or not text.strip():
            return None
        signal = self._acquire()
        if signal is None:
            return None
        return self._spawn(self._converse(signal, text, text, None))

    def analyze_screenshot(
        self,
        capture: ScreenshotProvider,
        prompt: Optional[str] = None,
        mime_type: Optional[str] = None
    ) -> Optional[asyncio.Task]:
        """
        截图并分析

        Args:
            capture: 截图协作方，返回base64图片
            prompt: 分析指令（默认取配置）
            mime_type: 图片类型（默认 image/png）

        Returns:
            生成任务；忙碌或未配置密钥时返回None
        """
        signal = self._acquire()
        if signal is None:
            return None
        return self._spawn(self._analyze(
            signal,
            capture,
            prompt or agent_settings.SCREENSHOT_PROMPT,
            mime_type or agent_settings.SCREENSHOT_MIME_TYPE,
        ))

    def cancel(self) -> bool:
        """
        取消当前请求：保留已生成的部分文本，不追加错误消息，立即回到空闲
        """
        signal = self._signal
        if signal is None:
            return False
        signal.cancel()
        self._release(signal)
        metrics.increment("chat_cancelled")
        logger.info("对话请求已被用户取消")
        return True

    async def close(self):
        """取消并等待进行中的请求结束"""
        self.cancel()
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task}, timeout=5)

    def clear(self) -> bool:
        """清空对话记录（仅空闲时）"""
        if self.busy:
            return False
        self.transcript.clear()
        return True

    def _acquire(self) -> Optional[CancellationToken]:
        if self.busy:
            logger.debug("已有进行中的对话请求，忽略新请求")
            return None
        if not self.client.configured:
            logger.warning("未配置API密钥，忽略对话请求")
            return None
        self._signal = CancellationToken()
        return self._signal

    def _release(self, signal: CancellationToken):
        if self._signal is signal:
            self._signal = None
            self.transcript.close()

    def _spawn(self, coro) -> asyncio.Task:
        self._task = asyncio.create_task(coro)
        return self._task

    async def _analyze(self, signal: CancellationToken, capture: ScreenshotProvider, prompt: str, mime_type: str):
        try:
            image = await signal.guard(capture())
            if not image:
                raise ScreenshotError("screenshot provider returned no image")
        except GenerationCancelled:
            return
        except Exception as e:
            logger.error(f"截图失败: {e}")
            metrics.increment("chat_errors")
            if self._signal is signal:
                self.transcript.append("model", f"Error: screenshot capture failed: {e}")
            self._release(signal)
            return

        media = InlineMedia(mime_type=mime_type, data=image)
        await self._converse(signal, SCREENSHOT_ENTRY, prompt, media)

    async def _converse(
        self,
        signal: CancellationToken,
        entry: str,
        prompt: str,
        media: Optional[InlineMedia]
    ):
        if signal.cancelled:
            return
        metrics.increment("chat_requests")
        self.transcript.append("user", entry)
        reply: ChatMessage = self.transcript.open_model_entry()

        def on_delta(delta: str):
            if not signal.cancelled:
                self.transcript.append_delta(reply, delta)

        try:
            answer = await self.client.generate(prompt, media=media, on_delta=on_delta, signal=signal)
            logger.info(f"对话回答完成，长度: {len(answer)}")
        except GenerationCancelled:
            logger.debug("对话生成已取消，保留部分文本")
        except Exception as e:
            metrics.increment("chat_errors")
            logger.error(f"对话生成失败: {e}")
            if self._signal is signal:
                self.transcript.append("model", f"Error: {e}")
        finally:
            self._release(signal)
