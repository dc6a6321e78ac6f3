"""
生成请求服务
封装对远端生成接口的一次调用：请求体构造、鉴权头、流式解码与取消
"""
import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from core.config import agent_settings
from core.exceptions import (
    GenerationCancelled,
    GenerationError,
    GenerationHTTPError,
    GenerationTransportError,
)
from core.types import InlineMedia
from logs import setup_logger, log_metric
from services.stream_decoder import decode_stream, extract_text

logger = setup_logger(__name__)

DeltaCallback = Callable[[str], Union[None, Awaitable[None]]]


class CancellationToken:
    """
    协作式取消信号
    由调用方持有并触发；请求在每次等待I/O时检查
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise GenerationCancelled()

    async def guard(self, awaitable: Awaitable[Any]) -> Any:
        """
        等待 awaitable，同时监听取消信号

        Raises:
            GenerationCancelled: 在 awaitable 完成前被取消
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise GenerationCancelled()


def build_request_body(prompt: str, media: Optional[InlineMedia] = None) -> Dict[str, Any]:
    """
    构造请求体：{contents: [{parts: [{text}, {inlineData: {mimeType, data}}?]}]}

    Args:
        prompt: 文本指令
        media: 可选的内联媒体（音频/截图）

    Returns:
        JSON可序列化的请求体
    """
    parts: List[Dict[str, Any]] = [{"text": prompt}]
    if media is not None:
        parts.append({"inlineData": {"mimeType": media.mime_type, "data": media.data}})
    return {"contents": [{"parts": parts}]}


class GenerationRequest:
    """
    一次生成调用
    - 成功时返回累计文本（没有提取到任何文本时为空串）
    - 失败分为：传输失败、非2xx状态、取消（GenerationCancelled，单独类型）
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, streaming: bool = True):
        self._session = session
        self.streaming = streaming
        self.accumulated = ""

    async def start(
        self,
        url: str,
        body: Dict[str, Any],
        credential: str,
        on_delta: Optional[DeltaCallback] = None,
        signal: Optional[CancellationToken] = None
    ) -> str:
        """
        发起请求并消费响应

        Args:
            url: 生成接口地址
            body: 请求体（见 build_request_body）
            credential: API密钥，通过 x-goog-api-key 头传递
            on_delta: 增量文本回调（支持协程函数）
            signal: 外部取消信号

        Returns:
            累计文本
        """
        signal = signal or CancellationToken()
        signal.raise_if_cancelled()
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": credential,
        }

        try:
            if self._session is not None:
                return await self._run(self._session, url, headers, body, on_delta, signal)
            async with aiohttp.ClientSession() as session:
                return await self._run(session, url, headers, body, on_delta, signal)
        except GenerationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if signal.cancelled:
                raise GenerationCancelled() from e
            raise GenerationTransportError(f"transport failure: {e}", cause=e) from e
        except ValueError as e:
            raise GenerationError(f"malformed response: {e}", cause=e) from e

    async def _run(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        on_delta: Optional[DeltaCallback],
        signal: CancellationToken
    ) -> str:
        async def connect() -> aiohttp.ClientResponse:
            return await session.post(url, headers=headers, json=body)

        resp = await signal.guard(connect())
        async with resp:
            if not 200 <= resp.status < 300:
                error_text = await signal.guard(resp.text())
                logger.error(f"生成接口错误: {resp.status} - {error_text[:200]}")
                raise GenerationHTTPError(resp.status, error_text)

            if not self.streaming:
                # 非流式：整段文本作为单个增量
                payload = await signal.guard(resp.json(content_type=None))
                text = extract_text(payload)
                if text:
                    await self._deliver(text, on_delta, signal)
                return self.accumulated

            async def chunks():
                while True:
                    chunk = await signal.guard(resp.content.readany())
                    if not chunk:
                        return
                    yield chunk

            async with contextlib.aclosing(decode_stream(chunks())) as deltas:
                async for delta in deltas:
                    await self._deliver(delta, on_delta, signal)

        return self.accumulated

    async def _deliver(self, delta: str, on_delta: Optional[DeltaCallback], signal: CancellationToken):
        # 取消后不再回调
        signal.raise_if_cancelled()
        self.accumulated += delta
        if on_delta is None:
            return
        result = on_delta(delta)
        if inspect.isawaitable(result):
            await result


class GenerationClient:
    """
    生成服务客户端
    持有凭证、模型与地址，为每次调用创建新的 GenerationRequest
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        streaming: Optional[bool] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.api_key = agent_settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = _normalize_model(model or agent_settings.GEMINI_MODEL)
        self.base_url = (base_url or agent_settings.GEMINI_BASE_URL).rstrip("/")
        self.streaming = agent_settings.GEMINI_STREAMING if streaming is None else streaming
        self.session = session

        if not self.api_key:
            logger.warning("GEMINI_API_KEY未设置，生成功能将不可用")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def configure(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """更新凭证或模型（只影响之后发起的请求）"""
        if api_key is not None:
            self.api_key = api_key
        if model:
            self.model = _normalize_model(model)

    def stream_url(self, model: Optional[str] = None) -> str:
        return f"{self.base_url}/{_normalize_model(model or self.model)}:streamGenerateContent?alt=sse"

    def generate_url(self, model: Optional[str] = None) -> str:
        return f"{self.base_url}/{_normalize_model(model or self.model)}:generateContent"

    def new_request(self) -> GenerationRequest:
        return GenerationRequest(self.session, streaming=self.streaming)

    async def generate(
        self,
        prompt: str,
        media: Optional[InlineMedia] = None,
        on_delta: Optional[DeltaCallback] = None,
        signal: Optional[CancellationToken] = None
    ) -> str:
        """
        生成文本

        Args:
            prompt: 文本指令
            media: 可选内联媒体
            on_delta: 增量回调
            signal: 取消信号

        Returns:
            累计文本
        """
        request = self.new_request()
        url = self.stream_url() if request.streaming else self.generate_url()
        return await request.start(url, build_request_body(prompt, media), self.api_key, on_delta, signal)

    @log_metric("model_list_requests")
    async def list_models(self) -> List[Dict[str, Any]]:
        """
        列出支持 generateContent 的模型

        Returns:
            模型描述列表
        """
        headers = {"x-goog-api-key": self.api_key}
        models: List[Dict[str, Any]] = []
        params: Dict[str, str] = {}

        async with contextlib.AsyncExitStack() as stack:
            session = self.session
            if session is None:
                session = await stack.enter_async_context(aiohttp.ClientSession())
            try:
                while True:
                    async with session.get(f"{self.base_url}/models", headers=headers, params=params) as resp:
                        if not 200 <= resp.status < 300:
                            raise GenerationHTTPError(resp.status, await resp.text())
                        data = await resp.json(content_type=None)
                    for model in data.get("models", []):
                        if "generateContent" in model.get("supportedGenerationMethods", []):
                            models.append(model)
                    token = data.get("nextPageToken")
                    if not token:
                        break
                    params = {"pageToken": token}
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise GenerationTransportError(f"transport failure: {e}", cause=e) from e

        return models


def _normalize_model(model: str) -> str:
    return model if model.startswith("models/") else f"models/{model}"
