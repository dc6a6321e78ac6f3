"""
测试公共夹具
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from services.generation import CancellationToken

_END = object()
HOLD = object()


def sse_event(text: str) -> bytes:
    """构造一条 data: <json> 事件"""
    payload = {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\r\n\r\n".encode("utf-8")


class ScriptedCall:
    """一次假生成调用，由测试逐个推送增量"""

    def __init__(self, prompt: str, media):
        self.prompt = prompt
        self.media = media
        self._items: asyncio.Queue = asyncio.Queue()

    async def emit(self, *deltas: str):
        for delta in deltas:
            await self._push(delta)

    async def finish(self):
        await self._push(_END)

    async def fail(self, error: Exception):
        await self._push(error)

    def push_nowait(self, delta: str):
        self._items.put_nowait((delta, None))

    async def _push(self, item):
        ack = asyncio.get_running_loop().create_future()
        self._items.put_nowait((item, ack))
        await asyncio.wait_for(ack, timeout=2)


class ScriptedClient:
    """替代 GenerationClient：按测试脚本回放增量，并遵守取消信号"""

    def __init__(self, api_key: str = "test-key"):
        self.api_key = api_key
        self.model = "models/test"
        self.streaming = True
        self.calls: asyncio.Queue = asyncio.Queue()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def configure(self, api_key: Optional[str] = None, model: Optional[str] = None):
        if api_key is not None:
            self.api_key = api_key
        if model:
            self.model = model

    async def next_call(self) -> ScriptedCall:
        return await asyncio.wait_for(self.calls.get(), timeout=2)

    async def generate(self, prompt, media=None, on_delta=None, signal=None) -> str:
        signal = signal or CancellationToken()
        call = ScriptedCall(prompt, media)
        self.calls.put_nowait(call)
        text = ""
        while True:
            item, ack = await signal.guard(call._items.get())
            try:
                if item is _END:
                    return text
                if isinstance(item, Exception):
                    raise item
                signal.raise_if_cancelled()
                text += item
                if on_delta:
                    on_delta(item)
            finally:
                if ack is not None and not ack.done():
                    ack.set_result(None)


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient()


class FakeGemini:
    """本地模拟的生成接口"""

    def __init__(self):
        self.chunks: List[Any] = []
        self.status = 200
        self.error_body = ""
        self.full_response: Dict[str, Any] = {}
        self.model_pages: List[Dict[str, Any]] = []
        self.requests: List[Dict[str, Any]] = []
        self.release = asyncio.Event()
        self.base_url = ""

        self.app = web.Application()
        self.app.router.add_post("/models/{action}", self.handle_generate)
        self.app.router.add_get("/models", self.handle_models)

    async def handle_generate(self, request: web.Request) -> web.StreamResponse:
        self.requests.append({
            "action": request.match_info["action"],
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": await request.read(),
        })
        if self.status != 200:
            return web.Response(status=self.status, text=self.error_body)

        if request.match_info["action"].endswith(":generateContent"):
            return web.json_response(self.full_response)

        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        for chunk in self.chunks:
            if chunk is HOLD:
                await self.release.wait()
                continue
            await resp.write(chunk)
        await resp.write_eof()
        return resp

    async def handle_models(self, request: web.Request) -> web.Response:
        self.requests.append({"action": "models", "query": dict(request.query), "headers": dict(request.headers)})
        index = int(request.query.get("pageToken", "0") or 0)
        return web.json_response(self.model_pages[index])


@pytest.fixture
async def gemini():
    fake = FakeGemini()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    try:
        yield fake
    finally:
        fake.release.set()
        await server.close()
