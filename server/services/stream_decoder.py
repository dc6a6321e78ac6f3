"""
流式响应解码器
把分块传输的 SSE 文本协议（data: <json> 行）解码为按序的增量文本
"""
import codecs
import json
from typing import Any, AsyncGenerator, AsyncIterable, Callable, List, Optional

from logs import setup_logger, metrics

logger = setup_logger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
# 其他SSE字段行，不携带增量文本
IGNORED_FIELDS = ("event:", "id:", "retry:")


def extract_text(payload: Any) -> str:
    """
    从响应JSON中取出增量文本：candidates[0].content.parts[0].text

    Args:
        payload: 已解析的JSON对象

    Returns:
        文本（不存在时返回空串）
    """
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts or not isinstance(parts[0], dict):
        return ""
    text = parts[0].get("text")
    return text if isinstance(text, str) else ""


class StreamDecoder:
    """
    增量解码器
    - 使用增量UTF-8解码器，块边界切开的多字节字符会保留到下一块
    - 按换行切分，最后一个不完整的行留在缓冲区
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """输入一个原始字节块，返回其中完整行解析出的增量文本"""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def finish(self) -> List[str]:
        """输入结束：冲刷解码器并处理最后一个未以换行结尾的行"""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return self._parse_lines(rest.split("\n"))

    def _parse_lines(self, lines: List[str]) -> List[str]:
        deltas = []
        for line in lines:
            text = self._parse_line(line)
            if text:
                deltas.append(text)
        return deltas

    @staticmethod
    def _parse_line(line: str) -> str:
        line = line.strip()
        if not line or line.startswith(":") or line.startswith(IGNORED_FIELDS):
            return ""

        if line.startswith(DATA_PREFIX):
            line = line[len(DATA_PREFIX):].lstrip()
        if not line or line == DONE_SENTINEL:
            return ""

        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            # 单个损坏事件不能中断整个流
            metrics.increment("stream_parse_errors")
            logger.warning(f"解析流式响应失败: {e} (line={line[:80]!r})")
            return ""
        return extract_text(payload)


async def decode_stream(
    source: AsyncIterable[bytes],
    on_delta: Optional[Callable[[str], None]] = None
) -> AsyncGenerator[str, None]:
    """
    解码字节流

    Args:
        source: 异步字节块来源（耗尽即结束）
        on_delta: 每个增量文本的回调（可选）

    Yields:
        增量文本（保持来源顺序）
    """
    decoder = StreamDecoder()
    async for chunk in source:
        for delta in decoder.feed(chunk):
            if on_delta:
                on_delta(delta)
            yield delta
    for delta in decoder.finish():
        if on_delta:
            on_delta(delta)
        yield delta
