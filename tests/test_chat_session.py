import asyncio

import pytest

from agents.chat_session import SCREENSHOT_ENTRY, ChatSession
from core.exceptions import GenerationHTTPError


@pytest.fixture
def session(scripted_client):
    return ChatSession(scripted_client)


def contents(session):
    return [(m.role, m.content) for m in session.transcript.messages]


async def test_text_message_streams_into_model_entry(session, scripted_client):
    task = session.send_message("explain consistent hashing")
    call = await scripted_client.next_call()

    assert call.prompt == "explain consistent hashing"
    assert call.media is None
    assert contents(session) == [("user", "explain consistent hashing"), ("model", "")]

    await call.emit("Consistent ", "hashing ...")
    await call.finish()
    await task

    assert contents(session) == [("user", "explain consistent hashing"), ("model", "Consistent hashing ...")]
    assert not session.busy


async def test_single_flight_rejects_concurrent_requests(session, scripted_client):
    task = session.send_message("first")
    call = await scripted_client.next_call()

    assert session.busy
    assert session.send_message("second") is None
    assert session.analyze_screenshot(lambda: asyncio.sleep(0, result="img")) is None

    await call.finish()
    await task

    assert session.send_message("third") is not None
    await (await scripted_client.next_call()).finish()


async def test_blank_text_and_missing_credential_are_rejected(session, scripted_client):
    assert session.send_message("   ") is None
    scripted_client.api_key = ""
    assert session.send_message("hello") is None
    assert len(session.transcript) == 0


async def test_cancel_keeps_partial_text_and_appends_nothing(session, scripted_client):
    task = session.send_message("long question")
    call = await scripted_client.next_call()
    await call.emit("Partial ")

    length = len(session.transcript)
    assert session.cancel() is True
    assert not session.busy

    call.push_nowait("ignored")
    await task
    for _ in range(3):
        await asyncio.sleep(0)

    assert len(session.transcript) == length
    assert session.transcript.last.content == "Partial "
    assert not any(m.content.startswith("Error") for m in session.transcript.messages)


async def test_cancel_when_idle_is_noop(session):
    assert session.cancel() is False


async def test_new_request_after_cancel_is_not_overwritten(session, scripted_client):
    first = session.send_message("one")
    first_call = await scripted_client.next_call()
    session.cancel()
    await first

    second = session.send_message("two")
    second_call = await scripted_client.next_call()
    first_call.push_nowait("stale")
    await second_call.emit("fresh")
    await second_call.finish()
    await second

    assert contents(session) == [("user", "one"), ("model", ""), ("user", "two"), ("model", "fresh")]


async def test_failure_appends_error_entry(session, scripted_client):
    task = session.send_message("question")
    call = await scripted_client.next_call()
    await call.emit("half")
    await call.fail(GenerationHTTPError(500, "internal"))
    await task

    messages = session.transcript.messages
    assert [m.role for m in messages] == ["user", "model", "model"]
    assert messages[1].content == "half"
    assert messages[2].content.startswith("Error:")
    assert "internal" in messages[2].content
    assert not session.busy


async def test_screenshot_analysis_sends_image(session, scripted_client):
    async def capture():
        return "iVBORw0KGgo="

    task = session.analyze_screenshot(capture, prompt="analyze")
    call = await scripted_client.next_call()

    assert call.prompt == "analyze"
    assert call.media.mime_type == "image/png"
    assert call.media.data == "iVBORw0KGgo="
    assert contents(session) == [("user", SCREENSHOT_ENTRY), ("model", "")]

    await call.emit("It is a binary search bug.")
    await call.finish()
    await task

    assert session.transcript.last.content == "It is a binary search bug."


async def test_screenshot_capture_failure_appends_error(session, scripted_client):
    async def capture():
        raise RuntimeError("display unavailable")

    await session.analyze_screenshot(capture)

    messages = session.transcript.messages
    assert len(messages) == 1
    assert messages[0].role == "model"
    assert "display unavailable" in messages[0].content
    assert not session.busy
    assert scripted_client.calls.empty()


async def test_clear_only_when_idle(session, scripted_client):
    task = session.send_message("q")
    call = await scripted_client.next_call()
    assert session.clear() is False
    await call.finish()
    await task
    assert session.clear() is True
    assert len(session.transcript) == 0
