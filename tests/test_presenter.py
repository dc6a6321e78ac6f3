import asyncio

from core.state import HintBoard, Transcript
from core.types import Hint
from gateway.presenter import Presenter


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def test_presenter_pushes_latest_snapshots_in_mutation_order():
    sent = []

    async def sink(payload):
        sent.append(payload)

    board, transcript = HintBoard(), Transcript()
    presenter = Presenter(sink)
    presenter.start()
    presenter.attach(board, transcript, busy=lambda: True)

    board.add(Hint(id="h1"))
    board.publish_text("h1", "draft")
    transcript.append("user", "hi")
    await settle()

    assert [p["type"] for p in sent] == ["hints", "transcript"]
    assert sent[0]["items"] == [{"id": "h1", "text": "draft", "status": "streaming"}]
    assert sent[1] == {"type": "transcript", "messages": [{"role": "user", "content": "hi"}], "busy": True}

    board.publish_text("h1", "draft two")
    await settle()
    assert sent[-1]["items"][0]["text"] == "draft two"

    await presenter.close()
    board.add(Hint(id="h2"))
    await settle()
    assert len(sent) == 3


async def test_slow_view_receives_only_latest_snapshot_per_type():
    sent = []
    gate = asyncio.Event()

    async def slow_sink(payload):
        await gate.wait()
        sent.append(payload)

    board = HintBoard()
    presenter = Presenter(slow_sink)
    presenter.start()
    presenter.push_levels({"user": 1.0, "interviewer": 0.0}, voice_active=True)
    await settle()

    # 第一条发送阻塞期间产生的大量变更
    board.subscribe(lambda: presenter.push({"type": "hints", "items": board.snapshot()}))
    board.add(Hint(id="h1"))
    for length in range(1, 200):
        board.publish_text("h1", "x" * length)
    for amplitude in range(50):
        presenter.push_levels({"user": float(amplitude), "interviewer": 0.0}, voice_active=True)

    gate.set()
    await settle()
    await presenter.close()

    assert [p["type"] for p in sent] == ["levels", "hints", "levels"]
    assert sent[1]["items"][0]["text"] == "x" * 199
    assert sent[2]["levels"]["user"] == 49.0


async def test_presenter_survives_sink_failures():
    sent = []

    async def flaky(payload):
        if not sent:
            sent.append("failed")
            raise ConnectionError("socket closed")
        sent.append(payload["type"])

    presenter = Presenter(flaky)
    presenter.start()
    presenter.push_levels({"user": 1.0, "interviewer": 2.0}, voice_active=True)
    await settle()
    presenter.push_levels({"user": 0.0, "interviewer": 0.0}, voice_active=False)
    await settle()
    await presenter.close()

    assert sent == ["failed", "levels"]
