import asyncio
import json

import pytest
from sqlalchemy.exc import OperationalError

from branchchat.db.models.message import Message, MessageRole
from branchchat.repositories.message_repository import MessageRepository
from branchchat.services.stream_relay import StreamRelay
from tests.fakes import FakeProvider


class FailingMessageRepository(MessageRepository):
    @staticmethod
    async def append(conversation_id, role, content, db):
        raise OperationalError("INSERT INTO messages", {}, Exception("database is locked"))


def parse_frame(frame: bytes) -> dict:
    text = frame.decode("utf-8")
    assert text.startswith("data: ") and text.endswith("\n\n")
    return json.loads(text[len("data: "):].strip())


def run_relay(relay, conversation_id, provider):
    async def collect():
        completion = await provider.stream([])
        return [frame async for frame in relay.relay(conversation_id, completion)]

    return asyncio.run(collect())


def assistant_messages(db, conversation_id):
    db.expire_all()
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id, Message.role == MessageRole.ASSISTANT.value)
        .all()
    )


@pytest.fixture
def relay(session_factory):
    return StreamRelay(message_repository=MessageRepository(), session_factory=session_factory)


def test_relay_forwards_chunks_and_saves_once(db, relay, make_conversation):
    conversation, _ = make_conversation("Story", [("user", "Tell me a story")])
    provider = FakeProvider(["Hello", " world"])

    frames = run_relay(relay, conversation.id, provider)

    assert frames[:2] == [b"Hello", b" world"]
    assert parse_frame(frames[-1]) == {"type": "done", "saved": True}
    assert len(frames) == 3

    saved = assistant_messages(db, conversation.id)
    assert [m.content for m in saved] == ["Hello world"]
    assert saved[0].sequence == 2


def test_relay_reports_upstream_failure_without_saving(db, relay, make_conversation):
    conversation, _ = make_conversation("Story", [("user", "Tell me a story")])
    provider = FakeProvider(["Hel"], error=RuntimeError("connection reset"))

    frames = run_relay(relay, conversation.id, provider)

    assert frames[0] == b"Hel"
    assert parse_frame(frames[-1]) == {
        "type": "error",
        "code": "UPSTREAM_GENERATION_FAILURE",
        "message": "Failed to generate response",
    }
    assert len(frames) == 2
    assert assistant_messages(db, conversation.id) == []
    assert provider.closed


def test_relay_reports_failure_before_first_chunk(db, relay, make_conversation):
    conversation, _ = make_conversation("Story", [("user", "Tell me a story")])
    provider = FakeProvider([], error=RuntimeError("upstream closed"))

    frames = run_relay(relay, conversation.id, provider)

    assert len(frames) == 1
    assert parse_frame(frames[0])["code"] == "UPSTREAM_GENERATION_FAILURE"
    assert assistant_messages(db, conversation.id) == []


def test_relay_reports_save_failure(db, session_factory, make_conversation):
    conversation, _ = make_conversation("Story", [("user", "Tell me a story")])
    relay = StreamRelay(message_repository=FailingMessageRepository(), session_factory=session_factory)

    frames = run_relay(relay, conversation.id, FakeProvider(["Hello"]))

    assert frames[0] == b"Hello"
    terminal = parse_frame(frames[-1])
    assert terminal == {"type": "error", "code": "PERSISTENCE_FAILURE", "message": "Failed to save response"}
    assert [parse_frame(f)["type"] for f in frames[1:]] == ["error"]
    assert assistant_messages(db, conversation.id) == []


def test_relay_saves_nothing_when_client_disconnects(db, relay, make_conversation):
    conversation, _ = make_conversation("Story", [("user", "Tell me a story")])
    provider = FakeProvider(["Hello", " world", "!"])

    async def disconnect_after_first_chunk():
        completion = await provider.stream([])
        stream = relay.relay(conversation.id, completion)
        first = await stream.__anext__()
        await stream.aclose()
        return first, completion

    first, completion = asyncio.run(disconnect_after_first_chunk())

    assert first == b"Hello"
    assert provider.closed
    assert completion.full_text.cancelled()
    assert assistant_messages(db, conversation.id) == []


def test_completion_chunks_can_only_be_consumed_once():
    async def consume_twice():
        completion = await FakeProvider(["a"]).stream([])
        assert [frame async for frame in completion.chunks()] == [b"a"]
        assert await completion.full_text == "a"
        with pytest.raises(RuntimeError):
            async for _ in completion.chunks():
                pass

    asyncio.run(consume_twice())


def test_completion_full_text_carries_upstream_error():
    async def fail():
        completion = await FakeProvider(["a"], error=ValueError("bad frame")).stream([])
        with pytest.raises(ValueError):
            async for _ in completion.chunks():
                pass
        with pytest.raises(ValueError):
            await completion.full_text

    asyncio.run(fail())
