"""
Streaming completion primitives shared by the provider adapters and the relay.

A provider turns a generation request into a ``CompletionStream``: an async
source of ``(frame, delta)`` pairs, where ``frame`` is the SSE-framed bytes to
forward to the client untouched and ``delta`` is the plain text it carries.
The stream exposes the frames through ``chunks()`` and the concatenated text
through the ``full_text`` future, which settles exactly once:

- with the full text when the source is exhausted,
- with the source's exception when the upstream fails,
- cancelled when the consumer stops reading early.
"""
import asyncio
import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


def sse_frame(data: str) -> bytes:
    """Frame a payload as a single server-sent event"""
    return f"data: {data}\n\n".encode("utf-8")


def json_frame(payload: Dict[str, Any]) -> bytes:
    return sse_frame(json.dumps(payload))


def chunk_payload(
    completion_id: str,
    model: str,
    content: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build an OpenAI ``chat.completion.chunk`` payload.

    Providers with their own event formats are re-framed into this shape so
    clients parse a single chunk format regardless of the configured provider.
    """
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    return {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


async def split_sse_events(byte_chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """
    Regroup a raw SSE byte stream into whole events.

    Each yielded event keeps its original bytes, blank-line terminator
    included, so joining the events reproduces the upstream body exactly.
    """
    buffer = b""
    async for data in byte_chunks:
        buffer += data
        while True:
            end = buffer.find(b"\n\n")
            if end < 0:
                break
            yield buffer[:end + 2]
            buffer = buffer[end + 2:]
    if buffer:
        yield buffer


def openai_event_delta(event: bytes) -> str:
    """
    Text carried by one OpenAI-style SSE event.

    Comment lines, the ``[DONE]`` sentinel and chunks without content carry
    no text. An in-band ``error`` payload raises.
    """
    text = ""
    for line in event.decode("utf-8").splitlines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        payload = json.loads(data)
        if "error" in payload:
            raise RuntimeError(f"Upstream error event: {payload['error']}")
        for choice in payload.get("choices") or []:
            text += (choice.get("delta") or {}).get("content") or ""
    return text


def _observe(future: asyncio.Future) -> None:
    # The consumer sees the failure through chunks(); mark it retrieved
    if not future.cancelled():
        future.exception()


class CompletionStream:
    """Live chunk stream from a provider plus the full text once it ends"""

    def __init__(self, source: AsyncIterator[Tuple[bytes, str]]):
        self._source = source
        self._started = False
        self._closed = False
        self.full_text: asyncio.Future = asyncio.get_running_loop().create_future()
        self.full_text.add_done_callback(_observe)

    async def chunks(self) -> AsyncIterator[bytes]:
        """
        Yield upstream frames in order while accumulating their text.

        Can only be consumed once. Closing the generator early closes the
        upstream source and cancels ``full_text``.
        """
        if self._started:
            raise RuntimeError("Completion stream can only be consumed once")
        self._started = True

        parts: List[str] = []
        try:
            async for frame, delta in self._source:
                if delta:
                    parts.append(delta)
                yield frame
        except Exception as e:
            if not self.full_text.done():
                self.full_text.set_exception(e)
            raise
        except BaseException:
            # GeneratorExit or CancelledError: the consumer went away
            if not self.full_text.done():
                self.full_text.cancel()
            raise
        else:
            if not self.full_text.done():
                self.full_text.set_result("".join(parts))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close the upstream source; safe to call more than once"""
        if self._closed:
            return
        self._closed = True
        if not self.full_text.done():
            self.full_text.cancel()
        close = getattr(self._source, "aclose", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing upstream completion source: {e}")
