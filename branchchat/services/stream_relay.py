"""
Relay a provider's token stream to the client and persist the reply once.

The relay forwards provider frames as they are pulled by the client and, once
the provider reports the end of the stream, appends a single assistant message
with the full text. Every relayed response ends with exactly one terminal
frame:

    {"type": "done", "saved": true}
    {"type": "error", "code": "UPSTREAM_GENERATION_FAILURE", "message": ...}
    {"type": "error", "code": "PERSISTENCE_FAILURE", "message": ...}

If the client goes away first, the upstream stream is closed and nothing is
saved.
"""
import logging
from typing import AsyncIterator, Callable

from sqlalchemy.orm import Session

from branchchat.core.errors import ChatError
from branchchat.db.models.message import MessageRole
from branchchat.repositories.message_repository import MessageRepository
from branchchat.services.llm.completion import CompletionStream, json_frame

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate response"
SAVE_FAILED_MESSAGE = "Failed to save response"


def done_frame() -> bytes:
    return json_frame({"type": "done", "saved": True})


def error_frame(error: ChatError) -> bytes:
    return json_frame({"type": "error", "code": error.code.value, "message": error.message})


class StreamRelay:
    def __init__(
        self,
        message_repository: MessageRepository,
        session_factory: Callable[[], Session],
    ):
        self.repository = message_repository
        self.session_factory = session_factory

    async def relay(self, conversation_id: str, completion: CompletionStream) -> AsyncIterator[bytes]:
        """Forward ``completion`` to the client, then save and report"""
        chunks = completion.chunks()
        forwarded = 0
        try:
            async for chunk in chunks:
                forwarded += 1
                yield chunk
            full_text = await completion.full_text
        except Exception as e:
            logger.error(
                f"Generation for conversation {conversation_id} failed after {forwarded} chunks: {e}",
                exc_info=True,
            )
            yield error_frame(ChatError.upstream_failure(GENERATION_FAILED_MESSAGE))
            return
        finally:
            await chunks.aclose()

        logger.info(f"Generation for conversation {conversation_id} completed ({forwarded} chunks)")

        try:
            message_id = await self._save(conversation_id, full_text)
        except Exception as e:
            logger.error(f"Failed to save assistant message for conversation {conversation_id}: {e}", exc_info=True)
            yield error_frame(ChatError.persistence_failure(SAVE_FAILED_MESSAGE, stage="stream_save"))
            return

        logger.info(f"Assistant message {message_id} saved to conversation {conversation_id}")
        yield done_frame()

    async def _save(self, conversation_id: str, content: str) -> str:
        db = self.session_factory()
        try:
            message = await self.repository.append(conversation_id, MessageRole.ASSISTANT, content, db)
            return message.id
        finally:
            db.close()
