from typing import List
import logging
from sqlalchemy.orm import Session

from branchchat.core.config import settings
from branchchat.core.constants import SYSTEM_PROMPT, TITLE_MAX_LENGTH
from branchchat.core.errors import ChatError
from branchchat.db.models.message import Message, MessageRole
from branchchat.repositories.message_repository import MessageRepository
from branchchat.services.conversation_service import ConversationService
from branchchat.services.llm.factory import ChatMessage, Role

# Set up logging
logger = logging.getLogger(__name__)


def generate_title_from_message(content: str) -> str:
    """Title for a conversation started by ``content``"""
    trimmed = content.strip()
    if len(trimmed) <= TITLE_MAX_LENGTH:
        return trimmed
    return f"{trimmed[:TITLE_MAX_LENGTH]}..."


class MessageService:
    def __init__(
        self,
        message_repository: MessageRepository,
        conversation_service: ConversationService,
        db: Session
    ):
        self.repository = message_repository
        self.conversation_service = conversation_service
        self.db = db

    async def add_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        """Append a message to an existing conversation"""
        await self.conversation_service.get_conversation(conversation_id)
        logger.info(f"Adding {role.value} message to conversation {conversation_id}")
        try:
            message = await self.repository.append(conversation_id, role, content, self.db)
        except Exception as e:
            logger.error(f"Failed to add message to conversation {conversation_id}: {e}")
            raise ChatError.persistence_failure("Failed to save message", stage="write") from e
        logger.info(f"Message {message.id} added to conversation {conversation_id}")
        return message

    async def get_message(self, conversation_id: str, message_id: str) -> Message:
        """Get a message, scoped to its conversation"""
        await self.conversation_service.get_conversation(conversation_id)
        message = await self.repository.get_by_id(message_id, self.db)
        if not message or message.conversation_id != conversation_id:
            logger.warning(f"Message {message_id} not found in conversation {conversation_id}")
            raise ChatError.message_not_found(message_id)
        return message

    async def list_messages(self, conversation_id: str) -> List[Message]:
        """List all messages in a conversation, oldest first"""
        await self.conversation_service.get_conversation(conversation_id)
        messages = await self.repository.list_by_conversation(conversation_id, self.db)
        logger.info(f"Retrieved {len(messages)} messages from conversation {conversation_id}")
        return messages

    async def build_context(self, conversation_id: str) -> List[ChatMessage]:
        """
        Generation context for a conversation: the system prompt followed by
        the most recent ``MAX_CONTEXT_MESSAGES`` messages. Older messages are
        left out of the request but stay in the log.
        """
        history = await self.repository.list_by_conversation(
            conversation_id, self.db, limit=settings.MAX_CONTEXT_MESSAGES
        )
        context = [ChatMessage(role=Role.SYSTEM, content=SYSTEM_PROMPT)]
        context.extend(ChatMessage(role=Role(message.role), content=message.content) for message in history)
        return context
