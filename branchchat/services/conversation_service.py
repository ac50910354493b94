from typing import List, Optional
import logging

from sqlalchemy.orm import Session
from branchchat.core.errors import ChatError
from branchchat.repositories.conversation_repository import ConversationRepository
from branchchat.schemas.conversation import ConversationResponse

# Set up logging
logger = logging.getLogger(__name__)

class ConversationService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        db: Session
    ):
        self.repository = conversation_repository
        self.db = db

    async def create_conversation(self, title: str) -> ConversationResponse:
        """Create a new root conversation"""
        logger.info(f"Creating conversation {title!r}")
        try:
            conversation = await self.repository.create(title, self.db)
        except Exception as e:
            logger.error(f"Failed to create conversation: {e}")
            raise ChatError.persistence_failure("Failed to create conversation", stage="write") from e
        logger.info(f"Conversation {conversation.id} created")
        return conversation

    async def list_conversations(self) -> List[ConversationResponse]:
        """List all conversations"""
        conversations = await self.repository.list_all(self.db)
        logger.info(f"Retrieved {len(conversations)} conversations")
        return conversations

    async def get_conversation(self, conversation_id: str) -> ConversationResponse:
        """Get conversation details"""
        conversation: Optional[ConversationResponse] = await self.repository.get_by_id(conversation_id, self.db)
        if not conversation:
            logger.warning(f"Conversation {conversation_id} not found")
            raise ChatError.conversation_not_found(conversation_id)
        return conversation

    async def update_conversation(self, conversation_id: str, title: str) -> ConversationResponse:
        """Rename a conversation"""
        try:
            updated = await self.repository.update_title(conversation_id, title, self.db)
        except Exception as e:
            logger.error(f"Failed to update conversation {conversation_id}: {e}")
            raise ChatError.persistence_failure("Failed to update conversation", stage="write") from e
        if not updated:
            logger.warning(f"Conversation {conversation_id} not found for update")
            raise ChatError.conversation_not_found(conversation_id)
        logger.info(f"Conversation {conversation_id} renamed")
        return updated

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and its own messages; forks are kept"""
        try:
            deleted = await self.repository.delete(conversation_id, self.db)
        except Exception as e:
            logger.error(f"Failed to delete conversation {conversation_id}: {e}")
            raise ChatError.persistence_failure("Failed to delete conversation", stage="write") from e
        if not deleted:
            logger.warning(f"Conversation {conversation_id} not found for delete")
            raise ChatError.conversation_not_found(conversation_id)

    async def list_forks(self, conversation_id: str) -> List[ConversationResponse]:
        """List the direct forks of a conversation"""
        await self.get_conversation(conversation_id)
        forks = await self.repository.list_forks(conversation_id, self.db)
        logger.info(f"Conversation {conversation_id} has {len(forks)} forks")
        return forks
