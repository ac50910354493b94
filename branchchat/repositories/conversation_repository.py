from typing import List, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session
import logging

from branchchat.db.base_class import utcnow
from branchchat.db.models.conversation import Conversation
from branchchat.db.models.message import Message
from branchchat.schemas.conversation import ConversationResponse

logger = logging.getLogger(__name__)

class ConversationRepository:
    @staticmethod
    async def create(title: str, db: Session) -> ConversationResponse:
        """Create a new root conversation"""
        try:
            conversation = Conversation(title=title)
            db.add(conversation)
            db.flush()
            response = ConversationResponse.model_validate(conversation)
            db.commit()
            return response
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create conversation: {e}")
            raise

    @staticmethod
    async def create_with_messages(
        title: str,
        parent_conversation_id: str,
        branch_from_message_id: str,
        messages: Sequence[Message],
        db: Session,
    ) -> ConversationResponse:
        """
        Create a branch conversation holding copies of ``messages``.

        The conversation row and every copy are written in one transaction: if
        any insert fails nothing is kept. Copies are inserted in the order
        given, get fresh ids and timestamps, and are numbered from 1 so the
        store's own ordering reproduces the source order.
        """
        copies = [(message.role, message.content) for message in messages]
        try:
            conversation = Conversation(
                title=title,
                parent_conversation_id=parent_conversation_id,
                branch_from_message_id=branch_from_message_id,
            )
            db.add(conversation)
            db.flush()

            for sequence, (role, content) in enumerate(copies, start=1):
                db.add(Message(
                    conversation_id=conversation.id,
                    role=role,
                    content=content,
                    sequence=sequence,
                ))
                # One row per flush so each copy gets its own created_at in order
                db.flush()

            # Built inside the transaction so a rejected row is rolled back with the copies
            response = ConversationResponse.model_validate(conversation)
            db.commit()
            return response
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create branch of conversation {parent_conversation_id}: {e}")
            raise

    @staticmethod
    async def get_by_id(conversation_id: str, db: Session) -> Optional[ConversationResponse]:
        """Get conversation by ID"""
        conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if conversation:
            return ConversationResponse.model_validate(conversation)
        return None

    @staticmethod
    async def list_all(db: Session) -> List[ConversationResponse]:
        """List all conversations, most recently updated first"""
        conversations = (
            db.query(Conversation)
            .order_by(Conversation.updated_at.desc(), Conversation.id.asc())
            .all()
        )
        return [ConversationResponse.model_validate(conversation) for conversation in conversations]

    @staticmethod
    async def list_forks(conversation_id: str, db: Session) -> List[ConversationResponse]:
        """List conversations forked directly from ``conversation_id``, oldest first"""
        forks = (
            db.query(Conversation)
            .filter(Conversation.parent_conversation_id == conversation_id)
            .order_by(Conversation.created_at.asc(), Conversation.id.asc())
            .all()
        )
        return [ConversationResponse.model_validate(fork) for fork in forks]

    @staticmethod
    async def update_title(conversation_id: str, title: str, db: Session) -> Optional[ConversationResponse]:
        """Rename a conversation"""
        try:
            conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
            if not conversation:
                return None

            conversation.title = title
            conversation.updated_at = utcnow()
            db.flush()
            response = ConversationResponse.model_validate(conversation)
            db.commit()
            return response
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to update conversation {conversation_id}: {e}")
            raise

    @staticmethod
    async def delete(conversation_id: str, db: Session) -> bool:
        """
        Delete a conversation and its own messages.

        Forks are left in place: their lineage links to this conversation and
        to its messages are nulled in the same transaction.
        """
        conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if not conversation:
            return False

        try:
            own_message_ids = select(Message.id).where(Message.conversation_id == conversation_id)

            logger.debug(f"Detaching forks of conversation {conversation_id}")
            db.query(Conversation).filter(
                Conversation.parent_conversation_id == conversation_id
            ).update({Conversation.parent_conversation_id: None}, synchronize_session=False)
            db.query(Conversation).filter(
                Conversation.branch_from_message_id.in_(own_message_ids)
            ).update({Conversation.branch_from_message_id: None}, synchronize_session=False)

            logger.debug(f"Deleting messages for conversation {conversation_id}")
            db.query(Message).filter(
                Message.conversation_id == conversation_id
            ).delete(synchronize_session=False)

            logger.debug(f"Deleting conversation {conversation_id}")
            db.delete(conversation)
            db.commit()
            logger.info(f"Successfully deleted conversation {conversation_id} and its messages")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete conversation {conversation_id}: {e}")
            raise
