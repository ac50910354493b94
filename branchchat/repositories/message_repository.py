from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from branchchat.db.models.message import Message, MessageRole

logger = logging.getLogger(__name__)

# Concurrent appends to one conversation can race for the same sequence number
APPEND_ATTEMPTS = 3


def ordered(query):
    """Apply the conversation total order: created_at, then insertion sequence, then id"""
    return query.order_by(Message.created_at.asc(), Message.sequence.asc(), Message.id.asc())


class MessageRepository:
    @staticmethod
    def next_sequence(conversation_id: str, db: Session) -> int:
        """Next free sequence number in a conversation"""
        current = (
            db.query(func.max(Message.sequence))
            .filter(Message.conversation_id == conversation_id)
            .scalar()
        )
        return (current or 0) + 1

    @staticmethod
    async def append(
        conversation_id: str,
        role: Union[MessageRole, str],
        content: str,
        db: Session,
    ) -> Message:
        """Append a message to the end of a conversation's log"""
        role_value = MessageRole(role).value
        for attempt in range(1, APPEND_ATTEMPTS + 1):
            try:
                message = Message(
                    conversation_id=conversation_id,
                    role=role_value,
                    content=content,
                    sequence=MessageRepository.next_sequence(conversation_id, db),
                )
                db.add(message)
                db.commit()
                db.refresh(message)
                return message
            except IntegrityError as e:
                db.rollback()
                if attempt == APPEND_ATTEMPTS:
                    logger.error(f"Failed to append message to conversation {conversation_id}: {e}")
                    raise
                logger.warning(
                    f"Sequence conflict appending to conversation {conversation_id}, "
                    f"retrying ({attempt}/{APPEND_ATTEMPTS})"
                )
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to append message to conversation {conversation_id}: {e}")
                raise

    @staticmethod
    async def get_by_id(message_id: str, db: Session) -> Optional[Message]:
        """Get message by ID"""
        return db.query(Message).filter(Message.id == message_id).first()

    @staticmethod
    async def list_by_conversation(
        conversation_id: str,
        db: Session,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        List messages in a conversation in ascending order.

        With ``limit``, only the most recent ``limit`` messages are returned,
        still oldest first.
        """
        query = db.query(Message).filter(Message.conversation_id == conversation_id)
        if limit is None:
            return ordered(query).all()

        newest_first = (
            query.order_by(Message.created_at.desc(), Message.sequence.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(newest_first))

    @staticmethod
    async def range_up_to(
        conversation_id: str,
        cutoff: datetime,
        db: Session,
        cutoff_sequence: Optional[int] = None,
    ) -> List[Message]:
        """
        All messages in a conversation created at or before ``cutoff``, ascending.

        With ``cutoff_sequence``, messages sharing the cutoff timestamp are
        only included up to that sequence number, so the range ends exactly
        at the cutoff message in the conversation's total order.
        """
        query = db.query(Message).filter(Message.conversation_id == conversation_id)
        if cutoff_sequence is None:
            query = query.filter(Message.created_at <= cutoff)
        else:
            query = query.filter(or_(
                Message.created_at < cutoff,
                and_(Message.created_at == cutoff, Message.sequence <= cutoff_sequence),
            ))
        return ordered(query).all()
