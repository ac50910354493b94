"""
Conversation forking.

A fork copies the prefix of a conversation's log, up to and including a
chosen cutoff message, into a brand-new conversation that records where it
came from. The copy is deep: the branch owns its own message rows, so later
edits or deletions on either side never reach the other.
"""
import logging

from sqlalchemy.orm import Session

from branchchat.core.constants import BRANCH_MARKER
from branchchat.core.errors import ChatError
from branchchat.repositories.conversation_repository import ConversationRepository
from branchchat.repositories.message_repository import MessageRepository
from branchchat.schemas.conversation import ConversationResponse

logger = logging.getLogger(__name__)


def derive_branch_title(title: str) -> str:
    """Mark a title as a branch, at most once, wherever the marker already sits"""
    if BRANCH_MARKER.strip() in title:
        return title
    return f"{title}{BRANCH_MARKER}"


class ForkService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        db: Session,
    ):
        self.conversations = conversation_repository
        self.messages = message_repository
        self.db = db

    async def fork(self, source_conversation_id: str, cutoff_message_id: str) -> ConversationResponse:
        """
        Fork ``source_conversation_id`` at ``cutoff_message_id``.

        Validation runs before anything is written:

        1. the source conversation must exist (CONVERSATION_NOT_FOUND),
        2. the cutoff message must exist (MESSAGE_NOT_FOUND),
        3. the cutoff message must belong to the source (MESSAGE_NOT_IN_CONVERSATION).

        Every source message up to and including the cutoff in the
        conversation's order is copied, in that order, into the new
        conversation in a single transaction. A failed
        write raises PERSISTENCE_FAILURE and leaves no branch behind.
        """
        logger.info(f"Fork of conversation {source_conversation_id} at message {cutoff_message_id} started")

        source = await self.conversations.get_by_id(source_conversation_id, self.db)
        if not source:
            logger.warning(f"Fork failed: conversation {source_conversation_id} not found")
            raise ChatError.conversation_not_found(source_conversation_id)

        cutoff = await self.messages.get_by_id(cutoff_message_id, self.db)
        if not cutoff:
            logger.warning(f"Fork failed: message {cutoff_message_id} not found")
            raise ChatError.message_not_found(cutoff_message_id)

        if cutoff.conversation_id != source_conversation_id:
            logger.warning(
                f"Fork failed: message {cutoff_message_id} belongs to {cutoff.conversation_id}, "
                f"not {source_conversation_id}"
            )
            raise ChatError.message_not_in_conversation(cutoff_message_id, source_conversation_id)

        prefix = await self.messages.range_up_to(
            source_conversation_id, cutoff.created_at, self.db, cutoff_sequence=cutoff.sequence
        )

        try:
            branch = await self.conversations.create_with_messages(
                title=derive_branch_title(source.title),
                parent_conversation_id=source_conversation_id,
                branch_from_message_id=cutoff_message_id,
                messages=prefix,
                db=self.db,
            )
        except Exception as e:
            logger.error(f"Fork of conversation {source_conversation_id} failed while writing: {e}", exc_info=True)
            raise ChatError.persistence_failure("Failed to create branch", stage="fork") from e

        logger.info(
            f"Fork of conversation {source_conversation_id} completed: "
            f"branch {branch.id}, {len(prefix)} messages copied"
        )
        return branch
