from typing import AsyncIterator, Optional, Tuple
import logging

from branchchat.db.models.message import MessageRole
from branchchat.services.conversation_service import ConversationService
from branchchat.services.llm.factory import LLMProvider
from branchchat.services.message_service import MessageService, generate_title_from_message
from branchchat.services.stream_relay import StreamRelay

logger = logging.getLogger(__name__)

class ChatService:
    def __init__(
        self,
        conversation_service: ConversationService,
        message_service: MessageService,
        provider: LLMProvider,
        relay: StreamRelay,
    ):
        self.conversation_service = conversation_service
        self.message_service = message_service
        self.provider = provider
        self.relay = relay

    async def send(self, content: str, conversation_id: Optional[str] = None) -> Tuple[str, AsyncIterator[bytes]]:
        """
        Save a user message and start streaming the assistant reply.

        A conversation titled after the message is created when no
        ``conversation_id`` is given. Returns the conversation id and the
        byte stream to send to the client; the reply is persisted by the relay
        once generation finishes.
        """
        if not conversation_id:
            conversation = await self.conversation_service.create_conversation(
                generate_title_from_message(content)
            )
            conversation_id = conversation.id
            logger.info(f"Started conversation {conversation_id} from first message")

        await self.message_service.add_message(conversation_id, MessageRole.USER, content)

        context = await self.message_service.build_context(conversation_id)
        logger.info(f"Requesting completion for conversation {conversation_id} with {len(context) - 1} messages")
        completion = await self.provider.stream(context)

        return conversation_id, self.relay.relay(conversation_id, completion)
