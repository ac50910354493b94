from typing import Callable
from fastapi import APIRouter, Body, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
import logging

from branchchat.api.deps import get_llm_provider
from branchchat.api.endpoints.conversations import get_conversation_service, get_message_repository
from branchchat.api.endpoints.messages import get_message_service
from branchchat.db.database import get_session_factory
from branchchat.repositories.message_repository import MessageRepository
from branchchat.schemas.message import SendMessageRequest
from branchchat.services.chat_service import ChatService
from branchchat.services.conversation_service import ConversationService
from branchchat.services.llm.factory import LLMProvider
from branchchat.services.message_service import MessageService
from branchchat.services.stream_relay import StreamRelay

router = APIRouter()
logger = logging.getLogger(__name__)

def get_stream_relay(
    message_repository: MessageRepository = Depends(get_message_repository),
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> StreamRelay:
    """Get stream relay instance"""
    return StreamRelay(message_repository=message_repository, session_factory=session_factory)

def get_chat_service(
    conversation_service: ConversationService = Depends(get_conversation_service),
    message_service: MessageService = Depends(get_message_service),
    provider: LLMProvider = Depends(get_llm_provider),
    relay: StreamRelay = Depends(get_stream_relay)
) -> ChatService:
    """Get chat service instance"""
    return ChatService(
        conversation_service=conversation_service,
        message_service=message_service,
        provider=provider,
        relay=relay
    )

@router.post("/send")
async def send_message(
    payload: SendMessageRequest = Body(..., description="Message to send"),
    chat_service: ChatService = Depends(get_chat_service)
):
    """Send a message and stream the assistant reply as server-sent events"""
    conversation_id, stream = await chat_service.send(payload.content, payload.conversation_id)
    logger.info(f"Streaming reply for conversation {conversation_id}")
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Conversation-Id": conversation_id,
        },
    )
