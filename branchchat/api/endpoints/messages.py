from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from branchchat.schemas.message import MessageResponse
from branchchat.services.conversation_service import ConversationService
from branchchat.services.message_service import MessageService
from branchchat.repositories.message_repository import MessageRepository
from branchchat.api.endpoints.conversations import get_conversation_service, get_message_repository
from branchchat.db.database import get_db

router = APIRouter()

def get_message_service(
    message_repository: MessageRepository = Depends(get_message_repository),
    conversation_service: ConversationService = Depends(get_conversation_service),
    db: Session = Depends(get_db)
) -> MessageService:
    """Get message service instance"""
    return MessageService(
        message_repository=message_repository,
        conversation_service=conversation_service,
        db=db
    )

@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    conversation_id: str,
    message_service: MessageService = Depends(get_message_service)
):
    """List all messages in a conversation, oldest first"""
    return await message_service.list_messages(conversation_id)

@router.get("/{conversation_id}/messages/{message_id}", response_model=MessageResponse)
async def get_message(
    conversation_id: str,
    message_id: str,
    message_service: MessageService = Depends(get_message_service)
):
    """Get a message by ID"""
    return await message_service.get_message(conversation_id, message_id)
