from typing import List
from fastapi import APIRouter, Body, Depends, Path, status
from functools import lru_cache
from sqlalchemy.orm import Session

from branchchat.schemas.conversation import (
    ConversationCreate,
    ConversationFork,
    ConversationResponse,
    ConversationUpdate,
    DeleteResponse,
)
from branchchat.services.conversation_service import ConversationService
from branchchat.services.fork_service import ForkService
from branchchat.repositories.conversation_repository import ConversationRepository
from branchchat.repositories.message_repository import MessageRepository
from branchchat.db.database import get_db
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

@lru_cache()
def get_conversation_repository() -> ConversationRepository:
    """Get conversation repository instance"""
    return ConversationRepository()

@lru_cache()
def get_message_repository() -> MessageRepository:
    """Get message repository instance"""
    return MessageRepository()

def get_conversation_service(
    conversation_repository: ConversationRepository = Depends(get_conversation_repository),
    db: Session = Depends(get_db)
) -> ConversationService:
    """Get conversation service instance"""
    return ConversationService(
        conversation_repository=conversation_repository,
        db=db
    )

def get_fork_service(
    conversation_repository: ConversationRepository = Depends(get_conversation_repository),
    message_repository: MessageRepository = Depends(get_message_repository),
    db: Session = Depends(get_db)
) -> ForkService:
    """Get fork service instance"""
    return ForkService(
        conversation_repository=conversation_repository,
        message_repository=message_repository,
        db=db
    )

@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    payload: ConversationCreate = Body(..., description="Conversation details"),
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """Create a new root conversation"""
    return await conversation_service.create_conversation(payload.title)

@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """List all conversations"""
    return await conversation_service.list_conversations()

@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """Get conversation details"""
    return await conversation_service.get_conversation(conversation_id)

@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str,
    conversation_update: ConversationUpdate = Body(..., description="Conversation details"),
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """Rename a conversation"""
    return await conversation_service.update_conversation(conversation_id, conversation_update.title)

@router.delete("/{conversation_id}", response_model=DeleteResponse)
async def delete_conversation(
    conversation_id: str,
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """Delete a conversation and its messages; its forks are kept"""
    await conversation_service.delete_conversation(conversation_id)
    return DeleteResponse(success=True)

@router.get("/{conversation_id}/forks", response_model=List[ConversationResponse])
async def list_forks(
    conversation_id: str,
    conversation_service: ConversationService = Depends(get_conversation_service)
):
    """List conversations forked from this one"""
    return await conversation_service.list_forks(conversation_id)

@router.post("/{conversation_id}/fork", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def fork_conversation(
    conversation_id: str = Path(..., description="ID of the conversation to fork"),
    payload: ConversationFork = Body(..., description="Message to fork at"),
    fork_service: ForkService = Depends(get_fork_service)
):
    """Fork a conversation at a message, copying everything up to and including it"""
    logger.info(f"Fork requested for conversation {conversation_id} at message {payload.message_id}")
    branch = await fork_service.fork(conversation_id, payload.message_id)
    logger.info(f"Fork request for conversation {conversation_id} created branch {branch.id}")
    return branch
