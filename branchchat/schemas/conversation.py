from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

class ConversationBase(BaseModel):
    """Base conversation attributes"""
    title: str = Field(..., min_length=1, max_length=255, description="Title of the conversation")

class ConversationCreate(ConversationBase):
    """Attributes for creating a new conversation"""
    pass

class ConversationUpdate(BaseModel):
    """Attributes that can be updated"""
    title: str = Field(..., min_length=1, max_length=255, description="New title for the conversation")

class ConversationFork(BaseModel):
    """Fork request body"""
    message_id: str = Field(..., min_length=1, description="ID of the last message to copy into the branch")

class ConversationResponse(BaseModel):
    """Response model for conversations"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique identifier for the conversation")
    # Stored titles are not bound by the input limits: branch titles carry the marker on top
    title: str = Field(..., description="Title of the conversation")
    parent_conversation_id: Optional[str] = Field(None, description="Conversation this one was forked from")
    branch_from_message_id: Optional[str] = Field(None, description="Message in the parent at which the fork occurred")
    created_at: datetime = Field(..., description="When the conversation was created")
    updated_at: datetime = Field(..., description="When the conversation was last updated")

class DeleteResponse(BaseModel):
    success: bool = True
