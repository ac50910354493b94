from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from branchchat.db.models.message import MessageRole


class MessageResponse(BaseModel):
    """Response model for messages"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique identifier for the message")
    conversation_id: str = Field(..., description="ID of the conversation this message belongs to")
    role: MessageRole = Field(..., description="Author of the message (user/assistant)")
    content: str = Field(..., description="Content of the message")
    created_at: datetime = Field(..., description="When the message was created")


class SendMessageRequest(BaseModel):
    """Send a user message and stream the assistant reply"""
    content: str = Field(..., min_length=1, max_length=32000, description="Content of the user message")
    conversation_id: Optional[str] = Field(
        None, description="Existing conversation; a new one is created when omitted"
    )

    @field_validator("content")
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content cannot be blank")
        return v
