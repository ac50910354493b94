from sqlalchemy import Column, String, Text, Integer, ForeignKey, Index, UniqueConstraint
import enum

from branchchat.db.base_class import BaseModel

class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"

class Message(BaseModel):
    """Message SQLAlchemy model"""
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence", name="uq_messages_conversation_sequence"),
        Index("idx_messages_conversation_order", "conversation_id", "created_at", "sequence"),
    )

    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    # Insertion order within the conversation, breaks created_at ties
    sequence = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Message {self.id} conversation={self.conversation_id} role={self.role} seq={self.sequence}>"
