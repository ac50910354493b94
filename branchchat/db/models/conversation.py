from sqlalchemy import Column, String, DateTime, ForeignKey

from branchchat.db.base_class import BaseModel, utcnow

class Conversation(BaseModel):
    """Conversation SQLAlchemy model"""
    __tablename__ = "conversations"

    title = Column(String, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Lineage: a fork points at the conversation and message it was copied from.
    # Both links are nulled, never cascaded, when the target is deleted.
    parent_conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    branch_from_message_id = Column(
        String(36),
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_conversations_branch_from_message_id",
        ),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.id} title={self.title!r} parent={self.parent_conversation_id}>"
