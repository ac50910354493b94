from branchchat.db.models.conversation import Conversation
from branchchat.db.models.message import Message, MessageRole

__all__ = [
    "Conversation",
    "Message",
    "MessageRole",
]
