"""
Error type for chat operations.

Every failure the service reports carries a stable machine-readable code and
the HTTP status it maps to. Errors are built through the named constructors
on ``ChatError`` so call sites stay inspectable without a class per error.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ChatErrorCode(str, Enum):
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    MESSAGE_NOT_IN_CONVERSATION = "MESSAGE_NOT_IN_CONVERSATION"
    UPSTREAM_GENERATION_FAILURE = "UPSTREAM_GENERATION_FAILURE"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


STATUS_CODES: Dict[ChatErrorCode, int] = {
    ChatErrorCode.CONVERSATION_NOT_FOUND: 404,
    ChatErrorCode.MESSAGE_NOT_FOUND: 404,
    ChatErrorCode.MESSAGE_NOT_IN_CONVERSATION: 400,
    ChatErrorCode.UPSTREAM_GENERATION_FAILURE: 502,
    ChatErrorCode.PERSISTENCE_FAILURE: 500,
}


class ChatError(Exception):
    """A chat failure with a stable code and transport status"""

    def __init__(self, code: ChatErrorCode, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = STATUS_CODES[code]
        # Only set for PERSISTENCE_FAILURE: "write", "fork" or "stream_save"
        self.stage = stage

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}

    def __repr__(self) -> str:
        return f"ChatError({self.code.value}, {self.message!r})"

    @classmethod
    def conversation_not_found(cls, conversation_id: str) -> "ChatError":
        return cls(ChatErrorCode.CONVERSATION_NOT_FOUND, f"Conversation not found: {conversation_id}")

    @classmethod
    def message_not_found(cls, message_id: str) -> "ChatError":
        return cls(ChatErrorCode.MESSAGE_NOT_FOUND, f"Message not found: {message_id}")

    @classmethod
    def message_not_in_conversation(cls, message_id: str, conversation_id: str) -> "ChatError":
        return cls(
            ChatErrorCode.MESSAGE_NOT_IN_CONVERSATION,
            f"Message {message_id} does not belong to conversation {conversation_id}",
        )

    @classmethod
    def upstream_failure(cls, message: str) -> "ChatError":
        return cls(ChatErrorCode.UPSTREAM_GENERATION_FAILURE, message)

    @classmethod
    def persistence_failure(cls, message: str, stage: str) -> "ChatError":
        return cls(ChatErrorCode.PERSISTENCE_FAILURE, message, stage=stage)
