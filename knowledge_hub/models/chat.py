"""Chat session and answer models."""

from datetime import datetime
from enum import Enum
from typing import List
from uuid import uuid4

from pydantic import BaseModel, Field

from knowledge_hub.models.document import utcnow


class MessageRole(str, Enum):
    """Chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single chat message."""

    role: MessageRole
    content: str

    def to_provider(self) -> dict:
        """Message in the shape the generation provider expects."""
        return {"role": self.role.value, "content": self.content}


class ChatSession(BaseModel):
    """Conversation state owned by the session manager."""

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Citation(BaseModel):
    """Source document attributed to an answer."""

    document_id: str
    title: str
    snippet: str


class ChatAnswer(BaseModel):
    """Generated answer with its grounding sources."""

    answer: str
    sources: List[Citation] = Field(default_factory=list)
