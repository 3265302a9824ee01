"""Document and version models for the knowledge hub."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Document(BaseModel):
    """A user document and its current state."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    content: str
    owner_id: str
    is_public: bool = False
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)
    collaborators: List[str] = Field(default_factory=list)
    current_version: int = Field(default=1, ge=1)
    embedding: Optional[List[float]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        """Pydantic config."""

        from_attributes = True

    @property
    def has_embedding(self) -> bool:
        """Whether the document carries a non-empty embedding."""
        return bool(self.embedding)

    def is_shared_with(self, user_id: str) -> bool:
        """Owned by the user, or shared with them as a collaborator."""
        return self.owner_id == user_id or user_id in self.collaborators

    def is_visible_to(self, user_id: str) -> bool:
        """Public, owned by the user, or shared with them."""
        return self.is_public or self.is_shared_with(user_id)


class Version(BaseModel):
    """Immutable full-content snapshot of one document edit."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    document_id: str
    version_number: int = Field(ge=1)
    content: str
    change_note: str
    author_id: str
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        """Pydantic config."""

        from_attributes = True
        frozen = True


class DocumentFilter(BaseModel):
    """Filter understood by every document store."""

    visible_to: Optional[str] = None
    owner_id: Optional[str] = None
    public_only: bool = False
    tags: List[str] = Field(default_factory=list)
    search: Optional[str] = None
    has_embedding: Optional[bool] = None

    def matches(self, document: Document) -> bool:
        """
        Evaluate the filter against a document in memory.

        Args:
            document: Document to test.

        Returns:
            True if the document passes every condition.
        """
        if self.visible_to is not None and not document.is_visible_to(self.visible_to):
            return False
        if self.owner_id is not None and document.owner_id != self.owner_id:
            return False
        if self.public_only and not document.is_public:
            return False
        if self.tags and not set(self.tags) & set(document.tags):
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in document.title.lower() and needle not in document.content.lower():
                return False
        if self.has_embedding is not None and document.has_embedding != self.has_embedding:
            return False
        return True


class Feedback(BaseModel):
    """User feedback on a generated answer."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    question: str
    answer: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ActivityAction(str, Enum):
    """Kinds of recorded user activity."""

    CREATE = "create"
    VIEW = "view"
    UPDATE = "update"
    VERSION = "version"
    DELETE = "delete"
    SHARE = "share"
    ASK = "ask"
    SEARCH = "search"


class Activity(BaseModel):
    """An entry in the user activity log."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    action: ActivityAction
    document_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
