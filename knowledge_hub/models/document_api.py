"""Pydantic models for document API."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from knowledge_hub.models.document import Document, Version


class DocumentCreate(BaseModel):
    """Model for creating a document."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    is_public: bool = False
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)


class DocumentUpdate(BaseModel):
    """Model for updating a document."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = Field(None, min_length=1)
    is_public: Optional[bool] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, str]] = None


class VersionCreate(BaseModel):
    """Model for creating an explicit version."""

    content: str = Field(..., min_length=1)
    change_note: Optional[str] = None


class TagCreate(BaseModel):
    """Model for adding a tag."""

    tag: str = Field(..., min_length=1, max_length=100)


class ShareRequest(BaseModel):
    """Model for sharing a document with another user."""

    user_id: str = Field(..., min_length=1, max_length=200)


class DocumentResponse(BaseModel):
    """Model for document response."""

    id: str
    title: str
    content: str
    owner_id: str
    is_public: bool
    tags: List[str]
    metadata: Dict[str, str]
    collaborators: List[str]
    current_version: int
    has_embedding: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        """Build a response without exposing the raw embedding."""
        return cls(
            id=document.id,
            title=document.title,
            content=document.content,
            owner_id=document.owner_id,
            is_public=document.is_public,
            tags=document.tags,
            metadata=document.metadata,
            collaborators=document.collaborators,
            current_version=document.current_version,
            has_embedding=document.has_embedding,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(BaseModel):
    """Model for document list response."""

    documents: List[DocumentResponse]
    total: int
    page: int
    pages: int


class VersionResponse(BaseModel):
    """Model for version response."""

    id: str
    document_id: str
    version_number: int
    content: str
    change_note: str
    author_id: str
    created_at: datetime

    @classmethod
    def from_version(cls, version: Version) -> "VersionResponse":
        """Build a response from a stored version."""
        return cls(**version.model_dump())


class VersionListResponse(BaseModel):
    """Model for the version history of a document."""

    document_id: str
    title: str
    current_version: int
    versions: List[VersionResponse]


class EmbeddingStatusResponse(BaseModel):
    """Model for an explicit embedding regeneration."""

    id: str
    title: str
    has_embedding: bool
    dimensions: int
