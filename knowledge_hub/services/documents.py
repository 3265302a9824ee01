"""Document lifecycle: creation, edits, versions and embeddings."""

import logging
import math
from typing import Dict, List, Optional, Tuple

from knowledge_hub.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
)
from knowledge_hub.models.document import ActivityAction, Document, DocumentFilter, Version
from knowledge_hub.monitoring.metrics import embedding_refresh_failures_total
from knowledge_hub.services.activity import ActivityLog
from knowledge_hub.services.embedding_cache import EmbeddingCache
from knowledge_hub.services.store import SORT_UPDATED_DESC, DocumentStore
from knowledge_hub.services.versioning import VersionSequencer

logger = logging.getLogger(__name__)

INITIAL_CHANGE_NOTE = "Initial version"
UPDATE_CHANGE_NOTE = "Document content updated"
DEFAULT_CHANGE_NOTE = "No change description provided"


class DocumentService:
    """Owner-checked document operations on top of the store."""

    def __init__(
        self,
        store: DocumentStore,
        sequencer: VersionSequencer,
        embedding_cache: EmbeddingCache,
        activity: Optional[ActivityLog] = None,
    ) -> None:
        """
        Initialize the document service.

        Args:
            store: Document store.
            sequencer: Version sequencer for content-changing writes.
            embedding_cache: Cached embedding provider.
            activity: Activity log; one over the same store when omitted.
        """
        self.store = store
        self.sequencer = sequencer
        self.embedding_cache = embedding_cache
        self.activity = activity if activity is not None else ActivityLog(store)

    async def _get_owned(self, document_id: str, actor_id: str) -> Document:
        document = await self.store.find_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if document.owner_id != actor_id:
            raise PermissionDeniedError(f"Not authorized to modify document {document_id}")
        return document

    async def _get_shared(self, document_id: str, actor_id: str) -> Document:
        document = await self.store.find_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if not document.is_shared_with(actor_id):
            raise PermissionDeniedError(f"Not authorized to access versions of document {document_id}")
        return document

    async def create_document(
        self,
        title: str,
        content: str,
        owner_id: str,
        is_public: bool = False,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Document:
        """
        Create a document and its version 1.

        Args:
            title: Document title.
            content: Initial content.
            owner_id: Creating user.
            is_public: Visible to every user.
            tags: Initial tags.
            metadata: Free-form string metadata.

        Returns:
            Created document, with an embedding when the provider answered.
        """
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not content or not content.strip():
            raise ValidationError("Content is required")

        document = Document(
            title=title.strip(),
            content=content,
            owner_id=owner_id,
            is_public=is_public,
            tags=_unique(tags or []),
            metadata=metadata or {},
        )
        initial = Version(
            document_id=document.id,
            version_number=1,
            content=content,
            change_note=INITIAL_CHANGE_NOTE,
            author_id=owner_id,
        )
        created = await self.store.create_document(document, initial)
        logger.info(f"Created document {created.id}")
        await self.activity.record(owner_id, ActivityAction.CREATE, created.id, title=created.title)
        return await self.refresh_embedding_best_effort(created)

    async def get_document(self, document_id: str, requester_id: str) -> Document:
        """
        Get a document the requester may see.

        Raises:
            NotFoundError: If missing, or neither public, owned nor shared
                with the requester.
        """
        document = await self.store.find_by_id(document_id)
        if document is None or not document.is_visible_to(requester_id):
            raise NotFoundError(f"Document {document_id} not found")
        await self.activity.record(requester_id, ActivityAction.VIEW, document_id)
        return document

    async def list_documents(
        self,
        requester_id: Optional[str],
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
        public_only: bool = False,
    ) -> Tuple[List[Document], int, int]:
        """
        Page through visible documents, most recently updated first.

        Args:
            requester_id: Viewing user; ignored when public_only is set.
            page: Page number (1-indexed).
            limit: Items per page.
            search: Case-insensitive substring of title or content.
            tags: Keep documents carrying any of these tags.
            public_only: Restrict to public documents.

        Returns:
            Tuple of (documents, total, pages).
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        query = DocumentFilter(
            visible_to=None if public_only else requester_id,
            public_only=public_only,
            search=search or None,
            tags=tags or [],
        )
        documents = await self.store.find(
            query, sort=SORT_UPDATED_DESC, skip=(page - 1) * limit, limit=limit)
        total = await self.store.count_documents(query)
        return documents, total, math.ceil(total / limit)

    async def list_public_documents(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> Tuple[List[Document], int, int]:
        """Page through public documents; see list_documents."""
        return await self.list_documents(None, page=page, limit=limit, search=search, public_only=True)

    async def update_document(
        self,
        document_id: str,
        actor_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        is_public: Optional[bool] = None,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Document:
        """
        Update a document; changed content becomes a new version.

        Args:
            document_id: Document ID.
            actor_id: Must be the owner.
            title: New title.
            content: New content.
            is_public: New visibility.
            tags: Replacement tag list.
            metadata: Replacement metadata.

        Returns:
            Updated document.
        """
        document = await self._get_owned(document_id, actor_id)

        if title is not None and not title.strip():
            raise ValidationError("Title cannot be empty")
        if content is not None and not content.strip():
            raise ValidationError("Content cannot be empty")

        fields = {}
        if title is not None:
            fields["title"] = title.strip()
        if is_public is not None:
            fields["is_public"] = is_public
        if tags is not None:
            fields["tags"] = _unique(tags)
        if metadata is not None:
            fields["metadata"] = metadata

        if fields:
            document = await self.store.update_document(document_id, fields) or document

        content_changed = content is not None and content != document.content
        if content_changed:
            _, document = await self.sequencer.commit(
                document_id, content, UPDATE_CHANGE_NOTE, actor_id)

        logger.info(f"Updated document {document_id}")
        await self.activity.record(
            actor_id,
            ActivityAction.UPDATE,
            document_id,
            fields=sorted([*fields, "content"] if content_changed else fields),
            version=document.current_version,
        )
        if content_changed:
            document = await self.refresh_embedding_best_effort(document)
        return document

    async def create_version(
        self,
        document_id: str,
        actor_id: str,
        content: str,
        change_note: Optional[str] = None,
    ) -> Version:
        """
        Record an explicit new version of a document.

        The owner and collaborators may create versions.

        Returns:
            The stored version.
        """
        await self._get_shared(document_id, actor_id)
        version, document = await self.sequencer.commit(
            document_id, content, change_note or DEFAULT_CHANGE_NOTE, actor_id)
        await self.activity.record(
            actor_id,
            ActivityAction.VERSION,
            document_id,
            version=version.version_number,
            change_note=version.change_note,
        )
        await self.refresh_embedding_best_effort(document)
        return version

    async def list_versions(self, document_id: str, requester_id: str) -> Tuple[Document, List[Version]]:
        """Document with its versions, newest first; owner and collaborators only."""
        document = await self._get_shared(document_id, requester_id)
        return document, await self.store.list_versions(document_id)

    async def get_version(self, document_id: str, requester_id: str, version_number: int) -> Version:
        """
        Get one version.

        Raises:
            NotFoundError: If the document or version does not exist.
        """
        await self._get_shared(document_id, requester_id)
        version = await self.store.get_version(document_id, version_number)
        if version is None:
            raise NotFoundError(f"Version {version_number} of document {document_id} not found")
        return version

    async def delete_document(self, document_id: str, actor_id: str) -> None:
        """Delete a document and, with it, every version."""
        document = await self._get_owned(document_id, actor_id)
        if not await self.store.delete_document(document_id):
            raise NotFoundError(f"Document {document_id} not found")
        logger.info(f"Deleted document {document_id}")
        await self.activity.record(actor_id, ActivityAction.DELETE, document_id, title=document.title)

    async def share_document(self, document_id: str, actor_id: str, user_id: str) -> Document:
        """
        Share a document with another user.

        Collaborators can read the document and create and read its versions;
        editing metadata, tags, sharing and deletion stay with the owner.

        Args:
            document_id: Document ID.
            actor_id: Must be the owner.
            user_id: User to add as a collaborator.

        Returns:
            Updated document.

        Raises:
            ValidationError: If user_id is empty, is the owner, or is already
                a collaborator.
        """
        document = await self._get_owned(document_id, actor_id)
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("User is required")
        if user_id == document.owner_id:
            raise ValidationError("Cannot share with yourself")
        if user_id in document.collaborators:
            raise ValidationError("Document already shared with this user")

        updated = await self.store.update_document(
            document_id, {"collaborators": [*document.collaborators, user_id]})
        if updated is None:
            raise NotFoundError(f"Document {document_id} not found")
        logger.info(f"Shared document {document_id} with {user_id}")
        await self.activity.record(actor_id, ActivityAction.SHARE, document_id, shared_with=user_id)
        return updated

    async def add_tag(self, document_id: str, actor_id: str, tag: str) -> Document:
        """Append a tag; duplicates are rejected."""
        document = await self._get_owned(document_id, actor_id)
        tag = tag.strip()
        if not tag:
            raise ValidationError("Tag is required")
        if tag in document.tags:
            raise ValidationError("Tag already exists")
        return await self.store.update_document(document_id, {"tags": [*document.tags, tag]})

    async def remove_tag(self, document_id: str, actor_id: str, tag: str) -> Document:
        """Remove a tag; missing tags are rejected."""
        document = await self._get_owned(document_id, actor_id)
        if tag not in document.tags:
            raise ValidationError("Tag not found")
        return await self.store.update_document(
            document_id, {"tags": [t for t in document.tags if t != tag]})

    async def regenerate_embedding(self, document_id: str, actor_id: str) -> Document:
        """
        Recompute a document's embedding on request.

        Raises:
            ProviderError: If the embedding provider fails.
        """
        document = await self._get_owned(document_id, actor_id)
        return await self._store_embedding(document)

    async def _store_embedding(self, document: Document) -> Document:
        # The vector belongs to document.current_version; a newer commit wins.
        vector = await self.embedding_cache.get_embedding(document.content)
        updated = await self.store.set_embedding(document.id, document.current_version, vector)
        if updated is not None:
            return updated

        current = await self.store.find_by_id(document.id)
        if current is None:
            raise NotFoundError(f"Document {document.id} not found")
        logger.info(
            f"Discarded embedding of version {document.current_version} for document "
            f"{document.id}, now at version {current.current_version}"
        )
        return current

    async def refresh_embedding_best_effort(self, document: Document) -> Document:
        """
        Recompute the embedding after a content write without risking the write.

        Provider failures are logged and counted; the document is returned
        without an embedding and can be refreshed later through
        regenerate_embedding. Keyword retrieval still covers it meanwhile.
        """
        try:
            return await self._store_embedding(document)
        except ProviderError as e:
            embedding_refresh_failures_total.inc()
            logger.warning(f"Embedding refresh failed for document {document.id}: {str(e)}")
        except NotFoundError:
            logger.warning(f"Document {document.id} was deleted before its embedding was stored")
        return document


def _unique(tags: List[str]) -> List[str]:
    seen = []
    for tag in (t.strip() for t in tags):
        if tag and tag not in seen:
            seen.append(tag)
    return seen
