"""Gap-free version numbering for document edits."""

import asyncio
import logging
import threading
import weakref

from knowledge_hub.core.exceptions import (
    DuplicateVersionError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from knowledge_hub.models.document import Document, Version
from knowledge_hub.monitoring.metrics import version_conflicts_total, versions_created_total
from knowledge_hub.services.retry import retry_with_backoff
from knowledge_hub.services.store import DocumentStore

logger = logging.getLogger(__name__)


class VersionSequencer:
    """
    Assigns version numbers and keeps Document.current_version in step.

    Writers to the same document inside this process queue on a
    per-document asyncio.Lock; writers in other processes are caught by the
    store's (document_id, version_number) uniqueness and retried with a
    fresh read of the maximum. Different documents never share a lock.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_attempts: int = 5,
        retry_delay: float = 0.01,
    ) -> None:
        """
        Initialize the sequencer.

        Args:
            store: Document store.
            max_attempts: Attempts before giving up with VersionConflictError.
            retry_delay: Initial backoff between attempts, in seconds.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary())
        self._locks_guard = threading.Lock()

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[document_id] = lock
            return lock

    async def create_version(
        self,
        document_id: str,
        content: str,
        change_note: str,
        author_id: str,
    ) -> Version:
        """
        Persist the next version of a document.

        Args:
            document_id: Existing document ID.
            content: Full new content.
            change_note: Free-text description of the change.
            author_id: User making the change.

        Returns:
            The stored version.

        Raises:
            ValidationError: If content is empty.
            NotFoundError: If the document does not exist.
            VersionConflictError: If every attempt collided with another writer.
        """
        version, _ = await self.commit(document_id, content, change_note, author_id)
        return version

    async def commit(
        self,
        document_id: str,
        content: str,
        change_note: str,
        author_id: str,
    ) -> tuple[Version, Document]:
        """Same as create_version, also returning the updated document."""
        if not content or not content.strip():
            raise ValidationError("Content is required")

        async def attempt() -> tuple[Version, Document]:
            if await self.store.find_by_id(document_id) is None:
                raise NotFoundError(f"Document {document_id} not found")

            next_number = await self.store.get_max_version_number(document_id) + 1
            version = Version(
                document_id=document_id,
                version_number=next_number,
                content=content,
                change_note=change_note,
                author_id=author_id,
            )
            try:
                document = await self.store.commit_version(version)
            except DuplicateVersionError:
                version_conflicts_total.inc()
                raise
            return version, document

        async with self._lock_for(document_id):
            try:
                version, document = await retry_with_backoff(
                    attempt,
                    max_retries=self.max_attempts - 1,
                    delay=self.retry_delay,
                    backoff_multiplier=2.0,
                    exceptions=(DuplicateVersionError,),
                    description=f"Version sequencing for document {document_id}",
                )
            except DuplicateVersionError as e:
                raise VersionConflictError(
                    f"Could not assign a version to document {document_id} "
                    f"after {self.max_attempts} attempts"
                ) from e

        versions_created_total.inc()
        logger.info(f"Created version {version.version_number} of document {document_id}")
        return version, document
