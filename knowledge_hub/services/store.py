"""Document store contract shared by the PostgreSQL and in-memory backends."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from knowledge_hub.models.document import Activity, Document, DocumentFilter, Feedback, Version

SORT_UPDATED_DESC = "-updated_at"
SORT_CREATED_DESC = "-created_at"
SORT_TITLE_ASC = "title"

SORT_FIELDS = {SORT_UPDATED_DESC, SORT_CREATED_DESC, SORT_TITLE_ASC}


class DocumentStore(ABC):
    """
    Persistence primitives the retrieval core depends on.

    Implementations must enforce uniqueness of (document_id, version_number)
    and raise DuplicateVersionError on violation, and must apply
    commit_version atomically: either the version row and the document's
    content/current_version change together, or nothing changes.
    """

    async def connect(self) -> None:
        """Open connections."""

    async def disconnect(self) -> None:
        """Close connections."""

    async def ping(self) -> None:
        """Raise if the backend cannot serve requests."""

    @abstractmethod
    async def find_by_id(self, document_id: str) -> Optional[Document]:
        """Return a document or None."""

    @abstractmethod
    async def find(
        self,
        query: DocumentFilter,
        sort: str = SORT_UPDATED_DESC,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Document]:
        """Return documents matching a filter."""

    @abstractmethod
    async def count_documents(self, query: DocumentFilter) -> int:
        """Count documents matching a filter."""

    @abstractmethod
    async def text_search(
        self, text: str, query: DocumentFilter, limit: int
    ) -> List[Tuple[Document, float]]:
        """Return (document, relevance) pairs, most relevant first."""

    @abstractmethod
    async def create_document(self, document: Document, initial_version: Version) -> Document:
        """Persist a new document together with its first version."""

    @abstractmethod
    async def update_document(
        self, document_id: str, fields: Dict[str, Any]
    ) -> Optional[Document]:
        """Save non-versioned fields (title, tags, visibility, collaborators)."""

    @abstractmethod
    async def set_embedding(
        self, document_id: str, expected_version: int, embedding: List[float]
    ) -> Optional[Document]:
        """
        Store an embedding only while current_version equals expected_version.

        Returns the updated document, or None when the document is gone or
        has moved past the version the vector was computed for.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and all of its versions."""

    @abstractmethod
    async def get_max_version_number(self, document_id: str) -> int:
        """Highest stored version number, 0 when none exist."""

    @abstractmethod
    async def commit_version(self, version: Version) -> Document:
        """Insert a version and advance the document to it atomically."""

    @abstractmethod
    async def list_versions(self, document_id: str) -> List[Version]:
        """Versions of a document, newest first."""

    @abstractmethod
    async def get_version(self, document_id: str, version_number: int) -> Optional[Version]:
        """Return one version or None."""

    @abstractmethod
    async def save_feedback(self, feedback: Feedback) -> Feedback:
        """Persist answer feedback."""

    @abstractmethod
    async def record_activity(self, activity: Activity) -> Activity:
        """Append an entry to the activity log."""

    @abstractmethod
    async def list_activities(
        self,
        user_id: str,
        actions: Optional[List[str]] = None,
        limit: int = 50,
    ) -> List[Activity]:
        """A user's activity entries, newest first, optionally by action."""
