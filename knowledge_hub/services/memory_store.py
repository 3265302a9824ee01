"""In-process document store used by tests and the memory backend."""

import asyncio
import re
from typing import Any, Dict, List, Optional, Tuple

from knowledge_hub.core.exceptions import DatabaseError, DuplicateVersionError, NotFoundError
from knowledge_hub.models.document import (
    Activity,
    Document,
    DocumentFilter,
    Feedback,
    Version,
    utcnow,
)
from knowledge_hub.services.store import (
    SORT_CREATED_DESC,
    SORT_TITLE_ASC,
    DocumentStore,
)

_TOKEN = re.compile(r"\w+")


def _tokens(text: str) -> List[str]:
    return _TOKEN.findall(text.lower())


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed store.

    Every await point sits outside the critical sections, so a single
    asyncio.Lock is enough to make each primitive atomic.
    """

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._documents: Dict[str, Document] = {}
        self._versions: Dict[str, Dict[int, Version]] = {}
        self._feedback: List[Feedback] = []
        self._activities: List[Activity] = []
        self._lock = asyncio.Lock()

    @property
    def feedback(self) -> List[Feedback]:
        """Stored feedback records."""
        return list(self._feedback)

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        async with self._lock:
            document = self._documents.get(document_id)
            return document.model_copy(deep=True) if document else None

    async def find(
        self,
        query: DocumentFilter,
        sort: str = "-updated_at",
        skip: int = 0,
        limit: int = 100,
    ) -> List[Document]:
        async with self._lock:
            matches = [d for d in self._documents.values() if query.matches(d)]
        if sort == SORT_TITLE_ASC:
            matches.sort(key=lambda d: d.title.lower())
        elif sort == SORT_CREATED_DESC:
            matches.sort(key=lambda d: d.created_at, reverse=True)
        else:
            matches.sort(key=lambda d: d.updated_at, reverse=True)
        return [d.model_copy(deep=True) for d in matches[skip:skip + limit]]

    async def count_documents(self, query: DocumentFilter) -> int:
        async with self._lock:
            return sum(1 for d in self._documents.values() if query.matches(d))

    async def text_search(
        self, text: str, query: DocumentFilter, limit: int
    ) -> List[Tuple[Document, float]]:
        terms = set(_tokens(text))
        if not terms:
            return []

        async with self._lock:
            candidates = [d for d in self._documents.values() if query.matches(d)]

        scored = []
        for document in candidates:
            words = _tokens(f"{document.title} {document.content}")
            if not words:
                continue
            hits = sum(1 for word in words if word in terms)
            if hits:
                scored.append((document.model_copy(deep=True), hits / len(words) + hits))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def create_document(self, document: Document, initial_version: Version) -> Document:
        async with self._lock:
            if document.id in self._documents:
                raise DatabaseError(f"Document {document.id} already exists")
            stored = document.model_copy(
                update={"current_version": initial_version.version_number}, deep=True)
            self._documents[stored.id] = stored
            self._versions[stored.id] = {initial_version.version_number: initial_version}
            return stored.model_copy(deep=True)

    async def update_document(
        self, document_id: str, fields: Dict[str, Any]
    ) -> Optional[Document]:
        async with self._lock:
            document = self._documents.get(document_id)
            if not document:
                return None
            updated = document.model_copy(update={**fields, "updated_at": utcnow()}, deep=True)
            self._documents[document_id] = updated
            return updated.model_copy(deep=True)

    async def set_embedding(
        self, document_id: str, expected_version: int, embedding: List[float]
    ) -> Optional[Document]:
        async with self._lock:
            document = self._documents.get(document_id)
            if not document or document.current_version != expected_version:
                return None
            updated = document.model_copy(update={"embedding": list(embedding)}, deep=True)
            self._documents[document_id] = updated
            return updated.model_copy(deep=True)

    async def delete_document(self, document_id: str) -> bool:
        async with self._lock:
            existed = self._documents.pop(document_id, None) is not None
            self._versions.pop(document_id, None)
            return existed

    async def get_max_version_number(self, document_id: str) -> int:
        async with self._lock:
            return max(self._versions.get(document_id, {}), default=0)

    async def commit_version(self, version: Version) -> Document:
        async with self._lock:
            document = self._documents.get(version.document_id)
            if not document:
                raise NotFoundError(f"Document {version.document_id} not found")
            history = self._versions.setdefault(version.document_id, {})
            if version.version_number in history:
                raise DuplicateVersionError(
                    f"Version {version.version_number} of document "
                    f"{version.document_id} already exists"
                )
            history[version.version_number] = version
            updated = document.model_copy(
                update={
                    "content": version.content,
                    "current_version": max(history),
                    "embedding": None,
                    "updated_at": utcnow(),
                },
                deep=True,
            )
            self._documents[document.id] = updated
            return updated.model_copy(deep=True)

    async def list_versions(self, document_id: str) -> List[Version]:
        async with self._lock:
            history = self._versions.get(document_id, {})
            return [history[n] for n in sorted(history, reverse=True)]

    async def get_version(self, document_id: str, version_number: int) -> Optional[Version]:
        async with self._lock:
            return self._versions.get(document_id, {}).get(version_number)

    async def save_feedback(self, feedback: Feedback) -> Feedback:
        async with self._lock:
            self._feedback.append(feedback)
        return feedback

    async def record_activity(self, activity: Activity) -> Activity:
        async with self._lock:
            self._activities.append(activity)
        return activity

    async def list_activities(
        self,
        user_id: str,
        actions: Optional[List[str]] = None,
        limit: int = 50,
    ) -> List[Activity]:
        async with self._lock:
            entries = [
                a for a in reversed(self._activities)
                if a.user_id == user_id and (not actions or a.action in actions)
            ]
        return entries[:limit]
