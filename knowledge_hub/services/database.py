"""Database service for PostgreSQL operations."""

import json
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from knowledge_hub.core.exceptions import DatabaseError, DuplicateVersionError, NotFoundError
from knowledge_hub.models.document import (
    Activity,
    ActivityAction,
    Document,
    DocumentFilter,
    Feedback,
    Version,
)
from knowledge_hub.services.store import (
    SORT_CREATED_DESC,
    SORT_TITLE_ASC,
    DocumentStore,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id UUID PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    is_public BOOLEAN NOT NULL DEFAULT FALSE,
    tags TEXT[] NOT NULL DEFAULT '{}',
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    collaborators TEXT[] NOT NULL DEFAULT '{}',
    current_version INTEGER NOT NULL DEFAULT 1,
    embedding DOUBLE PRECISION[],
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    search_vector TSVECTOR GENERATED ALWAYS AS (
        to_tsvector('english', coalesce(title, '') || ' ' || coalesce(content, ''))
    ) STORED
);
CREATE INDEX IF NOT EXISTS ix_documents_owner_id ON documents (owner_id);
CREATE INDEX IF NOT EXISTS ix_documents_is_public ON documents (is_public);
ALTER TABLE documents ADD COLUMN IF NOT EXISTS collaborators TEXT[] NOT NULL DEFAULT '{}';
CREATE INDEX IF NOT EXISTS ix_documents_search ON documents USING GIN (search_vector);
CREATE INDEX IF NOT EXISTS ix_documents_collaborators ON documents USING GIN (collaborators);

CREATE TABLE IF NOT EXISTS document_versions (
    id UUID PRIMARY KEY,
    document_id UUID NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
    version_number INTEGER NOT NULL CHECK (version_number >= 1),
    content TEXT NOT NULL,
    change_note TEXT NOT NULL,
    author_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT uq_document_versions_number UNIQUE (document_id, version_number)
);

CREATE TABLE IF NOT EXISTS qa_feedback (
    id UUID PRIMARY KEY,
    user_id TEXT NOT NULL,
    session_id TEXT,
    question TEXT NOT NULL,
    answer TEXT NOT NULL,
    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS activities (
    id UUID PRIMARY KEY,
    user_id TEXT NOT NULL,
    document_id UUID,
    action TEXT NOT NULL,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS ix_activities_user_created ON activities (user_id, created_at DESC);
"""

DOCUMENT_COLUMNS = (
    "id, title, content, owner_id, is_public, tags, metadata, collaborators, "
    "current_version, embedding, created_at, updated_at"
)
VERSION_COLUMNS = "id, document_id, version_number, content, change_note, author_id, created_at"

UPDATABLE_FIELDS = {"title", "is_public", "tags", "metadata", "collaborators"}

ORDER_BY = {
    SORT_TITLE_ASC: "lower(title) ASC",
    SORT_CREATED_DESC: "created_at DESC",
}


def _row_to_document(row: asyncpg.Record) -> Document:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Document(
        id=str(row["id"]),
        title=row["title"],
        content=row["content"],
        owner_id=row["owner_id"],
        is_public=row["is_public"],
        tags=list(row["tags"] or []),
        metadata=metadata or {},
        collaborators=list(row["collaborators"] or []),
        current_version=row["current_version"],
        embedding=list(row["embedding"]) if row["embedding"] is not None else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_version(row: asyncpg.Record) -> Version:
    return Version(
        id=str(row["id"]),
        document_id=str(row["document_id"]),
        version_number=row["version_number"],
        content=row["content"],
        change_note=row["change_note"],
        author_id=row["author_id"],
        created_at=row["created_at"],
    )


def build_where(query: DocumentFilter, params: List[Any]) -> str:
    """
    Translate a DocumentFilter into a SQL WHERE clause.

    Args:
        query: Filter to translate.
        params: Positional parameter list, extended in place.

    Returns:
        WHERE clause (without the keyword) or "TRUE".
    """
    clauses = []

    if query.visible_to is not None:
        params.append(query.visible_to)
        clauses.append(
            f"(owner_id = ${len(params)} OR is_public OR ${len(params)} = ANY(collaborators))")
    if query.owner_id is not None:
        params.append(query.owner_id)
        clauses.append(f"owner_id = ${len(params)}")
    if query.public_only:
        clauses.append("is_public")
    if query.tags:
        params.append(query.tags)
        clauses.append(f"tags && ${len(params)}::text[]")
    if query.search:
        params.append(f"%{query.search}%")
        clauses.append(f"(title ILIKE ${len(params)} OR content ILIKE ${len(params)})")
    if query.has_embedding is True:
        clauses.append("cardinality(embedding) > 0")
    elif query.has_embedding is False:
        clauses.append("(embedding IS NULL OR cardinality(embedding) = 0)")

    return " AND ".join(clauses) if clauses else "TRUE"


class DatabaseService(DocumentStore):
    """Service for PostgreSQL database operations."""

    def __init__(self, postgres_url: str, min_size: int = 2, max_size: int = 10) -> None:
        """
        Initialize database service.

        Args:
            postgres_url: Connection string.
            min_size: Minimum pool size.
            max_size: Maximum pool size.
        """
        self.postgres_url = postgres_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and ensure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                self.postgres_url,
                min_size=self.min_size,
                max_size=self.max_size,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    async def ping(self) -> None:
        """Run a trivial query through the pool."""
        pool = self._require_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise DatabaseError("Database not connected")
        return self.pool

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        """
        Get a single document by ID.

        Args:
            document_id: Document UUID.

        Returns:
            Document or None if not found.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = $1::uuid",
                    document_id,
                )
                return _row_to_document(row) if row else None
        except (asyncpg.DataError, ValueError):
            # Malformed UUIDs cannot match any document.
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

    async def find(
        self,
        query: DocumentFilter,
        sort: str = "-updated_at",
        skip: int = 0,
        limit: int = 100,
    ) -> List[Document]:
        """
        Get documents matching a filter.

        Args:
            query: Document filter.
            sort: Sort key.
            skip: Number of documents to skip.
            limit: Maximum number of documents to return.

        Returns:
            List of documents.
        """
        pool = self._require_pool()
        params: List[Any] = []
        where = build_where(query, params)
        order_by = ORDER_BY.get(sort, "updated_at DESC")
        params.extend([limit, skip])

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {DOCUMENT_COLUMNS}
                    FROM documents
                    WHERE {where}
                    ORDER BY {order_by}
                    LIMIT ${len(params) - 1} OFFSET ${len(params)}
                    """,
                    *params,
                )
                return [_row_to_document(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch documents: {str(e)}") from e

    async def count_documents(self, query: DocumentFilter) -> int:
        """
        Count documents matching a filter.

        Args:
            query: Document filter.

        Returns:
            Matching document count.
        """
        pool = self._require_pool()
        params: List[Any] = []
        where = build_where(query, params)

        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    f"SELECT COUNT(*) FROM documents WHERE {where}", *params)
        except Exception as e:
            raise DatabaseError(f"Failed to count documents: {str(e)}") from e

    async def text_search(
        self, text: str, query: DocumentFilter, limit: int
    ) -> List[Tuple[Document, float]]:
        """
        Full-text search ranked by ts_rank.

        Args:
            text: Free-text query.
            query: Additional document filter.
            limit: Maximum number of results.

        Returns:
            List of (document, relevance score) pairs.
        """
        pool = self._require_pool()
        params: List[Any] = [text]
        where = build_where(query, params)
        params.append(limit)

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {DOCUMENT_COLUMNS},
                           ts_rank(search_vector, plainto_tsquery('english', $1)) AS score
                    FROM documents
                    WHERE search_vector @@ plainto_tsquery('english', $1) AND {where}
                    ORDER BY score DESC
                    LIMIT ${len(params)}
                    """,
                    *params,
                )
                return [(_row_to_document(row), float(row["score"])) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to search documents: {str(e)}") from e

    async def create_document(self, document: Document, initial_version: Version) -> Document:
        """
        Create a new document together with its first version.

        Args:
            document: Document to insert.
            initial_version: Version 1 snapshot.

        Returns:
            Created document.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        INSERT INTO documents
                            (id, title, content, owner_id, is_public, tags, metadata, collaborators,
                             current_version, embedding, created_at, updated_at)
                        VALUES ($1::uuid, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $12)
                        RETURNING {DOCUMENT_COLUMNS}
                        """,
                        document.id,
                        document.title,
                        document.content,
                        document.owner_id,
                        document.is_public,
                        document.tags,
                        json.dumps(document.metadata),
                        document.collaborators,
                        initial_version.version_number,
                        document.embedding,
                        document.created_at,
                        document.updated_at,
                    )
                    await self._insert_version(conn, initial_version)
                    return _row_to_document(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

    async def update_document(
        self, document_id: str, fields: Dict[str, Any]
    ) -> Optional[Document]:
        """
        Update non-versioned document fields.

        Args:
            document_id: Document UUID.
            fields: Column values to set.

        Returns:
            Updated document or None if not found.
        """
        pool = self._require_pool()
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise DatabaseError(f"Fields cannot be updated directly: {sorted(unknown)}")

        updates = []
        params: List[Any] = []
        for name, value in fields.items():
            if name == "metadata":
                value = json.dumps(value)
                params.append(value)
                updates.append(f"metadata = ${len(params)}::jsonb")
            else:
                params.append(value)
                updates.append(f"{name} = ${len(params)}")
        updates.append("updated_at = now()")
        params.append(document_id)

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE documents
                    SET {', '.join(updates)}
                    WHERE id = ${len(params)}::uuid
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    *params,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to update document: {str(e)}") from e

    async def set_embedding(
        self, document_id: str, expected_version: int, embedding: List[float]
    ) -> Optional[Document]:
        """
        Store an embedding computed for a specific version.

        Args:
            document_id: Document UUID.
            expected_version: Version whose content was embedded.
            embedding: Vector to store.

        Returns:
            Updated document, or None if the document is gone or a newer
            version was committed meanwhile.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE documents
                    SET embedding = $3
                    WHERE id = $1::uuid AND current_version = $2
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    document_id,
                    expected_version,
                    embedding,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to store embedding: {str(e)}") from e

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document; versions go with it through ON DELETE CASCADE.

        Args:
            document_id: Document UUID.

        Returns:
            True if deleted, False if not found.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM documents WHERE id = $1::uuid",
                    document_id,
                )
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e

    async def get_max_version_number(self, document_id: str) -> int:
        """
        Highest version number stored for a document.

        Args:
            document_id: Document UUID.

        Returns:
            Maximum version number, 0 when the document has none.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                value = await conn.fetchval(
                    "SELECT MAX(version_number) FROM document_versions WHERE document_id = $1::uuid",
                    document_id,
                )
                return value or 0
        except Exception as e:
            raise DatabaseError(f"Failed to read version number: {str(e)}") from e

    async def commit_version(self, version: Version) -> Document:
        """
        Insert a version and advance the owning document in one transaction.

        Args:
            version: Version to persist.

        Returns:
            Updated document.

        Raises:
            NotFoundError: If the document does not exist.
            DuplicateVersionError: If the version number is already taken.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "SELECT 1 FROM documents WHERE id = $1::uuid FOR UPDATE",
                        version.document_id,
                    )
                    if not exists:
                        raise NotFoundError(f"Document {version.document_id} not found")

                    try:
                        await self._insert_version(conn, version)
                    except asyncpg.UniqueViolationError as e:
                        raise DuplicateVersionError(
                            f"Version {version.version_number} of document "
                            f"{version.document_id} already exists"
                        ) from e

                    row = await conn.fetchrow(
                        f"""
                        UPDATE documents
                        SET content = $2,
                            current_version = GREATEST(current_version, $3),
                            embedding = NULL,
                            updated_at = now()
                        WHERE id = $1::uuid
                        RETURNING {DOCUMENT_COLUMNS}
                        """,
                        version.document_id,
                        version.content,
                        version.version_number,
                    )
                    return _row_to_document(row)
        except (NotFoundError, DuplicateVersionError):
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to commit version: {str(e)}") from e

    async def _insert_version(self, conn: asyncpg.Connection, version: Version) -> None:
        await conn.execute(
            f"""
            INSERT INTO document_versions ({VERSION_COLUMNS})
            VALUES ($1::uuid, $2::uuid, $3, $4, $5, $6, $7)
            """,
            version.id,
            version.document_id,
            version.version_number,
            version.content,
            version.change_note,
            version.author_id,
            version.created_at,
        )

    async def list_versions(self, document_id: str) -> List[Version]:
        """
        Get the version history of a document, newest first.

        Args:
            document_id: Document UUID.

        Returns:
            List of versions.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {VERSION_COLUMNS}
                    FROM document_versions
                    WHERE document_id = $1::uuid
                    ORDER BY version_number DESC
                    """,
                    document_id,
                )
                return [_row_to_version(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch versions: {str(e)}") from e

    async def get_version(self, document_id: str, version_number: int) -> Optional[Version]:
        """
        Get one version of a document.

        Args:
            document_id: Document UUID.
            version_number: Version number.

        Returns:
            Version or None if not found.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {VERSION_COLUMNS}
                    FROM document_versions
                    WHERE document_id = $1::uuid AND version_number = $2
                    """,
                    document_id,
                    version_number,
                )
                return _row_to_version(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch version: {str(e)}") from e

    async def save_feedback(self, feedback: Feedback) -> Feedback:
        """
        Store answer feedback.

        Args:
            feedback: Feedback record.

        Returns:
            Stored feedback.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO qa_feedback
                        (id, user_id, session_id, question, answer, rating, comment, created_at)
                    VALUES ($1::uuid, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    feedback.id,
                    feedback.user_id,
                    feedback.session_id,
                    feedback.question,
                    feedback.answer,
                    feedback.rating,
                    feedback.comment,
                    feedback.created_at,
                )
                return feedback
        except Exception as e:
            raise DatabaseError(f"Failed to save feedback: {str(e)}") from e

    async def record_activity(self, activity: Activity) -> Activity:
        """
        Append an entry to the activity log.

        Args:
            activity: Activity entry.

        Returns:
            Stored activity.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO activities (id, user_id, document_id, action, details, created_at)
                    VALUES ($1::uuid, $2, $3::uuid, $4, $5::jsonb, $6)
                    """,
                    activity.id,
                    activity.user_id,
                    activity.document_id,
                    activity.action.value,
                    json.dumps(activity.details, default=str),
                    activity.created_at,
                )
                return activity
        except Exception as e:
            raise DatabaseError(f"Failed to record activity: {str(e)}") from e

    async def list_activities(
        self,
        user_id: str,
        actions: Optional[List[str]] = None,
        limit: int = 50,
    ) -> List[Activity]:
        """
        Get a user's activity, newest first.

        Args:
            user_id: User whose activity to list.
            actions: Keep only these actions.
            limit: Maximum number of entries.

        Returns:
            List of activities.
        """
        pool = self._require_pool()
        params: List[Any] = [user_id]
        where = "user_id = $1"
        if actions:
            params.append([ActivityAction(a).value for a in actions])
            where += " AND action = ANY($2::text[])"
        params.append(limit)

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT id, user_id, document_id, action, details, created_at
                    FROM activities
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT ${len(params)}
                    """,
                    *params,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch activities: {str(e)}") from e

        activities = []
        for row in rows:
            details = row["details"]
            if isinstance(details, str):
                details = json.loads(details)
            activities.append(Activity(
                id=str(row["id"]),
                user_id=row["user_id"],
                document_id=str(row["document_id"]) if row["document_id"] else None,
                action=row["action"],
                details=details or {},
                created_at=row["created_at"],
            ))
        return activities
