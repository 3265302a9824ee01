"""Document, version and tag endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from knowledge_hub.api.deps import Services, UserId, http_error
from knowledge_hub.models.document_api import (
    DocumentCreate,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdate,
    EmbeddingStatusResponse,
    ShareRequest,
    TagCreate,
    VersionCreate,
    VersionListResponse,
    VersionResponse,
)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(body: DocumentCreate, services: Services, user_id: UserId) -> DocumentResponse:
    """Create a document with its first version."""
    try:
        document = await services.documents.create_document(
            title=body.title,
            content=body.content,
            owner_id=user_id,
            is_public=body.is_public,
            tags=body.tags,
            metadata=body.metadata,
        )
    except Exception as e:
        raise http_error(e, "Document creation")
    return DocumentResponse.from_document(document)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    services: Services,
    user_id: UserId,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    tags: Optional[List[str]] = Query(None),
) -> DocumentListResponse:
    """
    List documents visible to the requester.

    Args:
        page: Page number (1-indexed).
        limit: Items per page.
        search: Substring of title or content.
        tags: Keep documents carrying any of these tags.

    Returns:
        One page of documents, most recently updated first.
    """
    try:
        documents, total, pages = await services.documents.list_documents(
            user_id, page=page, limit=limit, search=search, tags=tags)
    except Exception as e:
        raise http_error(e, "Document listing")
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in documents],
        total=total,
        page=page,
        pages=pages,
    )


@router.get("/public", response_model=DocumentListResponse)
async def list_public_documents(
    services: Services,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
) -> DocumentListResponse:
    """List public documents; no identity required."""
    try:
        documents, total, pages = await services.documents.list_public_documents(
            page=page, limit=limit, search=search)
    except Exception as e:
        raise http_error(e, "Public document listing")
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in documents],
        total=total,
        page=page,
        pages=pages,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str, services: Services, user_id: UserId) -> DocumentResponse:
    """Get a document the requester owns or that is public."""
    try:
        document = await services.documents.get_document(document_id, user_id)
    except Exception as e:
        raise http_error(e, "Document lookup")
    return DocumentResponse.from_document(document)


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str, body: DocumentUpdate, services: Services, user_id: UserId
) -> DocumentResponse:
    """Update a document; a content change records a new version."""
    try:
        document = await services.documents.update_document(
            document_id,
            user_id,
            title=body.title,
            content=body.content,
            is_public=body.is_public,
            tags=body.tags,
            metadata=body.metadata,
        )
    except Exception as e:
        raise http_error(e, "Document update")
    return DocumentResponse.from_document(document)


@router.delete("/{document_id}")
async def delete_document(document_id: str, services: Services, user_id: UserId) -> dict:
    """Delete a document and all of its versions."""
    try:
        await services.documents.delete_document(document_id, user_id)
    except Exception as e:
        raise http_error(e, "Document deletion")
    return {"message": "Document removed"}


@router.post("/{document_id}/version", response_model=VersionResponse,
             status_code=status.HTTP_201_CREATED)
async def create_version(
    document_id: str, body: VersionCreate, services: Services, user_id: UserId
) -> VersionResponse:
    """Record a new version of a document."""
    try:
        version = await services.documents.create_version(
            document_id, user_id, body.content, body.change_note)
    except Exception as e:
        raise http_error(e, "Version creation")
    return VersionResponse.from_version(version)


@router.get("/{document_id}/versions", response_model=VersionListResponse)
async def list_versions(document_id: str, services: Services, user_id: UserId) -> VersionListResponse:
    """Version history of a document, newest first."""
    try:
        document, versions = await services.documents.list_versions(document_id, user_id)
    except Exception as e:
        raise http_error(e, "Version listing")
    return VersionListResponse(
        document_id=document.id,
        title=document.title,
        current_version=document.current_version,
        versions=[VersionResponse.from_version(v) for v in versions],
    )


@router.get("/{document_id}/version/{version_number}", response_model=VersionResponse)
async def get_version(
    document_id: str, version_number: int, services: Services, user_id: UserId
) -> VersionResponse:
    """A single version of a document."""
    try:
        version = await services.documents.get_version(document_id, user_id, version_number)
    except Exception as e:
        raise http_error(e, "Version lookup")
    return VersionResponse.from_version(version)


@router.post("/{document_id}/tag", response_model=DocumentResponse)
async def add_tag(
    document_id: str, body: TagCreate, services: Services, user_id: UserId
) -> DocumentResponse:
    """Add a tag to a document."""
    try:
        document = await services.documents.add_tag(document_id, user_id, body.tag)
    except Exception as e:
        raise http_error(e, "Tag creation")
    return DocumentResponse.from_document(document)


@router.delete("/{document_id}/tag/{tag}", response_model=DocumentResponse)
async def remove_tag(document_id: str, tag: str, services: Services, user_id: UserId) -> DocumentResponse:
    """Remove a tag from a document."""
    try:
        document = await services.documents.remove_tag(document_id, user_id, tag)
    except Exception as e:
        raise http_error(e, "Tag removal")
    return DocumentResponse.from_document(document)


@router.post("/{document_id}/embed", response_model=EmbeddingStatusResponse)
async def regenerate_embedding(
    document_id: str, services: Services, user_id: UserId
) -> EmbeddingStatusResponse:
    """Recompute a document's embedding; provider failures surface as 502."""
    try:
        document = await services.documents.regenerate_embedding(document_id, user_id)
    except Exception as e:
        raise http_error(e, "Embedding generation")
    return EmbeddingStatusResponse(
        id=document.id,
        title=document.title,
        has_embedding=document.has_embedding,
        dimensions=len(document.embedding or []),
    )


@router.post("/{document_id}/share", response_model=DocumentResponse)
async def share_document(
    document_id: str, body: ShareRequest, services: Services, user_id: UserId
) -> DocumentResponse:
    """Share a document with a collaborator."""
    try:
        document = await services.documents.share_document(document_id, user_id, body.user_id)
    except Exception as e:
        raise http_error(e, "Document sharing")
    return DocumentResponse.from_document(document)
