"""Keyword and semantic search endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Query

from knowledge_hub.api.deps import Services, UserId, http_error
from knowledge_hub.models.document import ActivityAction
from knowledge_hub.models.qa_api import ActivityResponse, HistoryResponse, SearchHit, SearchResponse
from knowledge_hub.monitoring.metrics import query_counter
from knowledge_hub.services.grounding import truncate
from knowledge_hub.services.retrieval import SOURCE_KEYWORD, SOURCE_SEMANTIC, RetrievedDocument

router = APIRouter(prefix="/api/search", tags=["Search"])


def _hits(results: List[RetrievedDocument], snippet_chars: int) -> List[SearchHit]:
    return [
        SearchHit(
            document_id=r.document.id,
            title=r.document.title,
            snippet=truncate(r.document.content, snippet_chars),
            score=r.score,
        )
        for r in results
    ]


@router.get("", response_model=SearchResponse)
async def search(
    services: Services,
    user_id: UserId,
    q: str = Query(..., min_length=1, max_length=500),
    limit: int = Query(10, ge=1, le=50),
) -> SearchResponse:
    """Full-text search over visible documents."""
    query_counter.inc()
    try:
        results = await services.retrieval.find_by_keyword(q, user_id, limit=limit)
    except Exception as e:
        raise http_error(e, "Search")
    await services.activity.record(
        user_id, ActivityAction.SEARCH, query=q, mode=SOURCE_KEYWORD, results=len(results))
    return SearchResponse(
        query=q,
        results=_hits(results, services.settings.source_snippet_chars),
        mode=SOURCE_KEYWORD,
    )


@router.get("/semantic", response_model=SearchResponse)
async def semantic_search(
    services: Services,
    user_id: UserId,
    q: str = Query(..., min_length=1, max_length=500),
    limit: Optional[int] = Query(None, ge=1, le=50),
    min_similarity: Optional[float] = Query(None, ge=-1.0, le=1.0),
) -> SearchResponse:
    """
    Embedding similarity search over visible documents.

    When the query cannot be embedded the results come from keyword search
    and mode reports "keyword".
    """
    query_counter.inc()
    try:
        results = await services.retrieval.find_relevant(
            q, user_id, limit=limit, min_similarity=min_similarity)
    except Exception as e:
        raise http_error(e, "Semantic search")

    mode = SOURCE_SEMANTIC
    if results and all(r.source == SOURCE_KEYWORD for r in results):
        mode = SOURCE_KEYWORD
    await services.activity.record(
        user_id, ActivityAction.SEARCH, query=q, mode=mode, results=len(results))
    return SearchResponse(
        query=q,
        results=_hits(results, services.settings.source_snippet_chars),
        mode=mode,
    )


@router.get("/history", response_model=HistoryResponse)
async def search_history(
    services: Services,
    user_id: UserId,
    limit: int = Query(50, ge=1, le=200),
) -> HistoryResponse:
    """Searches the requester ran, newest first."""
    try:
        activities = await services.activity.history(user_id, [ActivityAction.SEARCH], limit=limit)
    except Exception as e:
        raise http_error(e, "Search history")
    return HistoryResponse(activities=[ActivityResponse.from_activity(a) for a in activities])
