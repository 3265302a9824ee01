"""Document retrieval over embeddings with keyword fallback."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from knowledge_hub.core.exceptions import ProviderError
from knowledge_hub.models.document import Document, DocumentFilter
from knowledge_hub.monitoring.metrics import retrieval_degradations_total
from knowledge_hub.services.embedding_cache import EmbeddingCache
from knowledge_hub.services.similarity import rank_by_similarity
from knowledge_hub.services.store import SORT_UPDATED_DESC, DocumentStore

logger = logging.getLogger(__name__)

SOURCE_SEMANTIC = "semantic"
SOURCE_KEYWORD = "keyword"

GROUNDING_KEYWORD = "keyword"
GROUNDING_SEMANTIC = "semantic"


@dataclass
class RetrievedDocument:
    """A document selected for a query, with how it was ranked."""

    document: Document
    score: float
    source: str


class RetrievalPipeline:
    """
    Answers "which documents are relevant to this query for this user".

    Visibility (owned or public) is delegated to the store through
    DocumentFilter.visible_to. Embedding failures never fail a retrieval:
    the pipeline logs the degradation and answers from full-text search.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_cache: EmbeddingCache,
        candidate_pool: int = 500,
        default_limit: int = 5,
        default_min_similarity: float = 0.7,
        grounding_limit: int = 3,
        grounding_mode: str = GROUNDING_KEYWORD,
    ) -> None:
        """
        Initialize the retrieval pipeline.

        Args:
            store: Document store.
            embedding_cache: Cached embedding provider.
            candidate_pool: Most recently updated visible documents scored per query.
            default_limit: Result count when the caller gives none.
            default_min_similarity: Threshold when the caller gives none.
            grounding_limit: Documents used to ground a chat answer.
            grounding_mode: "keyword" or "semantic" ranking for grounding.
        """
        if grounding_mode not in (GROUNDING_KEYWORD, GROUNDING_SEMANTIC):
            raise ValueError(f"Unknown grounding mode: {grounding_mode}")
        self.store = store
        self.embedding_cache = embedding_cache
        self.candidate_pool = candidate_pool
        self.default_limit = default_limit
        self.default_min_similarity = default_min_similarity
        self.grounding_limit = grounding_limit
        self.grounding_mode = grounding_mode

    async def find_relevant(
        self,
        query: str,
        requester_id: str,
        limit: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[RetrievedDocument]:
        """
        Rank visible documents by embedding similarity to the query.

        Args:
            query: Free-text query.
            requester_id: User whose visibility applies.
            limit: Maximum number of results.
            min_similarity: Minimum cosine similarity.

        Returns:
            Documents ordered by descending score. Keyword-ranked results
            are returned instead when the query cannot be embedded.
        """
        limit = self.default_limit if limit is None else limit
        min_similarity = (
            self.default_min_similarity if min_similarity is None else min_similarity
        )
        if not query.strip() or limit <= 0:
            return []

        try:
            query_vector = await self.embedding_cache.get_embedding(query)
        except ProviderError as e:
            retrieval_degradations_total.inc()
            logger.warning(
                f"Semantic retrieval unavailable, falling back to keyword search: {str(e)}")
            return await self.find_by_keyword(query, requester_id, limit)

        candidates = await self.store.find(
            DocumentFilter(visible_to=requester_id),
            sort=SORT_UPDATED_DESC,
            limit=self.candidate_pool,
        )
        ranked = rank_by_similarity(query_vector, candidates, min_similarity, limit)
        return [
            RetrievedDocument(document=r.item, score=r.score, source=SOURCE_SEMANTIC)
            for r in ranked
        ]

    async def find_by_keyword(
        self,
        query: str,
        requester_id: str,
        limit: Optional[int] = None,
    ) -> List[RetrievedDocument]:
        """
        Rank visible documents by the store's full-text relevance.

        Args:
            query: Free-text query.
            requester_id: User whose visibility applies.
            limit: Maximum number of results.

        Returns:
            Documents ordered by descending relevance.
        """
        limit = self.default_limit if limit is None else limit
        if not query.strip() or limit <= 0:
            return []

        matches = await self.store.text_search(
            query, DocumentFilter(visible_to=requester_id), limit)
        return [
            RetrievedDocument(document=document, score=score, source=SOURCE_KEYWORD)
            for document, score in matches
        ]

    async def find_grounding(self, query: str, requester_id: str) -> List[RetrievedDocument]:
        """
        Select the small set of documents used to ground a generated answer.

        Not every document has an embedding, so keyword ranking is the
        default; semantic grounding still degrades to keyword search.
        """
        if self.grounding_mode == GROUNDING_SEMANTIC:
            return await self.find_relevant(query, requester_id, limit=self.grounding_limit)
        return await self.find_by_keyword(query, requester_id, limit=self.grounding_limit)
