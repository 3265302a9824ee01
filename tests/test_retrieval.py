"""Tests for the retrieval pipeline."""

import asyncio

import pytest

from conftest import HeldEmbeddingProvider
from knowledge_hub.models.document import Document, Version
from knowledge_hub.services.embedding_cache import EmbeddingCache
from knowledge_hub.services.retrieval import (
    GROUNDING_SEMANTIC,
    SOURCE_KEYWORD,
    SOURCE_SEMANTIC,
    RetrievalPipeline,
)


async def add(store, title, content, owner="U1", is_public=False, embedding=None) -> Document:
    document = Document(
        title=title, content=content, owner_id=owner, is_public=is_public, embedding=embedding)
    initial = Version(
        document_id=document.id,
        version_number=1,
        content=content,
        change_note="Initial version",
        author_id=owner,
    )
    return await store.create_document(document, initial)


class TestFindRelevant:
    @pytest.mark.asyncio
    async def test_ranks_visible_documents_above_threshold(self, store, embedder, retrieval):
        embedder.vectors["q"] = [1.0, 0.0]
        a = await add(store, "A", "alpha", embedding=[1.0, 0.0])
        b = await add(store, "B", "beta", embedding=[0.6, 0.8])
        await add(store, "C", "gamma", embedding=None)

        results = await retrieval.find_relevant("q", "U1", limit=5, min_similarity=0.5)

        assert [r.document.id for r in results] == [a.id, b.id]
        assert [r.score for r in results] == pytest.approx([1.0, 0.6])
        assert all(r.source == SOURCE_SEMANTIC for r in results)

    @pytest.mark.asyncio
    async def test_default_threshold_applies(self, store, embedder, retrieval):
        embedder.vectors["q"] = [1.0, 0.0]
        await add(store, "A", "alpha", embedding=[1.0, 0.0])
        await add(store, "B", "beta", embedding=[0.6, 0.8])

        results = await retrieval.find_relevant("q", "U1")

        assert [r.document.title for r in results] == ["A"]

    @pytest.mark.asyncio
    async def test_only_owned_or_public_documents(self, store, embedder, retrieval):
        embedder.vectors["q"] = [1.0, 0.0]
        await add(store, "mine", "x", owner="U1", embedding=[1.0, 0.0])
        await add(store, "theirs", "x", owner="U2", embedding=[1.0, 0.0])
        await add(store, "shared", "x", owner="U2", is_public=True, embedding=[1.0, 0.0])

        results = await retrieval.find_relevant("q", "U1", limit=10, min_similarity=0.0)

        assert sorted(r.document.title for r in results) == ["mine", "shared"]

    @pytest.mark.asyncio
    async def test_documents_shared_with_requester_are_candidates(self, store, embedder, retrieval):
        embedder.vectors["q"] = [1.0, 0.0]
        shared = await add(store, "shared with me", "x", owner="U2", embedding=[1.0, 0.0])
        await store.update_document(shared.id, {"collaborators": ["U1"]})

        results = await retrieval.find_relevant("q", "U1", limit=10, min_similarity=0.0)

        assert [r.document.id for r in results] == [shared.id]

    @pytest.mark.asyncio
    async def test_cancelled_request_does_not_fail_concurrent_query(self, store):
        provider = HeldEmbeddingProvider("query", vectors={"query": [1.0, 0.0]})
        retrieval = RetrievalPipeline(store, EmbeddingCache(provider), default_min_similarity=0.5)
        document = await add(store, "A", "alpha", embedding=[1.0, 0.0])

        first = asyncio.create_task(retrieval.find_relevant("query", "U1"))
        await provider.reached.wait()
        second = asyncio.create_task(retrieval.find_relevant("query", "U1"))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        provider.release.set()

        results = await second
        assert [r.document.id for r in results] == [document.id]
        assert results[0].source == SOURCE_SEMANTIC

    @pytest.mark.asyncio
    async def test_limit_zero_returns_nothing(self, store, embedder, retrieval):
        await add(store, "A", "alpha", embedding=[0.0, 0.0, 1.0])
        assert await retrieval.find_relevant("q", "U1", limit=0) == []
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_repeated_query_embeds_once(self, store, embedder, retrieval):
        await add(store, "A", "alpha", embedding=[0.0, 0.0, 1.0])
        await retrieval.find_relevant("same query", "U1")
        await retrieval.find_relevant("same query", "U1")
        assert embedder.calls == ["same query"]

    @pytest.mark.asyncio
    async def test_provider_failure_degrades_to_keyword(self, store, embedder, retrieval):
        embedder.fail = True
        await add(store, "Vector databases", "vectors and similarity search")
        await add(store, "Cooking", "pasta recipes")

        results = await retrieval.find_relevant("vector search", "U1")

        assert [r.document.title for r in results] == ["Vector databases"]
        assert results[0].source == SOURCE_KEYWORD


class TestGrounding:
    @pytest.mark.asyncio
    async def test_keyword_grounding_is_default(self, store, embedder, retrieval):
        await add(store, "RAG", "retrieval augmented generation")

        results = await retrieval.find_grounding("retrieval", "U1")

        assert [r.document.title for r in results] == ["RAG"]
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_grounding_limit(self, store, retrieval):
        for i in range(5):
            await add(store, f"doc {i}", "shared keyword")
        assert len(await retrieval.find_grounding("keyword", "U1")) == 3

    @pytest.mark.asyncio
    async def test_semantic_grounding(self, store, embedder, embedding_cache):
        embedder.vectors["question"] = [1.0, 0.0]
        await add(store, "close", "unrelated words", embedding=[1.0, 0.0])
        pipeline = RetrievalPipeline(store, embedding_cache, grounding_mode=GROUNDING_SEMANTIC)

        results = await pipeline.find_grounding("question", "U1")

        assert [r.document.title for r in results] == ["close"]
        assert results[0].source == SOURCE_SEMANTIC

    def test_unknown_grounding_mode_rejected(self, store, embedding_cache):
        with pytest.raises(ValueError):
            RetrievalPipeline(store, embedding_cache, grounding_mode="fuzzy")
