"""Tests for the OpenAI adapters, the Redis tier and SQL filter building."""

import asyncio
from types import SimpleNamespace

import pytest

from knowledge_hub.core.exceptions import EmbeddingError, GenerationError
from knowledge_hub.models.document import DocumentFilter
from knowledge_hub.services.cache import CacheService
from knowledge_hub.services.database import build_where
from knowledge_hub.services.embedding import EmbeddingService, validate_vector
from knowledge_hub.services.llm import LLMService


def embeddings_client(handler):
    async def create(**kwargs):
        return handler(**kwargs)

    return SimpleNamespace(embeddings=SimpleNamespace(create=create))


def chat_client(handler):
    async def create(**kwargs):
        return handler(**kwargs)

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def chat_reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestEmbeddingService:
    @pytest.mark.asyncio
    async def test_returns_vector_and_passes_dimensions(self):
        seen = {}

        def handler(**kwargs):
            seen.update(kwargs)
            return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2])])

        service = EmbeddingService("key", "text-embedding-3-small", dimensions=2,
                                   client=embeddings_client(handler))

        assert await service.embed("hello") == [0.1, 0.2]
        assert seen == {"model": "text-embedding-3-small", "input": ["hello"], "dimensions": 2}

    @pytest.mark.asyncio
    async def test_client_failure_is_embedding_error(self):
        def handler(**kwargs):
            raise ConnectionError("refused")

        service = EmbeddingService("key", "model", client=embeddings_client(handler))
        with pytest.raises(EmbeddingError):
            await service.embed("hello")

    @pytest.mark.asyncio
    async def test_timeout_is_embedding_error(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = SimpleNamespace(embeddings=SimpleNamespace(create=slow))
        service = EmbeddingService("key", "model", timeout=0.01, client=client)
        with pytest.raises(EmbeddingError):
            await service.embed("hello")

    @pytest.mark.parametrize("payload", [[], None, "text", [1.0, "x"], [float("nan")]])
    def test_validate_vector_rejects_malformed(self, payload):
        with pytest.raises(EmbeddingError):
            validate_vector(payload)

    def test_validate_vector_coerces_numbers(self):
        assert validate_vector([1, 2.5]) == [1.0, 2.5]


class TestLLMService:
    @pytest.mark.asyncio
    async def test_returns_stripped_reply(self):
        service = LLMService("key", "gpt-4o-mini", client=chat_client(lambda **kw: chat_reply(" hi \n")))
        assert await service.chat([{"role": "user", "content": "hello"}]) == "hi"

    @pytest.mark.asyncio
    async def test_empty_reply_is_generation_error(self):
        service = LLMService("key", "gpt-4o-mini", client=chat_client(lambda **kw: chat_reply("")))
        with pytest.raises(GenerationError):
            await service.chat([{"role": "user", "content": "hello"}])

    @pytest.mark.asyncio
    async def test_empty_conversation_rejected(self):
        service = LLMService("key", "gpt-4o-mini", client=chat_client(lambda **kw: chat_reply("x")))
        with pytest.raises(GenerationError):
            await service.chat([])

    @pytest.mark.asyncio
    async def test_client_failure_is_generation_error(self):
        def handler(**kwargs):
            raise RuntimeError("rate limited")

        service = LLMService("key", "gpt-4o-mini", client=chat_client(handler))
        with pytest.raises(GenerationError):
            await service.chat([{"role": "user", "content": "hello"}])


class TestCacheService:
    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        cache = CacheService("")
        await cache.connect()

        assert not cache.enabled
        assert await cache.get_json("key") is None
        await cache.set_json("key", [1.0])
        await cache.disconnect()


class TestBuildWhere:
    def test_empty_filter(self):
        params = []
        assert build_where(DocumentFilter(), params) == "TRUE"
        assert params == []

    def test_visibility_and_tags(self):
        params = []
        clause = build_where(DocumentFilter(visible_to="U1", tags=["a"]), params)

        assert clause == "(owner_id = $1 OR is_public) AND tags && $2::text[]"
        assert params == ["U1", ["a"]]

    def test_search_and_public_only(self):
        params = ["existing"]
        clause = build_where(DocumentFilter(public_only=True, search="rag"), params)

        assert clause == "is_public AND (title ILIKE $2 OR content ILIKE $2)"
        assert params == ["existing", "%rag%"]
