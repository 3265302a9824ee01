"""
Shared test fixtures and fakes.

The fakes stand in for the OpenAI embedding and chat providers so every
test runs offline against InMemoryDocumentStore.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Union

import pytest

from knowledge_hub.core.config import Settings
from knowledge_hub.core.dependencies import ServiceContainer
from knowledge_hub.core.exceptions import EmbeddingError, GenerationError
from knowledge_hub.services.documents import DocumentService
from knowledge_hub.services.embedding_cache import EmbeddingCache
from knowledge_hub.services.memory_store import InMemoryDocumentStore
from knowledge_hub.services.retrieval import RetrievalPipeline
from knowledge_hub.services.versioning import VersionSequencer


class FakeEmbeddingProvider:
    """Returns preset vectors per text and counts calls."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        delay: float = 0.0,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = default if default is not None else [0.0, 0.0, 1.0]
        self.delay = delay
        self.calls: List[str] = []
        self.fail = False
        self.payload = None

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        if self.payload is not None:
            return self.payload
        return list(self.vectors.get(text, self.default))


class HeldEmbeddingProvider(FakeEmbeddingProvider):
    """Blocks calls for one text until released."""

    def __init__(self, held: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.held = held
        self.reached = asyncio.Event()
        self.release = asyncio.Event()

    async def embed(self, text: str) -> List[float]:
        if text == self.held:
            self.reached.set()
            await self.release.wait()
        return await super().embed(text)


class ScriptedLLM:
    """Replies from a script and records every conversation it was sent."""

    def __init__(self, reply: Union[str, Callable[[List[dict]], str]] = "It is an answer.") -> None:
        self.reply = reply
        self.delay = 0.0
        self.conversations: List[List[dict]] = []
        self.fail = False
        self.error: Exception = GenerationError("generation provider unavailable")

    async def chat(self, messages: List[dict]) -> str:
        self.conversations.append([dict(m) for m in messages])
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise self.error
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "storage_backend": "memory",
        "openai_api_key": "",
        "redis_url": "",
        "version_retry_delay_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def embedding_cache(embedder) -> EmbeddingCache:
    return EmbeddingCache(embedder)


@pytest.fixture
def sequencer(store) -> VersionSequencer:
    return VersionSequencer(store, max_attempts=5, retry_delay=0.0)


@pytest.fixture
def documents(store, sequencer, embedding_cache) -> DocumentService:
    return DocumentService(store, sequencer, embedding_cache)


@pytest.fixture
def retrieval(store, embedding_cache) -> RetrievalPipeline:
    return RetrievalPipeline(store, embedding_cache, default_min_similarity=0.7)


@pytest.fixture
def container(store, embedder, llm) -> ServiceContainer:
    return ServiceContainer(make_settings(), store=store, embedding_provider=embedder, llm=llm)
