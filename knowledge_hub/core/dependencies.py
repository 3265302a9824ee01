"""Dependency injection for services."""

import logging
from typing import Optional

from knowledge_hub.core.config import Settings, settings as default_settings
from knowledge_hub.core.exceptions import CacheError
from knowledge_hub.services.activity import ActivityLog
from knowledge_hub.services.cache import CacheService
from knowledge_hub.services.database import DatabaseService
from knowledge_hub.services.documents import DocumentService
from knowledge_hub.services.embedding import EmbeddingService
from knowledge_hub.services.embedding_cache import EmbeddingCache, EmbeddingProvider
from knowledge_hub.services.llm import LLMService
from knowledge_hub.services.memory_store import InMemoryDocumentStore
from knowledge_hub.services.query_processor import QueryProcessor
from knowledge_hub.services.retrieval import RetrievalPipeline
from knowledge_hub.services.sessions import GenerationProvider, RAGSessionManager
from knowledge_hub.services.store import DocumentStore
from knowledge_hub.services.versioning import VersionSequencer

logger = logging.getLogger(__name__)

STORAGE_POSTGRES = "postgres"
STORAGE_MEMORY = "memory"


def build_store(config: Settings) -> DocumentStore:
    """Document store selected by storage_backend."""
    if config.storage_backend == STORAGE_MEMORY:
        return InMemoryDocumentStore()
    if config.storage_backend == STORAGE_POSTGRES:
        return DatabaseService(
            config.postgres_url,
            min_size=config.postgres_pool_min_size,
            max_size=config.postgres_pool_max_size,
        )
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


class ServiceContainer:
    """Container for service instances, one per application."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        llm: Optional[GenerationProvider] = None,
    ) -> None:
        """
        Wire every service from configuration.

        Args:
            config: Settings; the process-wide settings when omitted.
            store: Document store overriding storage_backend.
            embedding_provider: Embedding provider overriding OpenAI.
            llm: Generation provider overriding OpenAI.
        """
        self.settings = config if config is not None else default_settings
        cfg = self.settings

        self.database = store if store is not None else build_store(cfg)
        self.cache_service = CacheService(
            cfg.redis_url, ttl=cfg.cache_ttl, pool_size=cfg.redis_pool_size)
        self.embedding_service = embedding_provider or EmbeddingService(
            cfg.openai_api_key,
            cfg.embedding_model,
            dimensions=cfg.embedding_dimensions,
            timeout=cfg.provider_timeout_seconds,
            base_url=cfg.openai_base_url,
        )
        self.llm_service = llm or LLMService(
            cfg.openai_api_key,
            cfg.llm_model,
            temperature=cfg.llm_temperature,
            max_tokens=cfg.llm_max_tokens,
            timeout=cfg.provider_timeout_seconds,
            base_url=cfg.openai_base_url,
        )

        self.embedding_cache = EmbeddingCache(
            self.embedding_service,
            shared=self.cache_service if self.cache_service.enabled else None,
            key_policy=cfg.embedding_cache_key_policy,
            max_entries=cfg.embedding_cache_max_entries,
        )
        self.sequencer = VersionSequencer(
            self.database,
            max_attempts=cfg.version_max_attempts,
            retry_delay=cfg.version_retry_delay_seconds,
        )
        self.retrieval = RetrievalPipeline(
            self.database,
            self.embedding_cache,
            candidate_pool=cfg.retrieval_candidate_pool,
            default_limit=cfg.retrieval_limit,
            default_min_similarity=cfg.retrieval_min_similarity,
            grounding_limit=cfg.grounding_limit,
            grounding_mode=cfg.grounding_mode,
        )
        self.sessions = RAGSessionManager(
            self.retrieval,
            self.llm_service,
            history_limit=cfg.chat_history_limit,
            context_snippet_chars=cfg.context_snippet_chars,
            source_snippet_chars=cfg.source_snippet_chars,
        )
        self.activity = ActivityLog(self.database)
        self.documents = DocumentService(
            self.database, self.sequencer, self.embedding_cache, activity=self.activity)
        self.query_processor = QueryProcessor(
            self.retrieval,
            self.llm_service,
            self.database,
            activity=self.activity,
            context_snippet_chars=cfg.context_snippet_chars,
            source_snippet_chars=cfg.source_snippet_chars,
            suggested_questions_count=cfg.suggested_questions_count,
        )

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.database.connect()
        try:
            await self.cache_service.connect()
        except CacheError as e:
            logger.warning(f"Continuing without the shared embedding cache: {str(e)}")
            self.embedding_cache.shared = None

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.cache_service.disconnect()
        await self.database.disconnect()
