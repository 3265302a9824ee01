"""Memoizing front for the embedding provider."""

import asyncio
import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional, Protocol

from knowledge_hub.core.exceptions import CacheError, EmbeddingError, ProviderError
from knowledge_hub.monitoring.metrics import embedding_cache_hits, embedding_cache_misses
from knowledge_hub.services.cache import CacheService
from knowledge_hub.services.embedding import validate_vector

logger = logging.getLogger(__name__)

KEY_POLICY_LEGACY = "legacy"
KEY_POLICY_SHA256 = "sha256"

SHORT_TEXT_LIMIT = 100
EDGE_CHARS = 50


class EmbeddingProvider(Protocol):
    """Anything that turns text into a vector."""

    async def embed(self, text: str) -> List[float]:
        ...


def legacy_cache_key(text: str) -> str:
    """
    Key used by the first generation of the service.

    Texts up to 100 characters are their own key. Longer texts are keyed by
    the first 50 characters, the length and the last 50 characters, so two
    long texts that agree on those collide and share one embedding.
    """
    if len(text) <= SHORT_TEXT_LIMIT:
        return text
    return f"{text[:EDGE_CHARS]}{len(text)}{text[-EDGE_CHARS:]}"


def sha256_cache_key(text: str) -> str:
    """Collision-resistant key over the full text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """
    Process-wide text to vector cache.

    The entry table is guarded by a threading.Lock that is never held across
    an await, so provider calls run unlocked. Concurrent misses for the same
    key share a single provider call; if the request making that call is
    cancelled, the others retry the lookup instead of inheriting the
    cancellation. When a CacheService is given, vectors are also written to
    Redis so sibling worker processes can reuse them.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        shared: Optional[CacheService] = None,
        key_policy: str = KEY_POLICY_LEGACY,
        max_entries: Optional[int] = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            provider: Embedding provider.
            shared: Optional Redis tier.
            key_policy: "legacy" or "sha256".
            max_entries: LRU bound; None keeps every entry for the process
                lifetime.
        """
        if key_policy not in (KEY_POLICY_LEGACY, KEY_POLICY_SHA256):
            raise ValueError(f"Unknown embedding cache key policy: {key_policy}")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")

        self.provider = provider
        self.shared = shared
        self.key_policy = key_policy
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, List[float]]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Future] = {}
        self._lock = threading.Lock()

    def cache_key(self, text: str) -> str:
        """Derive the cache key for a text under the configured policy."""
        if self.key_policy == KEY_POLICY_SHA256:
            return sha256_cache_key(text)
        return legacy_cache_key(text)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Drop every in-process entry."""
        with self._lock:
            self._entries.clear()

    async def get_embedding(self, text: str) -> List[float]:
        """
        Return the embedding for a text, calling the provider on a miss.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector. Repeated calls with the same key return the
            same list object.

        Raises:
            ProviderError: If the provider is unreachable, times out or
                returns malformed data.
        """
        key = self.cache_key(text)

        while True:
            with self._lock:
                vector = self._entries.get(key)
                if vector is not None:
                    self._entries.move_to_end(key)
                    embedding_cache_hits.inc()
                    return vector
                pending = self._inflight.get(key)
                owner = pending is None
                if owner:
                    pending = asyncio.get_running_loop().create_future()
                    self._inflight[key] = pending

            if owner:
                break
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The owning request was cancelled, not this one: look up again.
                if pending.cancelled() and not asyncio.current_task().cancelling():
                    continue
                raise

        embedding_cache_misses.inc()
        try:
            vector = await self._load(key, text)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            if isinstance(e, ProviderError):
                pending.set_exception(e)
                # Mark the exception as retrieved when nobody else was waiting.
                pending.exception()
            else:
                pending.cancel()
            raise

        with self._lock:
            self._store(key, vector)
            self._inflight.pop(key, None)
        pending.set_result(vector)
        return vector

    def _store(self, key: str, vector: List[float]) -> None:
        self._entries[key] = vector
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def _shared_key(self, key: str) -> str:
        return f"embedding:{self.key_policy}:{sha256_cache_key(key)}"

    async def _load(self, key: str, text: str) -> List[float]:
        if self.shared is not None:
            cached = await self.shared.get_json(self._shared_key(key))
            if cached:
                try:
                    return validate_vector(cached)
                except EmbeddingError:
                    logger.warning(f"Discarding malformed shared cache entry for {key[:50]}")

        try:
            vector = validate_vector(await self.provider.embed(text))
        except ProviderError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding provider failed: {str(e)}") from e

        if self.shared is not None:
            try:
                await self.shared.set_json(self._shared_key(key), vector)
            except CacheError as e:
                logger.warning(f"Failed to write shared embedding cache: {str(e)}")

        return vector
