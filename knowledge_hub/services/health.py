"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from openai import AsyncOpenAI

from knowledge_hub.core.config import Settings
from knowledge_hub.services.cache import CacheService
from knowledge_hub.services.store import DocumentStore


async def check_store(store: DocumentStore) -> Dict[str, Any]:
    """
    Check document store connectivity.

    Args:
        store: Document store in use.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        await store.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "backend": type(store).__name__,
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "backend": type(store).__name__,
            "error": str(e),
            "latency_ms": 0,
        }


async def check_redis(cache_service: CacheService) -> Dict[str, Any]:
    """
    Check Redis connectivity and health.

    Args:
        cache_service: CacheService instance.

    Returns:
        Health status dictionary; "not_configured" when the tier is off.
    """
    if not cache_service.enabled:
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        if not cache_service.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        await cache_service.client.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai(config: Settings) -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Args:
        config: Settings carrying the API key and endpoint.

    Returns:
        Health status dictionary.
    """
    if not config.openai_api_key:
        return {"status": "not_configured", "error": "API key not set"}

    try:
        client = AsyncOpenAI(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            timeout=config.provider_timeout_seconds,
        )

        start_time = time.time()
        await client.models.list()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
