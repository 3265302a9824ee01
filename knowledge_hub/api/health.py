"""Health check utilities."""

from typing import Dict

from knowledge_hub.core.dependencies import ServiceContainer
from knowledge_hub.services.health import check_openai, check_redis, check_store


async def check_all_dependencies(services: ServiceContainer, include_openai: bool = True) -> Dict:
    """
    Check all service dependencies.

    Args:
        services: Service container of the running application.
        include_openai: Whether to call the OpenAI API.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    statuses = {}
    overall_status = "healthy"

    store_status = await check_store(services.database)
    statuses["store"] = store_status
    if store_status.get("status") != "healthy":
        overall_status = "unhealthy"

    redis_status = await check_redis(services.cache_service)
    statuses["redis"] = redis_status
    if redis_status.get("status") == "unhealthy":
        overall_status = "degraded" if overall_status == "healthy" else overall_status

    if include_openai:
        openai_status = await check_openai(services.settings)
        statuses["openai"] = openai_status
        if openai_status.get("status") == "unhealthy":
            overall_status = "degraded" if overall_status == "healthy" else overall_status

    return {"status": overall_status, "services": statuses}


async def check_readiness(services: ServiceContainer) -> Dict:
    """
    Check service readiness.

    The store is required; the shared Redis tier only when configured.

    Args:
        services: Service container of the running application.

    Returns:
        Readiness status dictionary.
    """
    store_status = await check_store(services.database)
    redis_status = await check_redis(services.cache_service)

    store_ready = store_status.get("status") == "healthy"
    redis_ready = redis_status.get("status") in ("healthy", "not_configured")

    return {
        "ready": store_ready and redis_ready,
        "store": store_ready,
        "redis": redis_ready,
    }
