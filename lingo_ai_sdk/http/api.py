"""FastAPI HTTP endpoints for the Lingo AI SDK.

Exposes provider availability and reliability state of one
ProviderOrchestrator for dashboards and health checks.
"""

from typing import Any, Dict

try:
    from fastapi import APIRouter, HTTPException
except ImportError:
    raise ImportError(
        "FastAPI is required for HTTP endpoints. "
        "Please install with: pip install lingo-ai-sdk"
    )

from ..orchestration.orchestrator import ProviderOrchestrator


def create_router(orchestrator: ProviderOrchestrator) -> APIRouter:
    """Build an APIRouter bound to ``orchestrator``."""
    router = APIRouter()

    @router.get("/status")
    async def provider_status(refresh: bool = False) -> Dict[str, Any]:
        """Provider availability and capability routing."""
        try:
            availability = await orchestrator.check_availability(force=refresh)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        stats = orchestrator.get_service_stats()
        stats["availability"] = availability
        return stats

    @router.get("/reliability/metrics")
    async def reliability_metrics() -> Dict[str, Any]:
        """Retry metrics, circuit breaker states and usage per service."""
        return orchestrator.get_reliability_metrics()

    @router.post("/reliability/reset")
    async def reset_reliability() -> Dict[str, Any]:
        """Reset every circuit breaker and invalidate cached availability."""
        orchestrator.reset_reliability()
        return {"status": "reset"}

    return router
