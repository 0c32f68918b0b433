"""HTTP API layer for the Lingo AI SDK.

Mount ``create_router(orchestrator)`` on a FastAPI application to expose
provider status and reliability metrics.
"""

from .api import create_router

__all__ = ["create_router"]
