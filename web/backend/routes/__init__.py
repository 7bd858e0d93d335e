"""Backend API routes."""

from .flows import router as flows_router
from .sessions import router as sessions_router

__all__ = ["flows_router", "sessions_router"]
