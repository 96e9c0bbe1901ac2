"""API routes."""

from period_consistency.api.routes.conflicts import router as conflicts_router
from period_consistency.api.routes.edit_sessions import router as edit_sessions_router
from period_consistency.api.routes.health import router as health_router
from period_consistency.api.routes.periods import router as periods_router

__all__ = ["conflicts_router", "edit_sessions_router", "health_router", "periods_router"]
