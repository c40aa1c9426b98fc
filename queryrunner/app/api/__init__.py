"""API routers."""

from queryrunner.app.api.queries import router as queries_router

__all__ = ["queries_router"]
