"""API routes package."""

from fileserver.routes.file_routes import router as file_router
from fileserver.routes.system_routes import router as system_router

__all__ = ["file_router", "system_router"]
