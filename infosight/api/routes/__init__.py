"""API routes package."""

from infosight.api.routes.submissions import router as submissions_router
from infosight.api.routes.processing import router as processing_router
from infosight.api.routes.kpis import router as kpis_router

__all__ = ["submissions_router", "processing_router", "kpis_router"]
