"""API routes."""

from salarysync.api.routes.approval import router as approval_router
from salarysync.api.routes.batch import router as batch_router
from salarysync.api.routes.health import router as health_router
from salarysync.api.routes.tax_rate_tables import router as tax_rate_tables_router

__all__ = ["approval_router", "batch_router", "health_router", "tax_rate_tables_router"]
