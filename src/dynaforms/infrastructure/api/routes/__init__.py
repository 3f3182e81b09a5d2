"""API Routes for Dynaforms."""

from dynaforms.infrastructure.api.routes.entity_router import build_entity_router
from .schema_router import router as schema_router

__all__ = [
    "build_entity_router",
    "schema_router",
]
