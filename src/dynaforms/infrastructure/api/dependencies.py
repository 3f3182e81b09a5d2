"""FastAPI dependencies for the application components.

Components are created once by the application factory and kept on
``app.state``.
"""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request

from dynaforms.infrastructure.persistence.database import DatabaseManager

if TYPE_CHECKING:
    from dynaforms.application.services.schema_registry import SchemaRegistry


def get_schema_registry(request: Request) -> "SchemaRegistry":
    """Get the schema registry of the running application."""
    return request.app.state.schema_registry


def get_db_manager(request: Request) -> DatabaseManager:
    """Get the persistent store manager of the running application."""
    return request.app.state.db_manager


# Type aliases for dependency injection
Registry = Annotated["SchemaRegistry", Depends(get_schema_registry)]
Database = Annotated[DatabaseManager, Depends(get_db_manager)]
