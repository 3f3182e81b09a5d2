"""Schema management API routes.

Provides endpoints for reading the accepted schema document and replacing it
at runtime.
"""

from typing import Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from dynaforms.core.exceptions import SchemaCompileError, UpdateInProgress
from dynaforms.core.logging import get_logger
from dynaforms.infrastructure.api.dependencies import Registry

logger = get_logger(__name__)

router = APIRouter(tags=["schema"])


@router.get("")
async def get_schema(registry: Registry) -> JSONResponse:
    """Return the accepted schema document verbatim."""
    return JSONResponse(content=registry.document)


@router.post(
    "/update",
    responses={
        400: {"description": "Schema document rejected"},
        409: {"description": "Another schema update is in progress"},
    },
)
async def update_schema(registry: Registry, document: Any = Body(default=None)) -> JSONResponse:
    """Replace the schema document.

    The new document is compiled as a whole. On success the generated routes
    are swapped in one step; on failure the previous schema keeps serving.
    """
    try:
        result = await registry.submit(document)
    except UpdateInProgress as e:
        logger.info("Schema update refused, another update is in progress")
        return JSONResponse(status_code=e.status_code, content=e.to_response())
    except SchemaCompileError as e:
        content: dict[str, Any] = {"success": False, "error": str(e)}
        if e.entity is not None:
            content["entity"] = e.entity
        if e.field is not None:
            content["field"] = e.field
        return JSONResponse(status_code=400, content=content)

    content = {"success": True, "entities": result.entities, "version": result.version}
    if result.warnings:
        content["warnings"] = result.warnings
    return JSONResponse(content=content)
