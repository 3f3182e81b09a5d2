"""Generated CRUD routes for one entity.

``build_entity_router`` produces a fresh ``APIRouter`` holding the five
handlers of an entity, bound to that entity's data access object. Routers are
built off to the side and only become reachable once the route table that
holds them is published.
"""

from typing import Any

from fastapi import APIRouter, Body, Query, status

from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import DEFAULT_PAGE, DEFAULT_PAGE_SIZE, EntityDescriptor
from dynaforms.infrastructure.persistence.data_access import EntityDataAccess

logger = get_logger(__name__)


def parse_positive_int(raw: str | None, default: int) -> int:
    """Parse a query value as a positive integer.

    Missing, non-numeric, zero or negative values yield ``default``.
    """
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= 1 else default


def build_entity_router(descriptor: EntityDescriptor, data_access: EntityDataAccess) -> APIRouter:
    """Build the list/get/create/update/delete handlers for an entity.

    Args:
        descriptor: Compiled entity descriptor; its route becomes the prefix.
        data_access: Data access bound to the entity's current model handle.

    Returns:
        A router with paths ``{route}`` and ``{route}/{record_id}``.
    """
    router = APIRouter(prefix=descriptor.route, tags=[descriptor.entity_name])

    @router.get("", name=f"{descriptor.entity_name}:list")
    async def list_records(
        page: str | None = Query(default=None),
        limit: str | None = Query(default=None),
        search: str | None = Query(default=None),
        sort_by: str | None = Query(default=None, alias="sortBy"),
        sort_order: str | None = Query(default=None, alias="sortOrder"),
    ) -> dict[str, Any]:
        """List records with pagination, search and sort."""
        page_number = parse_positive_int(page, DEFAULT_PAGE)
        page_size = parse_positive_int(limit, DEFAULT_PAGE_SIZE)

        result = await data_access.list(
            page=page_number,
            page_size=page_size,
            search=search,
            sort_field=sort_by,
            sort_order=sort_order,
        )
        return {
            "success": True,
            "data": result.records,
            "pagination": {
                "total": result.total,
                "page": result.page,
                "limit": result.page_size,
                "totalPages": result.total_pages,
            },
        }

    @router.get("/{record_id}", name=f"{descriptor.entity_name}:get")
    async def get_record(record_id: str) -> dict[str, Any]:
        """Get a single record by id."""
        return {"success": True, "data": await data_access.get_by_id(record_id)}

    @router.post("", status_code=status.HTTP_201_CREATED, name=f"{descriptor.entity_name}:create")
    async def create_record(payload: Any = Body(default=None)) -> dict[str, Any]:
        """Create a record. System fields in the body are ignored."""
        if payload is None:
            payload = {}
        return {"success": True, "data": await data_access.create(payload)}

    @router.put("/{record_id}", name=f"{descriptor.entity_name}:update")
    async def update_record(record_id: str, payload: Any = Body(default=None)) -> dict[str, Any]:
        """Merge the submitted fields onto an existing record."""
        if payload is None:
            payload = {}
        return {"success": True, "data": await data_access.update(record_id, payload)}

    @router.delete("/{record_id}", name=f"{descriptor.entity_name}:delete")
    async def delete_record(record_id: str) -> dict[str, Any]:
        """Delete a record."""
        await data_access.delete(record_id)
        return {"success": True}

    logger.debug(
        "Entity router built",
        entity=descriptor.entity_name,
        route=descriptor.route,
    )
    return router
