"""Route table and dispatcher for the generated entity routes.

A ``RouteTable`` is immutable: it is built completely from a set of entity
bindings before anyone can see it, and a schema update replaces the whole
table rather than editing the live one. ``DynamicRouteDispatcher`` is the
only reader; it fetches the active table once per request, so every request
is served entirely by one table.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocketClose

from dynaforms.domain.entities import EntityDescriptor
from dynaforms.infrastructure.api.routes.entity_router import build_entity_router
from dynaforms.infrastructure.persistence.data_access import EntityDataAccess
from dynaforms.infrastructure.persistence.model_cache import ModelHandle

# Paths served by the application itself, listed in 404 responses
SYSTEM_ROUTES = ("/", "/health", "/api/schema", "/api/schema/update")


@dataclass(frozen=True)
class EntityBinding:
    """An entity descriptor bound to its storage handle and data access."""

    descriptor: EntityDescriptor
    handle: ModelHandle
    data_access: EntityDataAccess


def not_found_app(available_routes: Iterable[str]) -> ASGIApp:
    """ASGI app answering every request with the route-not-found body."""
    content = {
        "success": False,
        "error": "Route not found",
        "availableRoutes": list(available_routes),
    }

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await WebSocketClose()(scope, receive, send)
            return
        response = JSONResponse(status_code=404, content=content)
        await response(scope, receive, send)

    return app


@dataclass(frozen=True)
class RouteTable:
    """One complete, immutable set of generated entity routes.

    Attributes:
        version: Registry version that produced the table.
        descriptors: Entity name to descriptor, in document order.
        routes: Entity route prefixes, in document order.
        router: Router holding every generated handler.
    """

    version: int
    descriptors: Mapping[str, EntityDescriptor]
    routes: tuple[str, ...]
    router: APIRouter

    @classmethod
    def build(cls, version: int, bindings: Iterable[EntityBinding]) -> "RouteTable":
        """Build a fresh table from entity bindings.

        Nothing in the returned table is shared with any previous table.
        """
        bindings = list(bindings)
        routes = tuple(b.descriptor.route for b in bindings)

        router = APIRouter(default=not_found_app(SYSTEM_ROUTES + routes))
        for binding in bindings:
            router.include_router(build_entity_router(binding.descriptor, binding.data_access))

        return cls(
            version=version,
            descriptors=MappingProxyType({b.descriptor.entity_name: b.descriptor for b in bindings}),
            routes=routes,
            router=router,
        )

    @classmethod
    def empty(cls) -> "RouteTable":
        """Table with no entity routes."""
        return cls.build(version=0, bindings=[])

    @property
    def entity_names(self) -> list[str]:
        return list(self.descriptors)


class RouteTableSource(Protocol):
    @property
    def route_table(self) -> RouteTable: ...


class DynamicRouteDispatcher:
    """ASGI app delegating each request to the currently active route table.

    Mounted after the system routes, so it only sees requests no system
    route matched.
    """

    def __init__(self, source: RouteTableSource) -> None:
        self.source = source

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        # Read once; the rest of the request uses this table even if a swap
        # happens meanwhile
        table = self.source.route_table
        await table.router(scope, receive, send)
