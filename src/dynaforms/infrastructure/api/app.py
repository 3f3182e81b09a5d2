"""FastAPI application factory and configuration.

This module provides the application factory function for creating and
configuring the FastAPI application with all middleware, routes and
lifecycle handlers.

Generated entity routes are not registered on the application router. They
live in the schema registry's active route table and are reached through
``DynamicRouteDispatcher``, mounted after every system route.
"""

import copy
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dynaforms.application.services.schema_registry import DEFAULT_SCHEMA, SchemaRegistry
from dynaforms.core.config import Settings, get_settings
from dynaforms.core.exceptions import RequestError, SchemaCompileError
from dynaforms.core.logging import configure_logging, get_logger
from dynaforms.infrastructure.api.dependencies import Database, Registry
from dynaforms.infrastructure.api.middleware import ContextMiddleware
from dynaforms.infrastructure.api.route_table import DynamicRouteDispatcher
from dynaforms.infrastructure.api.routes import schema_router
from dynaforms.infrastructure.persistence.database import DatabaseManager
from dynaforms.infrastructure.persistence.memory_store import MemoryStore
from dynaforms.infrastructure.persistence.model_cache import ModelCache
from dynaforms.infrastructure.persistence.schema_store import SchemaStore

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control is yielded to the application during its lifetime.
    """
    settings: Settings = app.state.settings

    # Configure logging
    configure_logging(settings)

    logger.info(
        "Starting Dynaforms",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        persistent_store=settings.has_persistent_store,
        entities=app.state.schema_registry.route_table.entity_names,
    )

    yield

    # Shutdown
    logger.info("Shutting down Dynaforms")
    await app.state.db_manager.disconnect()


def bootstrap_registry(registry: SchemaRegistry, schema_store: SchemaStore) -> None:
    """Install the stored schema document, or the default one.

    A stored document that no longer compiles is logged and replaced by the
    default schema for this run; the file itself is left untouched.
    """
    stored = schema_store.load()
    if stored is not None:
        try:
            registry.bootstrap(stored)
            return
        except SchemaCompileError as e:
            logger.error(
                "Stored schema document is invalid, installing the default schema",
                path=str(schema_store.path),
                error=str(e),
            )

    registry.bootstrap(copy.deepcopy(DEFAULT_SCHEMA))
    logger.info("Default schema installed", entities=registry.route_table.entity_names)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. Defaults to the cached settings.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Runtime CRUD API generated from a declarative schema document",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    db_manager = DatabaseManager(settings)
    fallback_store = MemoryStore()
    schema_store = SchemaStore(settings.schema_path)
    registry = SchemaRegistry(
        db=db_manager,
        fallback=fallback_store,
        model_cache=ModelCache(),
        schema_store=schema_store,
        settings=settings,
    )
    bootstrap_registry(registry, schema_store)

    # Store on app state for access throughout the application
    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.fallback_store = fallback_store
    app.state.schema_store = schema_store
    app.state.schema_registry = registry

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Register system endpoints
    register_health_check(app)
    register_routes(app)

    # Register exception handlers
    register_exception_handlers(app)

    # Register middleware
    app.add_middleware(ContextMiddleware, log_requests=not settings.is_production)

    # Generated entity routes (must be last to avoid capturing system routes)
    app.mount("", DynamicRouteDispatcher(registry))

    return app


def register_health_check(app: FastAPI) -> None:
    """Register health check endpoints.

    Args:
        app: FastAPI application instance.
    """

    @app.get("/health", tags=["health"])
    async def health_check(request: Request, db: Database, registry: Registry) -> dict[str, Any]:
        """Report service and backend connectivity state.

        Always answers 200: an unreachable persistent store degrades the
        service to the fallback store, it does not take it down.
        """
        settings: Settings = request.app.state.settings

        if not db.is_configured:
            database = "not_configured"
        elif await db.is_available():
            database = "connected"
        else:
            database = "disconnected"

        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "database": database,
            "backend": "persistent" if database == "connected" else "fallback",
            "schemaVersion": registry.version,
            "entities": registry.route_table.entity_names,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def register_routes(app: FastAPI) -> None:
    """Register system API routes.

    Args:
        app: FastAPI application instance.
    """

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """API root endpoint."""
        return {"status": "running", "message": "Dynamic Forms API"}

    app.include_router(schema_router, prefix="/api/schema")


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(RequestError)
    async def request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
        """Translate request errors raised by generated endpoints."""
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(SchemaCompileError)
    async def schema_compile_error_handler(
        request: Request, exc: SchemaCompileError
    ) -> JSONResponse:
        content: dict[str, Any] = {"success": False, "error": str(exc)}
        if exc.entity is not None:
            content["entity"] = exc.entity
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed request bodies and parameters."""
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            path=str(request.url),
            method=request.method,
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        content = {"success": False, "error": "Internal server error"}
        if app.state.settings.debug:
            content["detail"] = str(exc)
        return JSONResponse(status_code=500, content=content)


# Create the application instance
app = create_app()
