"""Pytest configuration for all tests."""

import copy
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from dynaforms.core.config import Settings
from dynaforms.domain.entities import EntityDescriptor
from dynaforms.domain.services import EntityDescriptorCompiler
from dynaforms.infrastructure.api.app import create_app
from dynaforms.infrastructure.persistence.database import DatabaseManager

ITEMS_SCHEMA: dict[str, Any] = {
    "record": {
        "items": {
            "route": "/api/items",
            "fields": {"name": {"kind": "text", "required": True}},
        }
    }
}

CATALOG_SCHEMA: dict[str, Any] = {
    "record": {
        "products": {
            "route": "/api/products",
            "fields": {
                "title": {"kind": "text", "required": True},
                "sku": {"kind": "text", "unique": True},
                "price": {"kind": "number"},
                "inStock": {"kind": "boolean", "default": True},
                "releasedAt": {"kind": "date"},
                "tags": {"kind": "list"},
                "addedOn": {"kind": "date", "default": "now"},
            },
        }
    },
    "frontend": {"products": {"form": {"layout": "two-column"}}},
}


def make_settings(tmp_path: Path, database_url: str | None, **overrides: Any) -> Settings:
    """Settings isolated to a temporary directory."""
    values: dict[str, Any] = {
        "environment": "testing",
        "database_url": database_url,
        "schema_path": str(tmp_path / "schema.json"),
        "db_probe_timeout_seconds": 2.0,
        "storage_timeout_seconds": 5.0,
        "log_format": "console",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def items_schema() -> dict[str, Any]:
    return copy.deepcopy(ITEMS_SCHEMA)


@pytest.fixture
def catalog_schema() -> dict[str, Any]:
    return copy.deepcopy(CATALOG_SCHEMA)


@pytest.fixture
def catalog_descriptor() -> EntityDescriptor:
    return EntityDescriptorCompiler.compile_document(CATALOG_SCHEMA)["products"]


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> Settings:
    """Settings backed by a SQLite file in a temporary directory."""
    return make_settings(tmp_path, f"sqlite+aiosqlite:///{tmp_path / 'dynaforms.db'}")


@pytest.fixture
def memory_settings(tmp_path: Path) -> Settings:
    """Settings with no persistent store; every call uses the fallback store."""
    return make_settings(tmp_path, None)


@pytest.fixture(params=["sqlite", "memory"])
def backend_settings(request, sqlite_settings: Settings, memory_settings: Settings) -> Settings:
    """Run a test once per storage backend."""
    return sqlite_settings if request.param == "sqlite" else memory_settings


@pytest_asyncio.fixture
async def db_manager(sqlite_settings: Settings) -> AsyncGenerator[DatabaseManager, None]:
    manager = DatabaseManager(sqlite_settings)
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def app(backend_settings: Settings, items_schema: dict[str, Any]):
    """Application serving the items schema on the parametrized backend."""
    application = create_app(backend_settings)
    application.state.schema_registry.bootstrap(items_schema)
    yield application
    await application.state.db_manager.disconnect()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
