"""Schema registry: owns the active schema and its route table.

An update moves through ``Idle -> Validating -> Compiling -> Swapping ->
Idle``. Any compile failure returns to ``Idle`` with the previously accepted
document, descriptors, model handles and route table untouched.

The swap itself runs without yielding to the event loop: handles are
resolved, removed entities are evicted, the new route table is built and the
active pointer is replaced in one synchronous step. Requests therefore see
either the complete old table or the complete new one.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dynaforms.core.config import Settings, get_settings
from dynaforms.core.exceptions import SchemaCompileError, UpdateInProgress
from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import EntityDescriptor
from dynaforms.domain.services import EntityDescriptorCompiler
from dynaforms.infrastructure.api.route_table import EntityBinding, RouteTable
from dynaforms.infrastructure.persistence.data_access import EntityDataAccess
from dynaforms.infrastructure.persistence.database import DatabaseManager
from dynaforms.infrastructure.persistence.memory_store import MemoryStore
from dynaforms.infrastructure.persistence.model_cache import ModelCache
from dynaforms.infrastructure.persistence.schema_store import SchemaStore

logger = get_logger(__name__)


# Installed when no stored document exists (or the stored one is invalid)
DEFAULT_SCHEMA: dict[str, Any] = {
    "record": {
        "customers": {
            "route": "/api/customers",
            "fields": {
                "name": {"kind": "text", "required": True},
                "email": {"kind": "text", "required": True, "unique": True},
                "phone": {"kind": "text"},
            },
        }
    }
}


class RegistryState(str, Enum):
    """Phases of a schema update."""

    IDLE = "idle"
    VALIDATING = "validating"
    COMPILING = "compiling"
    SWAPPING = "swapping"


@dataclass
class SchemaUpdateResult:
    """Outcome of an accepted schema update.

    Attributes:
        entities: Entity names now served, in document order.
        version: Registry version of the new route table.
        warnings: Non-fatal problems, such as a failed save of the document.
    """

    entities: list[str]
    version: int
    warnings: list[str] = field(default_factory=list)


class SchemaRegistry:
    """Drives compilation and atomic replacement of the active route table."""

    def __init__(
        self,
        db: DatabaseManager,
        fallback: MemoryStore,
        model_cache: ModelCache | None = None,
        schema_store: SchemaStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            db: Persistent store manager.
            fallback: In-process fallback store shared by every entity.
            model_cache: Storage handle cache. A new one is created if omitted.
            schema_store: Durable location of the accepted document. Accepted
                documents are not persisted when omitted.
            settings: Application settings.
        """
        self.settings = settings or get_settings()
        self.db = db
        self.fallback = fallback
        self.model_cache = model_cache or ModelCache()
        self.schema_store = schema_store

        self._state = RegistryState.IDLE
        self._lock = asyncio.Lock()
        self._version = 0
        self._document: dict[str, Any] | None = None
        self._route_table = RouteTable.empty()

    @property
    def state(self) -> RegistryState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    @property
    def route_table(self) -> RouteTable:
        """The active route table."""
        return self._route_table

    @property
    def descriptors(self) -> dict[str, EntityDescriptor]:
        return dict(self._route_table.descriptors)

    @property
    def document(self) -> dict[str, Any] | None:
        """A copy of the last accepted document, or None before the first."""
        return copy.deepcopy(self._document)

    @property
    def update_in_progress(self) -> bool:
        return self._lock.locked()

    def _compile(self, document: Any) -> dict[str, EntityDescriptor]:
        """Validate and compile a document, returning to Idle on failure."""
        try:
            self._state = RegistryState.VALIDATING
            EntityDescriptorCompiler.entity_blocks(document)

            self._state = RegistryState.COMPILING
            return EntityDescriptorCompiler.compile_document(document)
        except SchemaCompileError as e:
            self._state = RegistryState.IDLE
            logger.warning(
                "Schema update rejected",
                error_type=type(e).__name__,
                entity=e.entity,
                field=e.field,
                reason=e.reason,
                active_version=self._version,
            )
            raise

    def _swap(self, document: Any, descriptors: dict[str, EntityDescriptor]) -> RouteTable:
        """Install compiled descriptors. Never awaits.

        Handles and the route table are built before any cached handle is
        detached, so a failure here leaves the active table fully usable.
        """
        self._state = RegistryState.SWAPPING
        try:
            bindings = []
            for descriptor in descriptors.values():
                handle = self.model_cache.prepare(descriptor)
                data_access = EntityDataAccess(
                    descriptor=descriptor,
                    handle=handle,
                    db=self.db,
                    fallback=self.fallback,
                    timeout=self.settings.storage_timeout_seconds,
                )
                bindings.append(EntityBinding(descriptor, handle, data_access))

            table = RouteTable.build(self._version + 1, bindings)

            for binding in bindings:
                self.model_cache.install(binding.handle)
            evicted = self.model_cache.retain(d.model_name for d in descriptors.values())

            self._route_table = table
            self._version = table.version
            self._document = copy.deepcopy(document)
        finally:
            self._state = RegistryState.IDLE

        logger.info(
            "Route table swapped",
            version=table.version,
            entities=table.entity_names,
            routes=list(table.routes),
            evicted=evicted,
        )
        return table

    def bootstrap(self, document: Any) -> list[str]:
        """Install a document without persisting it.

        Used while constructing the application, before the event loop
        serves requests.

        Returns:
            The entity names now served.

        Raises:
            SchemaCompileError: If the document does not compile.
        """
        descriptors = self._compile(document)
        table = self._swap(document, descriptors)
        return table.entity_names

    async def submit(self, document: Any) -> SchemaUpdateResult:
        """Compile, install and persist a replacement schema document.

        Args:
            document: The full replacement document.

        Returns:
            The entities now served and any warnings.

        Raises:
            UpdateInProgress: If another update is being applied.
            SchemaCompileError: If the document does not compile. The active
                schema is left unchanged.
        """
        if self._lock.locked():
            raise UpdateInProgress()

        async with self._lock:
            descriptors = self._compile(document)
            table = self._swap(document, descriptors)

            warnings: list[str] = []
            if self.schema_store is not None:
                try:
                    await self.schema_store.save(document)
                except (OSError, TypeError, ValueError) as e:
                    logger.warning(
                        "Schema document could not be saved",
                        path=str(self.schema_store.path),
                        error=str(e),
                    )
                    warnings.append(f"Schema applied but could not be saved: {e}")

            return SchemaUpdateResult(
                entities=table.entity_names,
                version=table.version,
                warnings=warnings,
            )
