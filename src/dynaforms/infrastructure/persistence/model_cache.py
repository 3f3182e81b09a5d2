"""Model cache: one live storage handle per canonical model name.

Handles are versioned. Replacing a handle detaches the previous one instead
of deleting anything global: operations that acquired the old handle before
it was detached finish normally, later acquisitions fail with
``StaleHandle`` and have to go through the new route table.
"""

import asyncio
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncEngine

from dynaforms.core.exceptions import StaleHandle
from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import EntityDescriptor
from dynaforms.infrastructure.persistence.table_builder import TableBuilder

logger = get_logger(__name__)


class ModelHandle:
    """Live reference to an entity's backing collection.

    Attributes:
        model_name: Canonical model name.
        version: Monotonic version per model name, starting at 1.
        fingerprint: Fingerprint of the descriptor the handle was built from.
        table: Persistent table definition.
    """

    def __init__(self, descriptor: EntityDescriptor, version: int) -> None:
        self.model_name = descriptor.model_name
        self.version = version
        self.fingerprint = descriptor.fingerprint
        self.table: Table = TableBuilder.build_table(descriptor)
        self._attached = True
        self._in_flight = 0
        self._storage_ready = False
        self._storage_lock = asyncio.Lock()

    def __repr__(self) -> str:
        state = "attached" if self._attached else "detached"
        return f"<ModelHandle {self.model_name} v{self.version} {state}>"

    @property
    def collection_name(self) -> str:
        """Collection name shared by the persistent and fallback stores."""
        return self.table.name

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def in_flight(self) -> int:
        """Number of operations currently holding the handle."""
        return self._in_flight

    @contextmanager
    def acquire(self) -> Iterator["ModelHandle"]:
        """Hold the handle for the duration of one operation.

        Raises:
            StaleHandle: If the handle was detached before acquisition.
        """
        if not self._attached:
            raise StaleHandle(
                f"Storage handle for '{self.model_name}' was replaced by a schema update, "
                "retry the request"
            )
        self._in_flight += 1
        try:
            yield self
        finally:
            self._in_flight -= 1

    def detach(self) -> None:
        """Invalidate the handle for new operations."""
        if not self._attached:
            return
        self._attached = False
        logger.info(
            "Model handle detached",
            model_name=self.model_name,
            version=self.version,
            in_flight=self._in_flight,
        )

    async def ensure_storage(self, engine: AsyncEngine) -> None:
        """Create or extend the persistent table once per handle."""
        if self._storage_ready:
            return
        async with self._storage_lock:
            if self._storage_ready:
                return
            await TableBuilder.ensure_table(engine, self.table)
            self._storage_ready = True


class ModelCache:
    """Keyed store of model handles.

    At most one attached handle exists per canonical model name.
    """

    def __init__(self) -> None:
        self._handles: dict[str, ModelHandle] = {}
        self._versions: dict[str, int] = {}
        self._lock = threading.RLock()

    def __contains__(self, model_name: str) -> bool:
        with self._lock:
            return model_name in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def get(self, model_name: str) -> ModelHandle | None:
        with self._lock:
            return self._handles.get(model_name)

    def prepare(self, descriptor: EntityDescriptor) -> ModelHandle:
        """Return the handle a descriptor should use, without installing it.

        A cached handle is returned when its fingerprint matches. Otherwise a
        new handle is built while the cached one stays attached until
        ``install`` is called.
        """
        with self._lock:
            existing = self._handles.get(descriptor.model_name)
            if existing is not None and existing.fingerprint == descriptor.fingerprint:
                return existing
            version = self._versions.get(descriptor.model_name, 0) + 1
            return ModelHandle(descriptor, version)

    def install(self, handle: ModelHandle) -> None:
        """Make a prepared handle the live one, detaching its predecessor."""
        with self._lock:
            existing = self._handles.get(handle.model_name)
            if existing is handle:
                return
            if existing is not None:
                existing.detach()

            self._handles[handle.model_name] = handle
            self._versions[handle.model_name] = handle.version
            logger.info(
                "Model handle created",
                model_name=handle.model_name,
                version=handle.version,
                collection=handle.collection_name,
            )

    def get_or_create(self, descriptor: EntityDescriptor) -> ModelHandle:
        """Return the handle for a descriptor, creating it if needed.

        A cached handle is reused when its fingerprint matches. Otherwise the
        cached handle is detached and replaced by a new version.
        """
        with self._lock:
            handle = self.prepare(descriptor)
            self.install(handle)
            return handle

    def evict(self, model_name: str) -> ModelHandle | None:
        """Detach and drop the handle for a model name, if any."""
        with self._lock:
            handle = self._handles.pop(model_name, None)
            if handle is not None:
                handle.detach()
            return handle

    def retain(self, model_names: Iterable[str]) -> list[str]:
        """Evict every handle whose model name is not in ``model_names``.

        Returns:
            The evicted model names.
        """
        keep = set(model_names)
        with self._lock:
            evicted = [name for name in self._handles if name not in keep]
            for name in evicted:
                self.evict(name)
            return evicted
