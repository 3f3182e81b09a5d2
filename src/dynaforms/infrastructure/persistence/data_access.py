"""Dual-backend data access for one entity.

Every operation picks its backend at call time: the persistent store when it
is configured and answers a bounded probe, the in-process fallback store
otherwise. Both backends implement the same list contract (text-field
search, stable sort with id tie-break, 1-based pagination), so switching
between them is invisible in the shape of responses.

Persistent calls are bounded by ``storage_timeout_seconds``. When a
persistent call times out or loses its connection, reads are retried on the
fallback store; writes fail with ``BackendTimeout`` because their outcome on
the persistent side is unknown.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from dynaforms.core.exceptions import BackendTimeout, NotFound, ValidationError
from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    EntityDescriptor,
    ListQuery,
    RecordPage,
)
from dynaforms.domain.services import RecordValidationError, RecordValidator
from dynaforms.infrastructure.persistence.database import DatabaseManager
from dynaforms.infrastructure.persistence.memory_store import MemoryStore
from dynaforms.infrastructure.persistence.model_cache import ModelHandle
from dynaforms.infrastructure.persistence.repositories import RecordRepository

logger = get_logger(__name__)

T = TypeVar("T")

PERSISTENT = "persistent"
FALLBACK = "fallback"

# Connection-level failures that mean "backend unreachable", not "bad data"
_CONNECTION_ERRORS = (OperationalError, InterfaceError, ConnectionError, OSError)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_public(record: dict[str, Any], descriptor: EntityDescriptor) -> dict[str, Any]:
    """Shape a stored record for clients.

    Output order is id, declared fields, createdAt, updatedAt. Fields without
    a value are omitted and datetimes become ISO 8601 strings.
    """
    public: dict[str, Any] = {"id": record["id"]}
    for name in descriptor.field_names:
        value = record.get(name)
        if value is not None:
            public[name] = value
    public["createdAt"] = record["createdAt"]
    public["updatedAt"] = record["updatedAt"]
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in public.items()
    }


class EntityDataAccess:
    """Uniform CRUD and list interface for one entity over either backend.

    Attributes:
        descriptor: Compiled entity descriptor.
        handle: Storage handle from the model cache.
    """

    def __init__(
        self,
        descriptor: EntityDescriptor,
        handle: ModelHandle,
        db: DatabaseManager,
        fallback: MemoryStore,
        timeout: float,
    ) -> None:
        self.descriptor = descriptor
        self.handle = handle
        self.db = db
        self.fallback = fallback
        self.timeout = timeout
        self._last_backend: str | None = None

    @property
    def collection(self) -> str:
        return self.handle.collection_name

    def _note_backend(self, backend: str) -> None:
        if backend != self._last_backend:
            logger.info(
                "Entity backend selected",
                entity=self.descriptor.entity_name,
                backend=backend,
            )
            self._last_backend = backend

    async def _persistent(self, operation: Callable[[RecordRepository], Awaitable[T]]) -> T:
        """Run an operation in one persistent-store transaction."""
        await self.handle.ensure_storage(self.db.engine)
        async with self.db.session() as session:
            repository = RecordRepository(session, self.handle.table)
            result = await operation(repository)
            await session.commit()
            return result

    async def _run(
        self,
        name: str,
        persistent: Callable[[RecordRepository], Awaitable[T]],
        fallback: Callable[[], T],
        read_only: bool,
    ) -> T:
        """Dispatch an operation to the backend available right now."""
        with self.handle.acquire():
            if await self.db.is_available():
                try:
                    result = await asyncio.wait_for(
                        self._persistent(persistent), timeout=self.timeout
                    )
                    self._note_backend(PERSISTENT)
                    return result
                except asyncio.TimeoutError:
                    logger.warning(
                        "Persistent store call timed out",
                        entity=self.descriptor.entity_name,
                        operation=name,
                        timeout=self.timeout,
                    )
                    if not read_only:
                        raise BackendTimeout(
                            f"Persistent store did not answer within {self.timeout:g}s"
                        )
                except _CONNECTION_ERRORS as e:
                    logger.warning(
                        "Persistent store call failed",
                        entity=self.descriptor.entity_name,
                        operation=name,
                        error=str(e),
                    )
                    if not read_only:
                        raise BackendTimeout(f"Persistent store unavailable: {e}") from e

            self._note_backend(FALLBACK)
            return fallback()

    @staticmethod
    def _unique_error(field: str) -> RecordValidationError:
        return RecordValidationError(
            field=field,
            message=f"Value for '{field}' must be unique",
            code="unique",
        )

    def _raise_unique(self, fields: list[str]) -> None:
        RecordValidator.raise_for_errors([self._unique_error(f) for f in fields])

    async def list(
        self,
        page: int = DEFAULT_PAGE,
        page_size: int = DEFAULT_PAGE_SIZE,
        search: str | None = None,
        sort_field: str | None = None,
        sort_order: str | None = None,
    ) -> RecordPage:
        """List records with search, sort and pagination.

        Returns:
            The requested page and the total number of matching records.
        """
        query = ListQuery.build(
            self.descriptor,
            page=page,
            page_size=page_size,
            search=search,
            sort_field=sort_field,
            sort_order=sort_order,
        )
        text_fields = tuple(f.name for f in self.descriptor.text_fields)

        async def persistent(repo: RecordRepository) -> tuple[list[dict[str, Any]], int]:
            return await repo.find_all(query, text_fields)

        def fallback() -> tuple[list[dict[str, Any]], int]:
            return self.fallback.find_all(self.collection, query, text_fields)

        records, total = await self._run("list", persistent, fallback, read_only=True)
        return RecordPage(
            records=[to_public(r, self.descriptor) for r in records],
            total=total,
            page=query.page,
            page_size=query.page_size,
        )

    async def get_by_id(self, record_id: str) -> dict[str, Any]:
        """Get one record.

        Raises:
            NotFound: If the record does not exist.
        """

        async def persistent(repo: RecordRepository) -> dict[str, Any] | None:
            return await repo.get_by_id(record_id)

        def fallback() -> dict[str, Any] | None:
            return self.fallback.get(self.collection, record_id)

        record = await self._run("get", persistent, fallback, read_only=True)
        if record is None:
            raise NotFound()
        return to_public(record, self.descriptor)

    async def create(self, payload: Any) -> dict[str, Any]:
        """Create a record.

        ``id``, ``createdAt`` and ``updatedAt`` are assigned here; values
        supplied by the client for them are ignored.

        Raises:
            ValidationError: Missing required fields, bad types, unknown
                fields or unique violations.
        """
        now = utcnow()
        data, errors = RecordValidator.validate_and_apply_defaults(payload, self.descriptor, now)
        RecordValidator.raise_for_errors(errors)

        record = {"id": str(uuid.uuid4()), **data, "createdAt": now, "updatedAt": now}
        unique = [f.name for f in self.descriptor.unique_fields if data.get(f.name) is not None]

        async def persistent(repo: RecordRepository) -> dict[str, Any]:
            conflicts = [f for f in unique if await repo.value_exists(f, data[f])]
            if conflicts:
                self._raise_unique(conflicts)
            try:
                await repo.insert_record(record)
            except IntegrityError as e:
                raise ValidationError(f"Unique constraint violated: {e.orig}") from e
            return record

        def fallback() -> dict[str, Any]:
            conflicts = [f for f in unique if self.fallback.value_exists(self.collection, f, data[f])]
            if conflicts:
                self._raise_unique(conflicts)
            return self.fallback.insert(self.collection, record)

        created = await self._run("create", persistent, fallback, read_only=False)
        logger.info(
            "Record created",
            entity=self.descriptor.entity_name,
            record_id=created["id"],
        )
        return to_public(created, self.descriptor)

    @staticmethod
    def _next_updated_at(previous: datetime) -> datetime:
        # Strictly later than the previous value even on coarse clocks
        return max(utcnow(), previous + timedelta(microseconds=1))

    def _merge(self, existing: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        merged = {**existing, **changes}
        merged["id"] = existing["id"]
        merged["createdAt"] = existing["createdAt"]
        merged["updatedAt"] = self._next_updated_at(existing["updatedAt"])
        return merged

    async def update(self, record_id: str, payload: Any) -> dict[str, Any]:
        """Shallow-merge a payload onto an existing record.

        Submitted fields replace stored values, omitted fields keep theirs.
        ``id`` and ``createdAt`` never change; ``updatedAt`` always moves
        forward.

        Raises:
            NotFound: If the record does not exist.
            ValidationError: Bad types, unknown fields, cleared required
                fields or unique violations.
        """
        changes, errors = RecordValidator.validate_partial(payload, self.descriptor)
        RecordValidator.raise_for_errors(errors)
        unique = [f.name for f in self.descriptor.unique_fields if changes.get(f.name) is not None]

        async def persistent(repo: RecordRepository) -> dict[str, Any] | None:
            existing = await repo.get_by_id(record_id)
            if existing is None:
                return None
            conflicts = [
                f for f in unique if await repo.value_exists(f, changes[f], exclude_id=record_id)
            ]
            if conflicts:
                self._raise_unique(conflicts)
            merged = self._merge(existing, changes)
            values = {k: v for k, v in merged.items() if k not in ("id", "createdAt")}
            try:
                await repo.update_record(record_id, values)
            except IntegrityError as e:
                raise ValidationError(f"Unique constraint violated: {e.orig}") from e
            return merged

        def fallback() -> dict[str, Any] | None:
            existing = self.fallback.get(self.collection, record_id)
            if existing is None:
                return None
            conflicts = [
                f
                for f in unique
                if self.fallback.value_exists(self.collection, f, changes[f], exclude_id=record_id)
            ]
            if conflicts:
                self._raise_unique(conflicts)
            return self.fallback.replace(self.collection, record_id, self._merge(existing, changes))

        updated = await self._run("update", persistent, fallback, read_only=False)
        if updated is None:
            raise NotFound()
        logger.info(
            "Record updated",
            entity=self.descriptor.entity_name,
            record_id=record_id,
            fields=sorted(changes),
        )
        return to_public(updated, self.descriptor)

    async def delete(self, record_id: str) -> None:
        """Delete a record.

        Raises:
            NotFound: If the record did not exist. Callers that want
                idempotent deletes treat this as a non-fatal outcome.
        """

        async def persistent(repo: RecordRepository) -> bool:
            return await repo.delete_record(record_id)

        def fallback() -> bool:
            return self.fallback.delete(self.collection, record_id)

        deleted = await self._run("delete", persistent, fallback, read_only=False)
        if not deleted:
            raise NotFound()
        logger.info(
            "Record deleted",
            entity=self.descriptor.entity_name,
            record_id=record_id,
        )
