"""Repository for record operations on the persistent store.

Tables are built at runtime from entity descriptors, so statements are
composed with SQLAlchemy Core against the handle's ``Table`` rather than
through mapped ORM classes.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Table, delete, false, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement
from sqlalchemy.types import DateTime, Text

from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import ListQuery
from dynaforms.infrastructure.persistence.database import SQLITE_LOWER_FUNCTION
from dynaforms.infrastructure.persistence.table_builder import ID_COLUMN

logger = get_logger(__name__)


class unicode_lower(FunctionElement):
    """Unicode-aware ``lower()``, matching Python's ``str.lower``.

    Renders as ``lower()`` everywhere except SQLite, where the function
    registered by ``DatabaseManager`` is used instead.
    """

    type = Text()
    name = "unicode_lower"
    inherit_cache = True


@compiles(unicode_lower)
def _compile_unicode_lower(element, compiler, **kw):
    return "lower(%s)" % compiler.process(element.clauses, **kw)


@compiles(unicode_lower, "sqlite")
def _compile_unicode_lower_sqlite(element, compiler, **kw):
    return "%s(%s)" % (SQLITE_LOWER_FUNCTION, compiler.process(element.clauses, **kw))


class RecordRepository:
    """Record CRUD and list queries over one collection table."""

    def __init__(self, session: AsyncSession, table: Table) -> None:
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session.
            table: Collection table from the entity's model handle.
        """
        self.session = session
        self.table = table

    def _to_record(self, row: Any) -> dict[str, Any]:
        """Convert a result row into a record dict.

        SQLite drops timezone information, so naive datetimes are read back
        as UTC (the only zone ever written).
        """
        record = dict(row)
        for column in self.table.columns:
            value = record.get(column.name)
            if isinstance(column.type, DateTime) and isinstance(value, datetime):
                if value.tzinfo is None:
                    record[column.name] = value.replace(tzinfo=timezone.utc)
                else:
                    record[column.name] = value.astimezone(timezone.utc)
        return record

    async def insert_record(self, record: dict[str, Any]) -> None:
        """Insert a complete record (system fields included)."""
        await self.session.execute(insert(self.table).values(**record))
        logger.debug("Record inserted", table_name=self.table.name, record_id=record[ID_COLUMN])

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        result = await self.session.execute(
            select(self.table).where(self.table.c[ID_COLUMN] == record_id)
        )
        row = result.mappings().first()
        return self._to_record(row) if row is not None else None

    async def update_record(self, record_id: str, values: dict[str, Any]) -> bool:
        """Update columns of a record.

        Returns:
            True if a row was updated, False if the id does not exist.
        """
        result = await self.session.execute(
            update(self.table).where(self.table.c[ID_COLUMN] == record_id).values(**values)
        )
        return result.rowcount > 0

    async def delete_record(self, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a row was deleted, False if the id does not exist.
        """
        result = await self.session.execute(
            delete(self.table).where(self.table.c[ID_COLUMN] == record_id)
        )
        return result.rowcount > 0

    async def value_exists(
        self, field: str, value: Any, exclude_id: str | None = None
    ) -> bool:
        """Whether another record already holds ``value`` in ``field``."""
        stmt = select(self.table.c[ID_COLUMN]).where(self.table.c[field] == value)
        if exclude_id is not None:
            stmt = stmt.where(self.table.c[ID_COLUMN] != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def find_all(
        self, query: ListQuery, text_fields: tuple[str, ...]
    ) -> tuple[list[dict[str, Any]], int]:
        """Search, sort and paginate the collection.

        Args:
            query: Normalized list query.
            text_fields: Names of the columns searched by ``query.search``.

        Returns:
            Tuple of (records on the requested page, total matching records).
        """
        conditions = []
        if query.has_search:
            needle = query.search.lower()
            matches = [
                unicode_lower(self.table.c[name]).contains(needle, autoescape=True)
                for name in text_fields
            ]
            conditions.append(or_(*matches) if matches else false())

        count_stmt = select(func.count()).select_from(self.table).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        sort_column = self.table.c[query.sort_field]
        ordering = sort_column.desc() if query.descending else sort_column.asc()

        select_stmt = (
            select(self.table)
            .where(*conditions)
            .order_by(ordering.nulls_last(), self.table.c[ID_COLUMN].asc())
            .limit(query.page_size)
            .offset(query.offset)
        )
        result = await self.session.execute(select_stmt)
        records = [self._to_record(row) for row in result.mappings().all()]
        return records, total
