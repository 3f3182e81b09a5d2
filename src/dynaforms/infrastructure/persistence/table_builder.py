"""Dynamic table builder for the persistent store.

Builds a SQLAlchemy ``Table`` for each compiled entity and creates it in the
database on first use. Existing tables only ever grow: columns for newly
declared fields are added, nothing is dropped or retyped.
"""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    MetaData,
    String,
    Table,
    Text,
    inspect,
    text,
)
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.types import TypeEngine

from dynaforms.core.logging import get_logger
from dynaforms.domain.entities import EntityDescriptor, FieldKind

logger = get_logger(__name__)


# Column type for each field kind
FIELD_KIND_TO_SQL: dict[FieldKind, type[TypeEngine[Any]] | TypeEngine[Any]] = {
    FieldKind.TEXT: Text,
    FieldKind.NUMBER: Float,
    FieldKind.BOOLEAN: Boolean,
    FieldKind.DATE: DateTime(timezone=True),
    FieldKind.LIST: JSON,
}

# System columns added to every collection table
ID_COLUMN = "id"
CREATED_AT_COLUMN = "createdAt"
UPDATED_AT_COLUMN = "updatedAt"


class TableBuilder:
    """Builds and creates collection tables from entity descriptors."""

    @classmethod
    def generate_table_name(cls, model_name: str) -> str:
        """Generate the table name for a canonical model name.

        Prefixed with 'col_' and lower-cased, since table names are
        case-insensitive on SQLite.
        """
        return f"col_{model_name.lower()}"

    @classmethod
    def column_type(cls, kind: FieldKind) -> TypeEngine[Any]:
        sql_type = FIELD_KIND_TO_SQL[kind]
        return sql_type() if isinstance(sql_type, type) else sql_type

    @classmethod
    def build_table(cls, descriptor: EntityDescriptor) -> Table:
        """Build the table definition for a descriptor.

        Each table gets its own ``MetaData`` so a superseded handle's table
        never clashes with the one that replaces it.
        """
        table_name = cls.generate_table_name(descriptor.model_name)
        metadata = MetaData()

        columns = [
            Column(ID_COLUMN, String(36), primary_key=True),
            Column(CREATED_AT_COLUMN, DateTime(timezone=True), nullable=False),
            Column(UPDATED_AT_COLUMN, DateTime(timezone=True), nullable=False),
        ]
        # Required is enforced by the record validator so that the flag can
        # change without touching existing rows
        columns.extend(
            Column(f.name, cls.column_type(f.kind), nullable=True) for f in descriptor.fields
        )

        indexes = [Index(f"ix_{table_name}_created_at", CREATED_AT_COLUMN)]
        indexes.extend(
            Index(f"uq_{table_name}_{f.name}", f.name, unique=True)
            for f in descriptor.unique_fields
        )

        return Table(table_name, metadata, *columns, *indexes)

    @classmethod
    def build_add_column_ddl(
        cls, table: Table, columns: list[Column[Any]], dialect: Dialect
    ) -> list[str]:
        """Build ALTER TABLE ADD COLUMN statements for new columns."""
        quote = dialect.identifier_preparer.quote
        return [
            f"ALTER TABLE {quote(table.name)} ADD COLUMN {quote(column.name)} "
            f"{column.type.compile(dialect=dialect)}"
            for column in columns
        ]

    @classmethod
    def _ensure_table_sync(cls, conn: Connection, table: Table) -> None:
        inspector = inspect(conn)

        if not inspector.has_table(table.name):
            table.create(conn)
            logger.info("Collection table created", table_name=table.name)
            return

        existing = {c["name"].lower() for c in inspector.get_columns(table.name)}
        missing = [c for c in table.columns if c.name.lower() not in existing]
        if missing:
            for ddl in cls.build_add_column_ddl(table, missing, conn.dialect):
                conn.execute(text(ddl))
                logger.debug("Column added", ddl=ddl)
            logger.info(
                "Columns added to collection table",
                table_name=table.name,
                columns=[c.name for c in missing],
            )

        for index in table.indexes:
            try:
                with conn.begin_nested():
                    index.create(conn, checkfirst=True)
            except DBAPIError as e:
                # Existing rows violate the new constraint; uniqueness is
                # still checked on write
                logger.warning(
                    "Could not create index on existing table",
                    table_name=table.name,
                    index=index.name,
                    error=str(e.orig),
                )

    @classmethod
    async def ensure_table(cls, engine: AsyncEngine, table: Table) -> None:
        """Create the table if missing, otherwise add missing columns/indexes.

        Args:
            engine: SQLAlchemy async engine.
            table: Table built by ``build_table``.
        """
        async with engine.begin() as conn:
            await conn.run_sync(cls._ensure_table_sync, table)
