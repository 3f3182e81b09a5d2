"""Compiled entity descriptors.

A descriptor is the immutable, validated form of one entity block of a
schema document. Descriptors are never mutated: every schema update compiles
fresh ones, and the previous ones are dropped once no in-flight request
holds them.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# System fields present on every record, in output order
SYSTEM_FIELDS = ("id", "createdAt", "updatedAt")


class FieldKind(str, Enum):
    """Closed set of field kinds a schema document may declare."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    LIST = "list"

    @property
    def python_type(self) -> type:
        """In-process storage type for values of this kind."""
        return _PYTHON_TYPES[self]


_PYTHON_TYPES: dict[FieldKind, type] = {
    FieldKind.TEXT: str,
    FieldKind.NUMBER: float,
    FieldKind.BOOLEAN: bool,
    FieldKind.DATE: datetime,
    FieldKind.LIST: list,
}


@dataclass(frozen=True)
class ResolvedField:
    """A field after kind resolution.

    Attributes:
        name: Field name as declared.
        kind: Resolved field kind.
        required: Whether create payloads must carry a value.
        unique: Whether values must be unique within the collection.
        default: Static default applied on create, already coerced to the
            kind's storage type (None when there is no static default).
        default_now: Default to the record's creation timestamp.
    """

    name: str
    kind: FieldKind
    required: bool = False
    unique: bool = False
    default: Any = None
    default_now: bool = False

    @property
    def has_default(self) -> bool:
        return self.default_now or self.default is not None

    @property
    def signature(self) -> tuple[str, str, bool]:
        """The part of the field that shapes persistent storage."""
        return (self.name, self.kind.value, self.unique)


@dataclass(frozen=True)
class EntityDescriptor:
    """Immutable compiled description of one entity.

    Attributes:
        entity_name: Entity name as declared in the document.
        model_name: Canonical model name (first character upper-cased).
        route: Route prefix the entity is served under.
        fields: Resolved fields in declaration order.
        created_at: When this descriptor was compiled.
    """

    entity_name: str
    model_name: str
    route: str
    fields: tuple[ResolvedField, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_field(self, name: str) -> ResolvedField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def text_fields(self) -> tuple[ResolvedField, ...]:
        """Fields that take part in search."""
        return tuple(f for f in self.fields if f.kind is FieldKind.TEXT)

    @property
    def required_fields(self) -> tuple[ResolvedField, ...]:
        return tuple(f for f in self.fields if f.required)

    @property
    def unique_fields(self) -> tuple[ResolvedField, ...]:
        return tuple(f for f in self.fields if f.unique)

    @property
    def sortable_fields(self) -> frozenset[str]:
        """Fields a list may be ordered by. List fields have no order."""
        scalar = (f.name for f in self.fields if f.kind is not FieldKind.LIST)
        return frozenset(scalar) | frozenset(SYSTEM_FIELDS)

    @property
    def fingerprint(self) -> str:
        """SHA-256 over the model name and storage-relevant field signature.

        Two descriptors with the same fingerprint can share a storage handle.
        """
        payload = json.dumps(
            {"model": self.model_name, "fields": [f.signature for f in self.fields]},
            separators=(",", ":"),
        )
        return "sha256:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()
