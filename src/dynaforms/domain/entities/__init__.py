"""Domain entities for Dynaforms.

Entities are pure Python dataclasses that represent core concepts. They have
no dependencies on infrastructure or external frameworks.
"""

from dynaforms.domain.entities.descriptor import (
    SYSTEM_FIELDS,
    EntityDescriptor,
    FieldKind,
    ResolvedField,
)
from dynaforms.domain.entities.query import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    ListQuery,
    RecordPage,
)

__all__ = [
    "DEFAULT_PAGE",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SORT_FIELD",
    "SYSTEM_FIELDS",
    "EntityDescriptor",
    "FieldKind",
    "ListQuery",
    "RecordPage",
    "ResolvedField",
]
