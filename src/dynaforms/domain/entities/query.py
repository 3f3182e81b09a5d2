"""List query and result page shared by both storage backends."""

import math
from dataclasses import dataclass, field
from typing import Any

from dynaforms.domain.entities.descriptor import EntityDescriptor

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
DEFAULT_SORT_FIELD = "createdAt"


@dataclass(frozen=True)
class ListQuery:
    """Normalized list parameters.

    Attributes:
        page: 1-based page number.
        page_size: Records per page (>= 1).
        search: Case-insensitive substring matched against text fields.
            None or empty disables search.
        sort_field: Field to sort by. Ties are always broken by id ascending.
        descending: Sort direction for ``sort_field``.
    """

    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    search: str | None = None
    sort_field: str = DEFAULT_SORT_FIELD
    descending: bool = True

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def has_search(self) -> bool:
        return bool(self.search)

    @classmethod
    def build(
        cls,
        descriptor: EntityDescriptor,
        page: int = DEFAULT_PAGE,
        page_size: int = DEFAULT_PAGE_SIZE,
        search: str | None = None,
        sort_field: str | None = None,
        sort_order: str | None = None,
    ) -> "ListQuery":
        """Build a query for an entity, falling back to the default sort.

        Unknown or unsortable sort fields fall back to creation order, and
        any sort order other than 'asc' means descending.
        """
        if not sort_field or sort_field not in descriptor.sortable_fields:
            sort_field = DEFAULT_SORT_FIELD
        descending = (sort_order or "desc").lower() != "asc"
        return cls(
            page=page,
            page_size=page_size,
            search=search or None,
            sort_field=sort_field,
            descending=descending,
        )


@dataclass
class RecordPage:
    """One page of records plus the total match count."""

    records: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0
