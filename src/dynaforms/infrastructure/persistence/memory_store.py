"""In-process fallback store.

Serves record operations while the persistent store is unreachable (or not
configured). Search, sort and pagination follow the same contract as the
SQL repository so that clients see the same behavior on either backend.
Collections survive schema updates; they are keyed by collection name, not
by handle.
"""

import copy
import threading
from typing import Any

from dynaforms.domain.entities import ListQuery


class MemoryStore:
    """Thread-safe in-memory collections of records keyed by id.

    Records are stored and returned as copies, so callers can never mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._collections.get(name, {}))

    def insert(self, name: str, record: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            collection = self._collection(name)
            if record["id"] in collection:
                raise KeyError(f"Duplicate id {record['id']!r} in collection {name!r}")
            collection[record["id"]] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def get(self, name: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._collections.get(name, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def replace(self, name: str, record_id: str, record: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            collection = self._collection(name)
            if record_id not in collection:
                return None
            collection[record_id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def delete(self, name: str, record_id: str) -> bool:
        with self._lock:
            return self._collections.get(name, {}).pop(record_id, None) is not None

    def value_exists(
        self, name: str, field: str, value: Any, exclude_id: str | None = None
    ) -> bool:
        """Whether another record already holds ``value`` in ``field``."""
        with self._lock:
            return any(
                record.get(field) == value
                for record_id, record in self._collections.get(name, {}).items()
                if record_id != exclude_id
            )

    def clear(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._collections.clear()
            else:
                self._collections.pop(name, None)

    @staticmethod
    def _matches(record: dict[str, Any], term: str, text_fields: tuple[str, ...]) -> bool:
        needle = term.lower()
        for field in text_fields:
            value = record.get(field)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False

    @staticmethod
    def _sort(records: list[dict[str, Any]], field: str, descending: bool) -> list[dict[str, Any]]:
        # Id order first; the stable sort keeps it as the tie-breaker
        ordered = sorted(records, key=lambda r: r["id"])
        present = [r for r in ordered if r.get(field) is not None]
        empty = [r for r in ordered if r.get(field) is None]
        present.sort(key=lambda r: r[field], reverse=descending)
        # Empty values sort last in both directions
        return present + empty

    def find_all(
        self, name: str, query: ListQuery, text_fields: tuple[str, ...]
    ) -> tuple[list[dict[str, Any]], int]:
        """Search, sort and paginate a collection.

        Args:
            name: Collection name.
            query: Normalized list query.
            text_fields: Names of the fields searched by ``query.search``.

        Returns:
            Tuple of (records on the requested page, total matching records).
        """
        with self._lock:
            records = list(self._collections.get(name, {}).values())

        if query.has_search:
            records = [r for r in records if self._matches(r, query.search, text_fields)]

        total = len(records)
        ordered = self._sort(records, query.sort_field, query.descending)
        page = ordered[query.offset : query.offset + query.page_size]
        return copy.deepcopy(page), total
