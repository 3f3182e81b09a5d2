"""Repositories for persistent store access."""

from dynaforms.infrastructure.persistence.repositories.record_repository import (
    RecordRepository,
)

__all__ = ["RecordRepository"]
