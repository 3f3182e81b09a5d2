"""Infrastructure layer - External dependencies and implementations.

This layer contains all external dependencies including:
- Persistent and fallback stores (SQLAlchemy, in-process)
- API routes and the dynamic route table (FastAPI)
"""

from dynaforms.infrastructure.persistence.database import DatabaseManager
from dynaforms.infrastructure.persistence.memory_store import MemoryStore

__all__ = [
    "DatabaseManager",
    "MemoryStore",
]
