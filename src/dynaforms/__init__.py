"""Dynaforms - CRUD endpoints generated from a declarative schema document.

Schema documents are compiled at runtime into entity descriptors, storage
handles and routes, and swapped in without restarting the process.
"""

__version__ = "0.1.0"

from dynaforms.infrastructure.api.app import app

__all__ = ["app", "__version__"]
