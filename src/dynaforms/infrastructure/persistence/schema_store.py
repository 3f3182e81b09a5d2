"""Durable storage for the accepted schema document.

The document is kept as a JSON file at ``schema_path``. Writes go to a
temporary file in the same directory and are moved into place, so a crash
mid-write never leaves a truncated document behind.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from dynaforms.core.logging import get_logger

logger = get_logger(__name__)


class SchemaStore:
    """Reads and writes the schema document at a fixed path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        """Load the stored document.

        Returns:
            The stored document, or None when there is none or it cannot be
            read as a JSON object.
        """
        if not self.path.exists():
            logger.debug("No stored schema document", path=str(self.path))
            return None

        try:
            with self.path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read stored schema document", path=str(self.path), error=str(e))
            return None

        if not isinstance(document, dict):
            logger.error(
                "Stored schema document is not a JSON object",
                path=str(self.path),
                type=type(document).__name__,
            )
            return None

        logger.info("Stored schema document loaded", path=str(self.path))
        return document

    def save_sync(self, document: dict[str, Any]) -> None:
        """Write the document atomically.

        Raises:
            OSError: If the file cannot be written.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def save(self, document: dict[str, Any]) -> None:
        """Write the document atomically without blocking the event loop."""
        await asyncio.to_thread(self.save_sync, document)
        logger.info("Schema document saved", path=str(self.path))
