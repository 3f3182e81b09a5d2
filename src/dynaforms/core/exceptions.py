"""Exceptions raised by the schema compiler and the generated endpoints.

Two families:

- ``SchemaCompileError`` subclasses are raised while compiling a schema
  document. They are fatal to the schema update that triggered them and
  never to the running system.
- ``RequestError`` subclasses are raised while serving a request and carry
  the HTTP status they translate to.
"""

from typing import Any


class DynaformsError(Exception):
    """Base class for all Dynaforms errors."""

    pass


class SchemaCompileError(DynaformsError):
    """Raised when a schema document or entity block cannot be compiled."""

    def __init__(self, reason: str, entity: str | None = None, field: str | None = None):
        self.reason = reason
        self.entity = entity
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        location = ""
        if self.entity is not None and self.field is not None:
            location = f"{self.entity}.{self.field}: "
        elif self.entity is not None:
            location = f"{self.entity}: "
        return f"{location}{self.reason}"


class InvalidSchemaDocument(SchemaCompileError):
    """The document as a whole has the wrong shape."""


class InvalidFieldKind(SchemaCompileError):
    """A field declares a kind outside the closed set of supported kinds."""


class InvalidDefault(SchemaCompileError):
    """A field default does not fit the field's kind."""


class InvalidEntityConfig(SchemaCompileError):
    """An entity block (route, field map, field names) is malformed."""


class ModelNameCollision(SchemaCompileError):
    """Two entity names resolve to the same canonical model name."""


class RequestError(DynaformsError):
    """Raised while serving a generated endpoint.

    Attributes:
        status_code: HTTP status the error translates to.
        message: Message returned to the client.
    """

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_response(self) -> dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(RequestError):
    """Record payload failed validation against its entity descriptor."""

    status_code = 400

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        if self.errors:
            body["details"] = [
                {"field": e.field, "message": e.message, "code": e.code} for e in self.errors
            ]
        return body


class NotFound(RequestError):
    """The addressed record does not exist."""

    status_code = 404

    def __init__(self, message: str = "Item not found"):
        super().__init__(message)


class StaleHandle(RequestError):
    """The storage handle was superseded by a schema update before use."""

    status_code = 503


class BackendTimeout(RequestError):
    """The persistent store did not answer within the configured timeout."""

    status_code = 504


class UpdateInProgress(RequestError):
    """Another schema update is being applied."""

    status_code = 409

    def __init__(self, message: str = "A schema update is already in progress"):
        super().__init__(message)
