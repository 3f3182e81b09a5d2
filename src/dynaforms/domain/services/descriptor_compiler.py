"""Entity descriptor compiler.

Turns a schema document (or one entity block of it) into immutable
``EntityDescriptor`` objects. Compilation is fail-fast: the first problem in
an entity aborts that entity, and any failing entity aborts the document.

Document shape::

    {
        "record": {
            "items": {
                "route": "/api/items",
                "fields": {"name": {"kind": "text", "required": true}},
                "frontend": {...}            # preserved, ignored here
            }
        }
    }
"""

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from dynaforms.core.exceptions import (
    InvalidEntityConfig,
    InvalidSchemaDocument,
    ModelNameCollision,
)
from dynaforms.domain.entities import SYSTEM_FIELDS, EntityDescriptor
from dynaforms.domain.services.field_type_resolver import FieldTypeResolver

# Top-level key holding the entity blocks
RECORD_KEY = "record"

ENTITY_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ROUTE_PATTERN = re.compile(r"^(/[A-Za-z0-9._~-]+)+$")

# Paths served by the application itself
RESERVED_ROUTES = frozenset({"/", "/health", "/api/schema", "/api/schema/update"})

MAX_NAME_LENGTH = 64

# Column names are case-insensitive in storage
RESERVED_FIELD_NAMES = frozenset(name.lower() for name in SYSTEM_FIELDS)


def canonical_model_name(entity_name: str) -> str:
    """Upper-case the first character of an entity name."""
    return entity_name[:1].upper() + entity_name[1:]


class EntityDescriptorCompiler:
    """Compiles schema documents into entity descriptors."""

    @classmethod
    def validate_entity_name(cls, entity_name: Any) -> None:
        if not isinstance(entity_name, str) or not entity_name:
            raise InvalidEntityConfig("Entity name must be a non-empty string", entity=str(entity_name))
        if len(entity_name) > MAX_NAME_LENGTH:
            raise InvalidEntityConfig(
                f"Entity name must be at most {MAX_NAME_LENGTH} characters", entity=entity_name
            )
        if not ENTITY_NAME_PATTERN.match(entity_name):
            raise InvalidEntityConfig(
                "Entity name must start with a letter and contain only alphanumeric "
                "characters and underscores",
                entity=entity_name,
            )

    @classmethod
    def validate_route(cls, entity_name: str, route: Any) -> str:
        if route is None or route == "":
            raise InvalidEntityConfig("Route is required", entity=entity_name)
        if not isinstance(route, str):
            raise InvalidEntityConfig("Route must be a string", entity=entity_name)
        if not route.startswith("/"):
            raise InvalidEntityConfig(
                f"Route {route!r} must begin with '/'", entity=entity_name
            )
        if not ROUTE_PATTERN.match(route):
            raise InvalidEntityConfig(
                f"Route {route!r} must be one or more '/segment' parts without a trailing slash",
                entity=entity_name,
            )
        if route in RESERVED_ROUTES:
            raise InvalidEntityConfig(
                f"Route {route!r} is reserved by the application", entity=entity_name
            )
        return route

    @classmethod
    def validate_field_name(cls, entity_name: str, field_name: Any) -> None:
        if not isinstance(field_name, str) or not field_name:
            raise InvalidEntityConfig("Field name must be a non-empty string", entity=entity_name)
        if len(field_name) > MAX_NAME_LENGTH:
            raise InvalidEntityConfig(
                f"Field name must be at most {MAX_NAME_LENGTH} characters",
                entity=entity_name,
                field=field_name,
            )
        if not FIELD_NAME_PATTERN.match(field_name):
            raise InvalidEntityConfig(
                "Field name must start with a letter or underscore and contain only "
                "alphanumeric characters and underscores",
                entity=entity_name,
                field=field_name,
            )
        if field_name.lower() in RESERVED_FIELD_NAMES:
            raise InvalidEntityConfig(
                f"Field name '{field_name}' is reserved and cannot be used",
                entity=entity_name,
                field=field_name,
            )

    @classmethod
    def compile(cls, entity_name: str, config: Any) -> EntityDescriptor:
        """Compile a single entity block.

        Args:
            entity_name: The entity name (document key).
            config: The entity configuration mapping.

        Returns:
            A freshly created, immutable descriptor.

        Raises:
            InvalidEntityConfig: Bad name, route or field map.
            InvalidFieldKind: A field declares an unknown kind.
            InvalidDefault: A field default does not fit its kind.
        """
        cls.validate_entity_name(entity_name)

        if not isinstance(config, Mapping):
            raise InvalidEntityConfig("Entity configuration must be an object", entity=entity_name)

        route = cls.validate_route(entity_name, config.get("route"))

        fields = config.get("fields")
        if not isinstance(fields, Mapping):
            raise InvalidEntityConfig("'fields' must be an object", entity=entity_name)
        if not fields:
            raise InvalidEntityConfig("Entity must declare at least one field", entity=entity_name)

        resolved = []
        seen: dict[str, str] = {}
        for field_name, spec in fields.items():
            cls.validate_field_name(entity_name, field_name)
            if field_name.lower() in seen:
                raise InvalidEntityConfig(
                    f"Field name '{field_name}' clashes with '{seen[field_name.lower()]}'",
                    entity=entity_name,
                    field=field_name,
                )
            seen[field_name.lower()] = field_name
            resolved.append(FieldTypeResolver.resolve(entity_name, field_name, spec))

        return EntityDescriptor(
            entity_name=entity_name,
            model_name=canonical_model_name(entity_name),
            route=route,
            fields=tuple(resolved),
            created_at=datetime.now(timezone.utc),
        )

    @classmethod
    def entity_blocks(cls, document: Any) -> Mapping[str, Any]:
        """Return the entity blocks of a document after checking its shape.

        Raises:
            InvalidSchemaDocument: If the document is not an object with a
                ``record`` object.
        """
        if not isinstance(document, Mapping):
            raise InvalidSchemaDocument("Schema document must be a JSON object")
        if RECORD_KEY not in document:
            raise InvalidSchemaDocument(f"Schema document must contain a '{RECORD_KEY}' object")
        blocks = document[RECORD_KEY]
        if not isinstance(blocks, Mapping):
            raise InvalidSchemaDocument(f"'{RECORD_KEY}' must be an object")
        return blocks

    @staticmethod
    def _nested_route(route: str, routes: Mapping[str, str]) -> str | None:
        """Return an accepted route that contains ``route`` or is contained by it.

        A route nested under another would be shadowed by that entity's
        ``{route}/{id}`` handlers.
        """
        for other in routes:
            if route.startswith(other + "/") or other.startswith(route + "/"):
                return other
        return None

    @classmethod
    def compile_document(cls, document: Any) -> dict[str, EntityDescriptor]:
        """Compile every entity of a document, all or nothing.

        Args:
            document: The full schema document.

        Returns:
            Mapping of entity name to descriptor, in document order.

        Raises:
            SchemaCompileError: The first problem found. No partial result
                is ever returned.
        """
        blocks = cls.entity_blocks(document)

        descriptors: dict[str, EntityDescriptor] = {}
        routes: dict[str, str] = {}
        model_names: dict[str, str] = {}

        for entity_name, config in blocks.items():
            descriptor = cls.compile(entity_name, config)

            if descriptor.route in routes:
                raise InvalidEntityConfig(
                    f"Route {descriptor.route!r} is already used by entity "
                    f"'{routes[descriptor.route]}'",
                    entity=entity_name,
                )
            nested = cls._nested_route(descriptor.route, routes)
            if nested is not None:
                raise InvalidEntityConfig(
                    f"Route {descriptor.route!r} overlaps route {nested!r} of entity "
                    f"'{routes[nested]}'",
                    entity=entity_name,
                )

            # Storage collection names are case-insensitive
            model_key = descriptor.model_name.lower()
            if model_key in model_names:
                raise ModelNameCollision(
                    f"Model name '{descriptor.model_name}' collides with entity "
                    f"'{model_names[model_key]}'",
                    entity=entity_name,
                )

            routes[descriptor.route] = entity_name
            model_names[model_key] = entity_name
            descriptors[entity_name] = descriptor

        return descriptors
