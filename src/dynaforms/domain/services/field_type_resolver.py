"""Field type resolution for schema documents.

Maps the abstract field kind declared in a FieldSpec onto the closed
``FieldKind`` set and its constraints. Unknown kinds are a hard error; they
are never defaulted to text.
"""

from collections.abc import Mapping
from typing import Any

from dynaforms.core.exceptions import InvalidDefault, InvalidEntityConfig, InvalidFieldKind
from dynaforms.domain.entities import FieldKind, ResolvedField
from dynaforms.domain.services.record_validator import RecordValidator

# Default value resolved to the record's creation timestamp
NOW_SENTINEL = "now"

VALID_KINDS = tuple(k.value for k in FieldKind)


class FieldTypeResolver:
    """Resolves one FieldSpec into a ``ResolvedField``. Pure and stateless."""

    @classmethod
    def resolve_kind(cls, raw_kind: Any, entity: str, field_name: str) -> FieldKind:
        """Resolve a declared kind name.

        Raises:
            InvalidFieldKind: If the kind is missing or not recognized.
        """
        if raw_kind is None:
            raise InvalidFieldKind(
                f"Field kind is required. Valid kinds: {', '.join(VALID_KINDS)}",
                entity=entity,
                field=field_name,
            )
        if not isinstance(raw_kind, str) or raw_kind not in VALID_KINDS:
            raise InvalidFieldKind(
                f"Invalid field kind {raw_kind!r}. Valid kinds: {', '.join(VALID_KINDS)}",
                entity=entity,
                field=field_name,
            )
        return FieldKind(raw_kind)

    @classmethod
    def resolve_default(
        cls, kind: FieldKind, raw_default: Any, entity: str, field_name: str
    ) -> tuple[Any, bool]:
        """Resolve a declared default.

        Returns:
            Tuple of (static default coerced to the kind, default_now flag).

        Raises:
            InvalidDefault: If the default does not fit the kind.
        """
        if raw_default is None:
            return None, False

        if raw_default == NOW_SENTINEL:
            if kind is not FieldKind.DATE:
                raise InvalidDefault(
                    f"Default {NOW_SENTINEL!r} is only valid for '{FieldKind.DATE.value}' fields, "
                    f"not '{kind.value}'",
                    entity=entity,
                    field=field_name,
                )
            return None, True

        error = RecordValidator.validate_value(kind, raw_default, field_name)
        if error is not None:
            raise InvalidDefault(
                f"Default value does not match kind '{kind.value}': {error.message}",
                entity=entity,
                field=field_name,
            )
        return RecordValidator.coerce_value(kind, raw_default), False

    @classmethod
    def resolve(cls, entity: str, field_name: str, spec: Any) -> ResolvedField:
        """Resolve a single FieldSpec.

        Args:
            entity: Name of the entity the field belongs to (for errors).
            field_name: Declared field name.
            spec: The FieldSpec mapping.

        Returns:
            The resolved field.

        Raises:
            InvalidFieldKind: Unknown or missing kind.
            InvalidDefault: Default that does not fit the kind.
            InvalidEntityConfig: Malformed spec or constraint flags.
        """
        if not isinstance(spec, Mapping):
            raise InvalidEntityConfig(
                "Field spec must be an object", entity=entity, field=field_name
            )

        kind = cls.resolve_kind(spec.get("kind"), entity, field_name)

        flags: dict[str, bool] = {}
        for flag in ("required", "unique"):
            value = spec.get(flag, False)
            if value is None:
                value = False
            if not isinstance(value, bool):
                raise InvalidEntityConfig(
                    f"'{flag}' must be a boolean", entity=entity, field=field_name
                )
            flags[flag] = value

        if flags["unique"] and kind is FieldKind.LIST:
            raise InvalidEntityConfig(
                f"'{FieldKind.LIST.value}' fields cannot be unique", entity=entity, field=field_name
            )

        default, default_now = cls.resolve_default(kind, spec.get("default"), entity, field_name)

        return ResolvedField(
            name=field_name,
            kind=kind,
            required=flags["required"],
            unique=flags["unique"],
            default=default,
            default_now=default_now,
        )
