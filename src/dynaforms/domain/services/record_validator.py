"""Record validation service for validating payloads against entity descriptors.

Checks declared kinds, required fields and unknown fields, applies defaults,
and coerces values to their in-process storage types so both storage
backends hold identical data.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from dynaforms.core.exceptions import ValidationError
from dynaforms.domain.entities import SYSTEM_FIELDS, EntityDescriptor, FieldKind


@dataclass
class RecordValidationError:
    """A single record validation error."""

    field: str
    message: str
    code: str


class RecordValidator:
    """Validator for record payloads against entity descriptors."""

    @classmethod
    def validate_text(cls, value: Any, field_name: str) -> RecordValidationError | None:
        """Validate a text field value."""
        if not isinstance(value, str):
            return RecordValidationError(
                field=field_name,
                message=f"Expected text value, got {type(value).__name__}",
                code="invalid_type",
            )
        return None

    @classmethod
    def validate_number(cls, value: Any, field_name: str) -> RecordValidationError | None:
        """Validate a number field value."""
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return RecordValidationError(
                field=field_name,
                message=f"Expected number value, got {type(value).__name__}",
                code="invalid_type",
            )
        if isinstance(value, int):
            try:
                float(value)
            except OverflowError:
                return RecordValidationError(
                    field=field_name,
                    message="Number is too large",
                    code="invalid_type",
                )
        elif not math.isfinite(value):
            return RecordValidationError(
                field=field_name,
                message="Number must be finite",
                code="invalid_type",
            )
        return None

    @classmethod
    def validate_boolean(cls, value: Any, field_name: str) -> RecordValidationError | None:
        """Validate a boolean field value."""
        if not isinstance(value, bool):
            return RecordValidationError(
                field=field_name,
                message=f"Expected boolean value, got {type(value).__name__}",
                code="invalid_type",
            )
        return None

    @classmethod
    def validate_date(cls, value: Any, field_name: str) -> RecordValidationError | None:
        """Validate a date field value.

        Accepts ISO 8601 date or datetime strings and date/datetime objects.
        """
        if isinstance(value, (datetime, date)):
            return None

        if isinstance(value, str):
            if cls.parse_datetime(value) is None:
                return RecordValidationError(
                    field=field_name,
                    message="Invalid date format. Use ISO 8601 format (e.g., 2024-01-01T12:00:00Z)",
                    code="invalid_date_format",
                )
            return None

        return RecordValidationError(
            field=field_name,
            message=f"Expected date string, got {type(value).__name__}",
            code="invalid_type",
        )

    @classmethod
    def validate_list(cls, value: Any, field_name: str) -> RecordValidationError | None:
        """Validate a list field value."""
        if not isinstance(value, list):
            return RecordValidationError(
                field=field_name,
                message=f"Expected list value, got {type(value).__name__}",
                code="invalid_type",
            )
        return None

    @classmethod
    def validate_value(
        cls, kind: FieldKind, value: Any, field_name: str
    ) -> RecordValidationError | None:
        """Validate a value for the given kind."""
        validators = {
            FieldKind.TEXT: cls.validate_text,
            FieldKind.NUMBER: cls.validate_number,
            FieldKind.BOOLEAN: cls.validate_boolean,
            FieldKind.DATE: cls.validate_date,
            FieldKind.LIST: cls.validate_list,
        }
        return validators[kind](value, field_name)

    @classmethod
    def parse_datetime(cls, value: Any) -> datetime | None:
        """Parse an ISO 8601 string or date object into an aware UTC datetime.

        Returns:
            The parsed datetime, or None if the value cannot be parsed.
        """
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                return None
        else:
            return None

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    @classmethod
    def coerce_value(cls, kind: FieldKind, value: Any) -> Any:
        """Convert an already validated value to the kind's storage type."""
        if value is None:
            return None
        if kind is FieldKind.NUMBER:
            return float(value)
        if kind is FieldKind.DATE:
            return cls.parse_datetime(value)
        if kind is FieldKind.LIST:
            return list(value)
        return value

    @classmethod
    def _check_payload(
        cls, data: Any, descriptor: EntityDescriptor
    ) -> tuple[dict[str, Any], list[RecordValidationError]]:
        """Drop server-managed fields and flag undeclared ones."""
        if not isinstance(data, Mapping):
            return {}, [
                RecordValidationError(
                    field="body",
                    message="Request body must be a JSON object",
                    code="invalid_body",
                )
            ]

        errors: list[RecordValidationError] = []
        declared = set(descriptor.field_names)
        payload: dict[str, Any] = {}
        for key, value in data.items():
            if key in SYSTEM_FIELDS:
                # id/createdAt/updatedAt are server-assigned
                continue
            if key not in declared:
                errors.append(
                    RecordValidationError(
                        field=key,
                        message=f"Unknown field '{key}'",
                        code="unknown_field",
                    )
                )
                continue
            payload[key] = value
        return payload, errors

    @classmethod
    def validate_and_apply_defaults(
        cls,
        data: Any,
        descriptor: EntityDescriptor,
        now: datetime,
    ) -> tuple[dict[str, Any], list[RecordValidationError]]:
        """Validate a create payload and apply declared defaults.

        Args:
            data: The request payload.
            descriptor: The entity descriptor to validate against.
            now: Creation timestamp, used for ``"now"`` defaults.

        Returns:
            Tuple of (processed data, list of errors).
        """
        payload, errors = cls._check_payload(data, descriptor)
        processed: dict[str, Any] = {}

        for field in descriptor.fields:
            value = payload.get(field.name)

            if value is None:
                if field.default_now:
                    processed[field.name] = now
                elif field.default is not None:
                    processed[field.name] = cls.coerce_value(field.kind, field.default)
                elif field.required:
                    errors.append(
                        RecordValidationError(
                            field=field.name,
                            message=f"Field '{field.name}' is required",
                            code="required",
                        )
                    )
                continue

            error = cls.validate_value(field.kind, value, field.name)
            if error is not None:
                errors.append(error)
                continue
            processed[field.name] = cls.coerce_value(field.kind, value)

        return processed, errors

    @classmethod
    def validate_partial(
        cls, data: Any, descriptor: EntityDescriptor
    ) -> tuple[dict[str, Any], list[RecordValidationError]]:
        """Validate an update payload.

        Only submitted fields are checked. A required field may be omitted
        but not cleared.
        """
        payload, errors = cls._check_payload(data, descriptor)
        processed: dict[str, Any] = {}

        for name, value in payload.items():
            field = descriptor.get_field(name)
            if field is None:
                continue
            if value is None:
                if field.required:
                    errors.append(
                        RecordValidationError(
                            field=name,
                            message=f"Field '{name}' is required and cannot be cleared",
                            code="required_cleared",
                        )
                    )
                else:
                    processed[name] = None
                continue

            error = cls.validate_value(field.kind, value, name)
            if error is not None:
                errors.append(error)
                continue
            processed[name] = cls.coerce_value(field.kind, value)

        return processed, errors

    @classmethod
    def raise_for_errors(cls, errors: list[RecordValidationError]) -> None:
        """Raise a ``ValidationError`` summarizing the errors, if any.

        All missing required fields are listed in the message.
        """
        if not errors:
            return

        missing = [e.field for e in errors if e.code == "required"]
        others = [e for e in errors if e.code != "required"]

        parts = []
        if missing:
            parts.append(f"Missing required fields: {', '.join(missing)}")
        parts.extend(f"{e.field}: {e.message}" for e in others)
        raise ValidationError("; ".join(parts), errors=errors)
