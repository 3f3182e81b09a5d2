"""Domain services for Dynaforms.

Services contain business logic that doesn't naturally fit within a single
entity. They have no dependencies on infrastructure or external frameworks.
"""

from dynaforms.domain.services.record_validator import (
    RecordValidationError,
    RecordValidator,
)
from dynaforms.domain.services.field_type_resolver import (
    NOW_SENTINEL,
    VALID_KINDS,
    FieldTypeResolver,
)
from dynaforms.domain.services.descriptor_compiler import (
    RECORD_KEY,
    EntityDescriptorCompiler,
    canonical_model_name,
)

__all__ = [
    "NOW_SENTINEL",
    "RECORD_KEY",
    "VALID_KINDS",
    "EntityDescriptorCompiler",
    "FieldTypeResolver",
    "RecordValidationError",
    "RecordValidator",
    "canonical_model_name",
]
