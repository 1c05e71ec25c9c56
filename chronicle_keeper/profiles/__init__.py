from .instructions import InstructionBook
from .schema import (
    DEFAULT_FIELD_NAMES,
    DEFAULT_FIELDS,
    NO_INFORMATION,
    FieldKind,
    ProfileDocument,
    ProfileField,
    SchemaError,
    reconcile,
    validate,
)
from .store import ProfileStore

__all__ = [
    "DEFAULT_FIELDS",
    "DEFAULT_FIELD_NAMES",
    "FieldKind",
    "InstructionBook",
    "NO_INFORMATION",
    "ProfileDocument",
    "ProfileField",
    "ProfileStore",
    "SchemaError",
    "reconcile",
    "validate",
]
