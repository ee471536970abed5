from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from protoc_csharp.models import Field, FieldType, GenerationError
from protoc_csharp.naming import NameNormalizer, escape_identifier
from protoc_csharp.type_index import TypeIndex


class DataFormat(Enum):
    ZIGZAG = "ZigZag"
    FIXED_SIZE = "FixedSize"
    GROUP = "Group"


class UnknownFieldType(GenerationError):
    """Raised for a field whose wire type is unset or not recognised."""


@dataclass(frozen=True)
class MappedType:
    type_name: str
    data_format: Optional[DataFormat] = None


# Proto scalar type -> (C# type, data format)
SCALAR_TYPE_MAP: Dict[FieldType, Tuple[str, Optional[DataFormat]]] = {
    FieldType.DOUBLE: ("double", None),
    FieldType.FLOAT: ("float", None),
    FieldType.BOOL: ("bool", None),
    FieldType.STRING: ("string", None),
    FieldType.SINT32: ("int", DataFormat.ZIGZAG),
    FieldType.INT32: ("int", None),
    FieldType.SFIXED32: ("int", DataFormat.FIXED_SIZE),
    FieldType.SINT64: ("long", DataFormat.ZIGZAG),
    FieldType.INT64: ("long", None),
    FieldType.SFIXED64: ("long", DataFormat.FIXED_SIZE),
    FieldType.FIXED32: ("uint", DataFormat.FIXED_SIZE),
    FieldType.UINT32: ("uint", None),
    FieldType.FIXED64: ("ulong", DataFormat.FIXED_SIZE),
    FieldType.UINT64: ("ulong", None),
    FieldType.BYTES: ("byte[]", None),
}

# Scalars stored in a plain array when repeated.
ARRAY_TYPES = frozenset({
    FieldType.BOOL,
    FieldType.DOUBLE,
    FieldType.FIXED32,
    FieldType.FIXED64,
    FieldType.FLOAT,
    FieldType.INT32,
    FieldType.INT64,
    FieldType.SFIXED32,
    FieldType.SFIXED64,
    FieldType.SINT32,
    FieldType.SINT64,
    FieldType.UINT32,
    FieldType.UINT64,
})


def map_field_type(field: Field, index: TypeIndex, normalizer: NameNormalizer) -> MappedType:
    """Resolve the C# type of a field, following enum and message references."""
    if field.type in SCALAR_TYPE_MAP:
        type_name, data_format = SCALAR_TYPE_MAP[field.type]
        return MappedType(type_name, data_format)

    if field.type is FieldType.ENUM:
        enum = index.find_enum(field.type_name, field.type_token)
        return MappedType(escape_identifier(normalizer.enum_name(enum)))

    if field.type in (FieldType.MESSAGE, FieldType.GROUP):
        message = index.find_message(field.type_name, field.type_token)
        data_format = DataFormat.GROUP if field.type is FieldType.GROUP else None
        return MappedType(escape_identifier(normalizer.message_name(message)), data_format)

    if field.type is FieldType.UNSET:
        raise UnknownFieldType(f"unknown type: {field.type_name}", field.type_token)
    raise UnknownFieldType(f"unknown type: {field.type} ({field.type_name})", field.type_token)
