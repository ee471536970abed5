from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterator, Optional, Union

from protoc_csharp.models import EnumType, GenerationError, MessageType, SchemaFile, Token

logger = logging.getLogger(__name__)

SchemaType = Union[MessageType, EnumType]


class TypeKind(Enum):
    MESSAGE = "message"
    ENUM = "enum"


_KIND_CLASSES = {
    TypeKind.MESSAGE: MessageType,
    TypeKind.ENUM: EnumType,
}


class TypeNotFound(GenerationError):
    """Raised when a type reference does not resolve."""


class KindMismatch(GenerationError):
    """Raised when a type reference resolves to the wrong kind of type."""


def _kind_of(node: SchemaType) -> TypeKind:
    return TypeKind.MESSAGE if isinstance(node, MessageType) else TypeKind.ENUM


class TypeIndex:
    """Flat map of ``.package.Outer.Inner`` names to schema nodes.

    Built fresh for each generation call.
    """

    def __init__(self) -> None:
        self._types: Dict[str, SchemaType] = {}

    @classmethod
    def build(cls, schema: SchemaFile) -> TypeIndex:
        index = cls()
        prefix = f".{schema.package}" if schema.package else ""
        for enum in schema.enum_types:
            index._add(f"{prefix}.{enum.name}", enum)
        for message in schema.message_types:
            index._add_message(prefix, message)
        logger.debug("Indexed %d type(s) from %s", len(index), schema.name)
        return index

    def _add(self, full_name: str, node: SchemaType) -> None:
        self._types[full_name] = node

    def _add_message(self, prefix: str, message: MessageType) -> None:
        full_name = f"{prefix}.{message.name}"
        self._add(full_name, message)
        for enum in message.enum_types:
            self._add(f"{full_name}.{enum.name}", enum)
        for nested in message.nested_types:
            self._add_message(full_name, nested)

    def lookup(self, name: str, kind: TypeKind, token: Optional[Token] = None) -> SchemaType:
        node = self._types.get(name)
        if node is None and not name.startswith("."):
            node = self._types.get("." + name)
        if node is None:
            raise TypeNotFound(f"Type not found: {name}", token)
        if not isinstance(node, _KIND_CLASSES[kind]):
            raise KindMismatch(
                f"Type of {name} is not suitable; expected {kind.value}, "
                f"got {_kind_of(node).value}",
                token,
            )
        return node

    def find_enum(self, name: str, token: Optional[Token] = None) -> EnumType:
        return self.lookup(name, TypeKind.ENUM, token)

    def find_message(self, name: str, token: Optional[Token] = None) -> MessageType:
        return self.lookup(name, TypeKind.MESSAGE, token)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)
