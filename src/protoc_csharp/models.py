from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Syntax(Enum):
    PROTO2 = "proto2"  # explicit presence
    PROTO3 = "proto3"  # implicit presence


class Label(Enum):
    OPTIONAL = 1
    REQUIRED = 2
    REPEATED = 3


class FieldType(Enum):
    """Wire-level field types, numbered as in descriptor.proto."""

    UNSET = 0
    DOUBLE = 1
    FLOAT = 2
    INT64 = 3
    UINT64 = 4
    INT32 = 5
    FIXED64 = 6
    FIXED32 = 7
    BOOL = 8
    STRING = 9
    GROUP = 10
    MESSAGE = 11
    BYTES = 12
    UINT32 = 13
    ENUM = 14
    SFIXED32 = 15
    SFIXED64 = 16
    SINT32 = 17
    SINT64 = 18


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class Token:
    """Source position of a schema element."""

    value: str = ""
    line: int = 0
    col: int = 0
    line_contents: str = ""


class GenerationError(Exception):
    """Raised when the schema cannot be turned into code."""

    def __init__(self, message: str, token: Token | None = None):
        self.message = message
        self.token = token or Token()
        if token:
            super().__init__(f"Line {token.line}:{token.col}: {message}")
        else:
            super().__init__(message)

    @property
    def line(self) -> int:
        return self.token.line

    @property
    def col(self) -> int:
        return self.token.col

    @property
    def text(self) -> str:
        return self.token.value

    @property
    def line_contents(self) -> str:
        return self.token.line_contents


@dataclass
class Diagnostic:
    """A problem reported upstream, rendered into the generated file."""

    message: str
    severity: Severity = Severity.ERROR
    token: Optional[Token] = None
    file: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def render(self) -> str:
        if self.token is None:
            return self.message
        return f"{self.file}({self.token.line},{self.token.col}): {self.message}"


@dataclass
class EnumValue:
    name: str
    number: int
    deprecated: bool = False


@dataclass
class EnumType:
    name: str
    values: List[EnumValue] = field(default_factory=list)
    deprecated: bool = False
    token: Optional[Token] = None
    parent: Optional[MessageType] = field(default=None, repr=False, compare=False)


@dataclass
class Field:
    name: str
    number: int
    type: FieldType
    label: Label = Label.OPTIONAL
    type_name: str = ""
    default_value: Optional[str] = None
    packed: bool = False
    deprecated: bool = False
    type_token: Optional[Token] = None
    parent: Optional[MessageType] = field(default=None, repr=False, compare=False)

    @property
    def is_repeated(self) -> bool:
        return self.label is Label.REPEATED


@dataclass
class MessageType:
    """A message definition, possibly containing nested messages and enums.

    Children get their ``parent`` pointed back at this message on
    construction; the reference is only used for upward lookups.
    """

    name: str
    fields: List[Field] = field(default_factory=list)
    nested_types: List[MessageType] = field(default_factory=list)
    enum_types: List[EnumType] = field(default_factory=list)
    deprecated: bool = False
    token: Optional[Token] = None
    parent: Optional[MessageType] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        for child in (*self.fields, *self.nested_types, *self.enum_types):
            child.parent = self


@dataclass
class SchemaFile:
    """Top-level parsed representation of a .proto file."""

    name: str
    package: str = ""
    syntax: Syntax = Syntax.PROTO2
    message_types: List[MessageType] = field(default_factory=list)
    enum_types: List[EnumType] = field(default_factory=list)
    csharp_namespace: Optional[str] = None

    @property
    def namespace(self) -> str:
        if self.csharp_namespace is not None:
            return self.csharp_namespace
        return self.package
