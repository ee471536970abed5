"""Identifier normalization: raw schema names to declared C# names."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Optional, Set

from protoc_csharp.models import EnumType, EnumValue, Field, MessageType

_ALL_UPPER = re.compile(r"^[_A-Z0-9]*$")
_ALL_LOWER = re.compile(r"^[_a-z0-9]*$")
_UPPER_RUN = re.compile(r"(^|_)([A-Z0-9])([A-Z0-9]*)")
_LOWER_RUN = re.compile(r"(^|_)([a-z0-9])([a-z0-9]*)")

_VOWELS = "aeiou"

RESERVED_WORDS = frozenset({
    "abstract", "as", "base", "bool", "break", "byte", "case", "catch",
    "char", "checked", "class", "const", "continue", "decimal", "default",
    "delegate", "do", "double", "else", "enum", "event", "explicit",
    "extern", "false", "finally", "fixed", "float", "for", "foreach",
    "goto", "if", "implicit", "in", "int", "interface", "internal", "is",
    "lock", "long", "namespace", "new", "null", "object", "operator",
    "out", "override", "params", "private", "protected", "public",
    "readonly", "ref", "return", "sbyte", "sealed", "short", "sizeof",
    "stackalloc", "static", "string", "struct", "switch", "this", "throw",
    "true", "try", "typeof", "uint", "ulong", "unchecked", "unsafe",
    "ushort", "using", "virtual", "void", "volatile", "while",
})


def escape_identifier(identifier: str) -> str:
    """Prefix C# keywords with ``@`` so they stay usable as identifiers."""
    if identifier in RESERVED_WORDS:
        return "@" + identifier
    return identifier


def _proper_case(match: re.Match) -> str:
    return match.group(2).upper() + match.group(3).lower()


def auto_capitalize(identifier: str) -> str:
    """SCREAMING_SNAKE and snake_case become PascalCase.

    Mixed-case identifiers keep their casing and only lose underscores.
    """
    if not identifier:
        return identifier
    if _ALL_UPPER.match(identifier):
        return _UPPER_RUN.sub(_proper_case, identifier)
    if _ALL_LOWER.match(identifier):
        return _LOWER_RUN.sub(_proper_case, identifier)
    return identifier.replace("_", "")


def auto_pluralize(identifier: str) -> str:
    """English-only plural heuristic; "bus" stays "bus"."""
    if len(identifier) <= 1:
        return identifier

    if identifier.endswith("ss") or identifier.endswith("o"):
        return identifier + "es"
    if identifier.endswith("is") and len(identifier) > 2:
        return identifier[:-2] + "es"

    # might already be plural
    if identifier.endswith("s"):
        return identifier

    if identifier.endswith("y") and len(identifier) > 2:
        if identifier[-2] not in _VOWELS:
            return identifier[:-1] + "ies"
    return identifier + "s"


class NameNormalizer(ABC):
    """Strategy turning schema identifiers into declared identifiers.

    Subclasses decide casing and pluralization; the conflict chain that
    keeps a name clear of its enclosing scope is shared.
    """

    @abstractmethod
    def declare(self, identifier: str) -> str:
        ...

    @abstractmethod
    def pluralize(self, identifier: str) -> str:
        ...

    def message_name(self, message: MessageType) -> str:
        return self._resolve(message.parent, self.declare(message.name), message.name, False)

    def enum_name(self, enum: EnumType) -> str:
        return self._resolve(enum.parent, self.declare(enum.name), enum.name, False)

    def enum_value_name(self, value: EnumValue) -> str:
        return auto_capitalize(value.name)

    def field_name(self, field: Field) -> str:
        preferred = self.declare(field.name)
        if field.is_repeated:
            preferred = self.pluralize(preferred)
        return self._resolve(field.parent, preferred, field.name, True)

    def _build_conflicts(self, parent: Optional[MessageType], include_nested: bool) -> Set[str]:
        conflicts: Set[str] = set()
        if parent is not None:
            conflicts.add(self.message_name(parent))
            if include_nested:
                conflicts.update(self.message_name(t) for t in parent.nested_types)
                conflicts.update(self.enum_name(e) for e in parent.enum_types)
        return conflicts

    def _resolve(
        self,
        parent: Optional[MessageType],
        preferred: str,
        fallback: str,
        include_nested: bool,
    ) -> str:
        conflicts = self._build_conflicts(parent, include_nested)

        for attempt in (preferred, fallback, preferred + "Value", fallback + "Value"):
            if attempt not in conflicts:
                return attempt

        i = 1
        while preferred + str(i) in conflicts:
            i += 1
        return preferred + str(i)


class IdentityNormalizer(NameNormalizer):
    def declare(self, identifier: str) -> str:
        return identifier

    def pluralize(self, identifier: str) -> str:
        return identifier


class DefaultNormalizer(NameNormalizer):
    def declare(self, identifier: str) -> str:
        return auto_capitalize(identifier)

    def pluralize(self, identifier: str) -> str:
        return auto_pluralize(identifier)


DEFAULT = DefaultNormalizer()
IDENTITY = IdentityNormalizer()
