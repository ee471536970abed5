"""Build schema trees from protoc descriptor sets."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_csharp.models import (
    EnumType,
    EnumValue,
    Field,
    FieldType,
    Label,
    MessageType,
    SchemaFile,
    Syntax,
    Token,
)

logger = logging.getLogger(__name__)

# Field numbers from descriptor.proto, used to walk source_code_info paths.
_FILE_MESSAGE_TYPE = 4
_FILE_ENUM_TYPE = 5
_MESSAGE_FIELD = 2
_MESSAGE_NESTED_TYPE = 3
_MESSAGE_ENUM_TYPE = 4
_FIELD_TYPE = 5
_FIELD_TYPE_NAME = 6

DescriptorPath = Tuple[int, ...]


class _Locations:
    """Source spans keyed by descriptor path."""

    def __init__(self, file_proto: d2.FileDescriptorProto, source_text: Optional[str]):
        self._spans: Dict[DescriptorPath, Sequence[int]] = {
            tuple(loc.path): loc.span for loc in file_proto.source_code_info.location
        }
        self._lines = source_text.splitlines() if source_text is not None else []

    def token(self, path: DescriptorPath, value: str) -> Optional[Token]:
        span = self._spans.get(path)
        if not span:
            return None
        line, col = span[0] + 1, span[1] + 1
        contents = self._lines[span[0]] if span[0] < len(self._lines) else ""
        return Token(value=value, line=line, col=col, line_contents=contents)


def _build_enum(desc: d2.EnumDescriptorProto, path: DescriptorPath, locations: _Locations) -> EnumType:
    values = [
        EnumValue(name=v.name, number=v.number, deprecated=v.options.deprecated)
        for v in desc.value
    ]
    return EnumType(
        name=desc.name,
        values=values,
        deprecated=desc.options.deprecated,
        token=locations.token(path, desc.name),
    )


def _build_field(desc: d2.FieldDescriptorProto, path: DescriptorPath, locations: _Locations) -> Field:
    type_name = desc.type_name
    # Scalars have no type_name path; point at the type keyword instead.
    type_token = locations.token(path + (_FIELD_TYPE_NAME,), type_name) or locations.token(
        path + (_FIELD_TYPE,), type_name
    )
    return Field(
        name=desc.name,
        number=desc.number,
        type=FieldType(desc.type) if desc.HasField("type") else FieldType.UNSET,
        label=Label(desc.label) if desc.HasField("label") else Label.OPTIONAL,
        type_name=type_name,
        default_value=desc.default_value if desc.HasField("default_value") else None,
        packed=desc.options.packed,
        deprecated=desc.options.deprecated,
        type_token=type_token,
    )


def _build_message(desc: d2.DescriptorProto, path: DescriptorPath, locations: _Locations) -> MessageType:
    fields = [
        _build_field(f, path + (_MESSAGE_FIELD, i), locations)
        for i, f in enumerate(desc.field)
    ]
    nested = [
        _build_message(n, path + (_MESSAGE_NESTED_TYPE, i), locations)
        for i, n in enumerate(desc.nested_type)
    ]
    enums = [
        _build_enum(e, path + (_MESSAGE_ENUM_TYPE, i), locations)
        for i, e in enumerate(desc.enum_type)
    ]
    return MessageType(
        name=desc.name,
        fields=fields,
        nested_types=nested,
        enum_types=enums,
        deprecated=desc.options.deprecated,
        token=locations.token(path, desc.name),
    )


def load_file_descriptor(
    file_proto: d2.FileDescriptorProto,
    source_text: Optional[str] = None,
) -> SchemaFile:
    """Map a FileDescriptorProto onto the generator's schema model.

    ``source_text`` is the .proto source, used to fill in the line contents
    of error positions when the descriptor carries source info.
    """
    locations = _Locations(file_proto, source_text)
    syntax = Syntax.PROTO3 if file_proto.syntax == "proto3" else Syntax.PROTO2
    namespace = None
    if file_proto.options.HasField("csharp_namespace"):
        namespace = file_proto.options.csharp_namespace

    schema = SchemaFile(
        name=file_proto.name,
        package=file_proto.package,
        syntax=syntax,
        message_types=[
            _build_message(m, (_FILE_MESSAGE_TYPE, i), locations)
            for i, m in enumerate(file_proto.message_type)
        ],
        enum_types=[
            _build_enum(e, (_FILE_ENUM_TYPE, i), locations)
            for i, e in enumerate(file_proto.enum_type)
        ],
        csharp_namespace=namespace,
    )
    logger.debug(
        "Loaded %s: %d message(s), %d enum(s)",
        schema.name, len(schema.message_types), len(schema.enum_types),
    )
    return schema


def load_descriptor_set(
    data: bytes,
    source_texts: Optional[Mapping[str, str]] = None,
) -> List[SchemaFile]:
    """Parse a serialized FileDescriptorSet into one SchemaFile per file."""
    fds = d2.FileDescriptorSet()
    fds.ParseFromString(data)
    source_texts = source_texts or {}
    return [load_file_descriptor(f, source_texts.get(f.name)) for f in fds.file]


def compile_proto(proto_path: str, include_paths: Sequence[str] = ()) -> d2.FileDescriptorSet:
    """Run protoc on a .proto file and return the resulting descriptor set."""
    includes = [os.path.dirname(os.path.abspath(proto_path)), *include_paths]

    # de-dup while preserving order
    seen = set()
    inc_args: List[str] = []
    for inc in includes:
        if inc and inc not in seen:
            seen.add(inc)
            inc_args.extend(["-I", inc])

    with tempfile.TemporaryDirectory() as td:
        desc_path = os.path.join(td, "descriptor_set.pb")
        cmd = [
            "protoc",
            "--include_imports",
            "--include_source_info",
            f"--descriptor_set_out={desc_path}",
        ] + inc_args + [proto_path]
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except FileNotFoundError as e:
            raise RuntimeError(
                "'protoc' not found. Please install Protocol Buffers compiler and ensure it is in PATH."
            ) from e
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"protoc failed: {e.stderr.decode('utf-8', errors='ignore')}") from e

        fds = d2.FileDescriptorSet()
        with open(desc_path, "rb") as f:
            fds.ParseFromString(f.read())
    return fds


def load_proto(proto_path: str, include_paths: Sequence[str] = ()) -> SchemaFile:
    """Compile a .proto file with protoc and load the schema it declares."""
    fds = compile_proto(proto_path, include_paths)

    base = os.path.basename(proto_path)
    target = next((f for f in fds.file if f.name == base), None)
    if target is None:
        names = ", ".join(f.name for f in fds.file)
        raise RuntimeError(f"Could not locate target file '{base}' in descriptor set. Found: {names}")

    with open(proto_path, "r", encoding="utf-8") as f:
        source_text = f.read()
    return load_file_descriptor(target, source_text)
