from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from jinja2 import Environment, FileSystemLoader

from protoc_csharp.models import (
    Diagnostic,
    EnumType,
    Field,
    FieldType,
    Label,
    MessageType,
    SchemaFile,
    Syntax,
)
from protoc_csharp.naming import DEFAULT, NameNormalizer, escape_identifier
from protoc_csharp.output_writer import OutputWriter
from protoc_csharp.type_index import TypeIndex
from protoc_csharp.type_mapper import ARRAY_TYPES, map_field_type

logger = logging.getLogger(__name__)

HEADER_TEMPLATE = "csharp_header.cs.j2"

# Backing field prefix for proto2 optional scalars.
FIELD_PREFIX = "__pbn__"

_REFERENCE_TYPES = (FieldType.STRING, FieldType.BYTES)
_MESSAGE_TYPES = (FieldType.MESSAGE, FieldType.GROUP)


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
    )


class _GeneratorContext:
    def __init__(self, schema: SchemaFile, normalizer: NameNormalizer, writer: OutputWriter):
        self.schema = schema
        self.normalizer = normalizer
        self.writer = writer
        self.index = TypeIndex.build(schema)

    @property
    def explicit_presence(self) -> bool:
        return self.schema.syntax is Syntax.PROTO2


def _write_header(ctx: _GeneratorContext, diagnostics: Optional[Sequence[Diagnostic]]) -> None:
    errors: List[str] = [d.render() for d in diagnostics or () if d.is_error]
    if errors:
        logger.debug("Rendering %d upstream error(s) into %s", len(errors), ctx.schema.name)

    template = _get_template_env().get_template(HEADER_TEMPLATE)
    ctx.writer.write(template.render(
        input_name=os.path.basename(ctx.schema.name),
        schema_name=ctx.schema.name,
        errors=errors,
    ))


def _write_options(ctx: _GeneratorContext, deprecated: bool) -> None:
    if deprecated:
        ctx.writer.write_line("[global::System.Obsolete]")


def _write_enum(ctx: _GeneratorContext, enum: EnumType) -> None:
    writer = ctx.writer
    name = ctx.normalizer.enum_name(enum)
    writer.write_line(f'[global::ProtoBuf.ProtoContract(Name = @"{enum.name}")]')
    _write_options(ctx, enum.deprecated)
    writer.write_line(f"public enum {escape_identifier(name)}")
    writer.write_line("{").indent()
    for value in enum.values:
        value_name = ctx.normalizer.enum_value_name(value)
        writer.write_line(f'[global::ProtoBuf.ProtoEnum(Name = @"{value.name}", Value = {value.number})]')
        _write_options(ctx, value.deprecated)
        writer.write_line(f"{escape_identifier(value_name)} = {value.number},")
    writer.outdent().write_line("}").write_line()


def _write_message(ctx: _GeneratorContext, message: MessageType) -> None:
    writer = ctx.writer
    name = ctx.normalizer.message_name(message)
    writer.write_line(f'[global::ProtoBuf.ProtoContract(Name = @"{message.name}")]')
    _write_options(ctx, message.deprecated)
    writer.write_line(f"public partial class {escape_identifier(name)}")
    writer.write_line("{").indent()
    for enum in message.enum_types:
        _write_enum(ctx, enum)
    for nested in message.nested_types:
        _write_message(ctx, nested)
    for field in message.fields:
        _write_field(ctx, field)
    writer.outdent().write_line("}").write_line()


def _resolve_default(ctx: _GeneratorContext, field: Field) -> Optional[str]:
    """Render the default of an optional field as a C# expression.

    Enum literals that match no value are passed through unresolved.
    """
    default = field.default_value

    if field.type is FieldType.STRING:
        if not default:
            return '""'
        return '@"' + default.replace('"', '""') + '"'

    if not default or not default.strip():
        return None

    if field.type is FieldType.ENUM:
        enum = ctx.index.find_enum(field.type_name, field.type_token)
        member = next((v for v in enum.values if v.name == default), None)
        if member is not None:
            default = ctx.normalizer.enum_value_name(member)
        else:
            logger.debug("Default %r of %s matches no value of %s", default, field.name, enum.name)
        return f"{escape_identifier(ctx.normalizer.enum_name(enum))}.{default}"

    if field.type is FieldType.BYTES or field.type in _MESSAGE_TYPES:
        return None
    return default


def _write_field(ctx: _GeneratorContext, field: Field) -> None:
    writer = ctx.writer
    name = ctx.normalizer.field_name(field)
    is_optional = field.label is Label.OPTIONAL
    is_repeated = field.label is Label.REPEATED

    explicit_values = (
        is_optional
        and ctx.explicit_presence
        and field.type not in _MESSAGE_TYPES
    )

    default_value = _resolve_default(ctx, field) if is_optional else None
    mapped = map_field_type(field, ctx.index, ctx.normalizer)
    type_name = mapped.type_name

    attribute = f'[global::ProtoBuf.ProtoMember({field.number}, Name = @"{field.name}"'
    if mapped.data_format is not None:
        attribute += f", DataFormat = global::ProtoBuf.DataFormat.{mapped.data_format.value}"
    if field.packed:
        attribute += ", IsPacked = true"
    if field.label is Label.REQUIRED:
        attribute += ", IsRequired = true"
    writer.write_line(attribute + ")]")

    if not is_repeated and default_value:
        writer.write_line(f"[global::System.ComponentModel.DefaultValue({default_value})]")
    _write_options(ctx, field.deprecated)

    declared = escape_identifier(name)
    if is_repeated:
        if field.type in ARRAY_TYPES:
            writer.write_line(f"public {type_name}[] {declared} {{ get; set; }} = new {type_name}[0];")
        else:
            list_type = f"global::System.Collections.Generic.List<{type_name}>"
            writer.write_line(f"public {list_type} {declared} {{ get; }} = new {list_type}();")
    elif explicit_values:
        _write_presence_property(ctx, field, name, type_name, default_value)
    else:
        line = f"public {type_name} {declared} {{ get; set; }}"
        if default_value:
            line += f" = {default_value};"
        writer.write_line(line)
    writer.write_line()


def _write_presence_property(
    ctx: _GeneratorContext,
    field: Field,
    name: str,
    type_name: str,
    default_value: Optional[str],
) -> None:
    """Emit a proto2 optional scalar as a nullable backing field plus accessors.

    ``ShouldSerializeX`` reports presence and ``ResetX`` clears it; the
    property getter falls back to the default while the field is unset.
    """
    writer = ctx.writer
    backing = FIELD_PREFIX + name
    is_ref = field.type in _REFERENCE_TYPES
    backing_type = type_name if is_ref else type_name + "?"

    writer.write_line(f"public {type_name} {escape_identifier(name)}")
    writer.write_line("{").indent()
    getter = f"get {{ return {backing}"
    if default_value:
        getter += f" ?? {default_value}"
    elif not is_ref:
        getter += ".GetValueOrDefault()"
    writer.write_line(getter + "; }")
    writer.write_line(f"set {{ {backing} = value; }}")
    writer.outdent().write_line("}")
    writer.write_line(f"public bool ShouldSerialize{name}() => {backing} != null;")
    writer.write_line(f"public void Reset{name}() => {backing} = null;")
    writer.write_line(f"private {backing_type} {backing};")


def write_csharp(
    sink: TextIO,
    schema: SchemaFile,
    normalizer: Optional[NameNormalizer] = None,
    diagnostics: Optional[Sequence[Diagnostic]] = None,
) -> None:
    """Write C# declarations for every enum and message in the schema."""
    ctx = _GeneratorContext(schema, normalizer or DEFAULT, OutputWriter(sink))
    writer = ctx.writer

    _write_header(ctx, diagnostics)

    namespace = schema.namespace
    wrap = bool(namespace and namespace.strip())
    if wrap:
        writer.write_line(f"namespace {namespace}")
        writer.write_line("{").indent().write_line()

    for enum in schema.enum_types:
        _write_enum(ctx, enum)
    for message in schema.message_types:
        _write_message(ctx, message)

    if wrap:
        writer.outdent().write_line("}").write_line()
    writer.write_line("#pragma warning restore CS1591")


def generate_csharp(
    schema: SchemaFile,
    normalizer: Optional[NameNormalizer] = None,
    diagnostics: Optional[Sequence[Diagnostic]] = None,
) -> str:
    """Generate C# source for a schema and return it as a string."""
    buffer = io.StringIO()
    write_csharp(buffer, schema, normalizer, diagnostics)
    return buffer.getvalue()


def output_path(schema: SchemaFile, out_dir: str) -> str:
    stem = os.path.splitext(os.path.basename(schema.name))[0]
    return os.path.join(out_dir, f"{stem}.cs")


def generate_file(
    schema: SchemaFile,
    out_dir: str,
    normalizer: Optional[NameNormalizer] = None,
    diagnostics: Optional[Sequence[Diagnostic]] = None,
) -> str:
    """Generate ``<stem>.cs`` for a schema under out_dir.

    Returns the generated file path.
    """
    source = generate_csharp(schema, normalizer, diagnostics)
    os.makedirs(out_dir, exist_ok=True)
    file_path = output_path(schema, out_dir)
    Path(file_path).write_text(source, encoding="utf-8")
    logger.debug("Wrote %s", file_path)
    return file_path
