import subprocess

import pytest
from google.protobuf import descriptor_pb2 as d2

from protoc_csharp.descriptor_loader import (
    compile_proto,
    load_descriptor_set,
    load_file_descriptor,
    load_proto,
)
from protoc_csharp.generator.csharp_generator import generate_csharp
from protoc_csharp.models import FieldType, Label, Syntax
from protoc_csharp.type_index import TypeNotFound

FDP = d2.FieldDescriptorProto

SHOP_SOURCE = """\
syntax = "proto2";
package shop;
message Order {
  optional Color color = 1 [default = BLUE];
  repeated sint32 deltas = 2 [packed = true];
  message Line {}
}
enum Color { RED = 0; BLUE = 1; }
"""


def _make_file_proto() -> d2.FileDescriptorProto:
    fdp = d2.FileDescriptorProto(name="shop.proto", package="shop", syntax="proto2")
    fdp.options.csharp_namespace = "Shop.Models"

    order = fdp.message_type.add(name="Order")
    order.field.add(
        name="color", number=1, type=FDP.TYPE_ENUM, label=FDP.LABEL_OPTIONAL,
        type_name=".shop.Color", default_value="BLUE",
    )
    deltas = order.field.add(
        name="deltas", number=2, type=FDP.TYPE_SINT32, label=FDP.LABEL_REPEATED,
    )
    deltas.options.packed = True
    deltas.options.deprecated = True
    order.nested_type.add(name="Line")

    color = fdp.enum_type.add(name="Color")
    color.value.add(name="RED", number=0)
    color.value.add(name="BLUE", number=1)

    # path: message_type[0].field[0].type_name
    fdp.source_code_info.location.add(path=[4, 0, 2, 0, 6], span=[3, 11, 16])
    return fdp


class TestLoadFileDescriptor:
    def test_maps_structure(self):
        schema = load_file_descriptor(_make_file_proto())

        assert schema.name == "shop.proto"
        assert schema.package == "shop"
        assert schema.syntax is Syntax.PROTO2
        assert schema.csharp_namespace == "Shop.Models"

        order = schema.message_types[0]
        assert order.name == "Order"
        assert order.parent is None
        assert [n.name for n in order.nested_types] == ["Line"]
        assert order.nested_types[0].parent is order

        color, deltas = order.fields
        assert color.type is FieldType.ENUM
        assert color.label is Label.OPTIONAL
        assert color.type_name == ".shop.Color"
        assert color.default_value == "BLUE"
        assert color.parent is order

        assert deltas.type is FieldType.SINT32
        assert deltas.label is Label.REPEATED
        assert deltas.default_value is None
        assert deltas.packed is True
        assert deltas.deprecated is True

        assert [(v.name, v.number) for v in schema.enum_types[0].values] == [("RED", 0), ("BLUE", 1)]

    def test_proto3_and_no_namespace(self):
        fdp = d2.FileDescriptorProto(name="a.proto", syntax="proto3")
        schema = load_file_descriptor(fdp)
        assert schema.syntax is Syntax.PROTO3
        assert schema.csharp_namespace is None

    def test_missing_syntax_is_proto2(self):
        schema = load_file_descriptor(d2.FileDescriptorProto(name="a.proto"))
        assert schema.syntax is Syntax.PROTO2

    def test_field_without_type_is_unset(self):
        fdp = d2.FileDescriptorProto(name="a.proto")
        fdp.message_type.add(name="M").field.add(name="x", number=1, type_name="Mystery")
        field = load_file_descriptor(fdp).message_types[0].fields[0]
        assert field.type is FieldType.UNSET

    def test_source_positions(self):
        schema = load_file_descriptor(_make_file_proto(), SHOP_SOURCE)
        token = schema.message_types[0].fields[0].type_token
        assert (token.line, token.col) == (4, 12)
        assert token.value == ".shop.Color"
        assert token.line_contents == "  optional Color color = 1 [default = BLUE];"

    def test_positions_without_source_text(self):
        schema = load_file_descriptor(_make_file_proto())
        token = schema.message_types[0].fields[0].type_token
        assert (token.line, token.col) == (4, 12)
        assert token.line_contents == ""
        assert schema.message_types[0].fields[1].type_token is None


class TestLoadDescriptorSet:
    def test_round_trip_through_bytes(self):
        fds = d2.FileDescriptorSet(file=[_make_file_proto()])
        schemas = load_descriptor_set(fds.SerializeToString(), {"shop.proto": SHOP_SOURCE})
        assert [s.name for s in schemas] == ["shop.proto"]
        token = schemas[0].message_types[0].fields[0].type_token
        assert token.line_contents.startswith("  optional Color")


class TestGenerateFromDescriptor:
    def test_generates_csharp(self):
        result = generate_csharp(load_file_descriptor(_make_file_proto()))
        assert "namespace Shop.Models" in result
        assert "get { return __pbn__Color ?? Color.Blue; }" in result
        assert "public int[] Deltas { get; set; } = new int[0];" in result

    def test_unresolved_reference_points_at_source(self):
        fdp = _make_file_proto()
        fdp.message_type[0].field[0].type_name = ".shop.Colour"
        schema = load_file_descriptor(fdp, SHOP_SOURCE)
        with pytest.raises(TypeNotFound) as exc_info:
            generate_csharp(schema)
        err = exc_info.value
        assert (err.line, err.col) == (4, 12)
        assert err.line_contents == "  optional Color color = 1 [default = BLUE];"


class TestCompileProto:
    def test_missing_protoc(self, monkeypatch, tmp_path):
        def fake_run(*args, **kwargs):
            raise FileNotFoundError("protoc")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(RuntimeError, match="'protoc' not found"):
            compile_proto(str(tmp_path / "a.proto"))

    def test_protoc_failure(self, monkeypatch, tmp_path):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, stderr=b"a.proto:1:1: bad")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(RuntimeError, match="protoc failed: a.proto:1:1: bad"):
            compile_proto(str(tmp_path / "a.proto"))


class TestLoadProto:
    def _compile_with_import(self, proto_path, include_paths=()):
        imported = d2.FileDescriptorProto(name="data.proto", package="shop")
        imported.message_type.add(name="Imported")
        target = d2.FileDescriptorProto(name="a.proto", package="shop")
        target.message_type.add(name="Target")
        return d2.FileDescriptorSet(file=[imported, target])

    def test_selects_target_over_imports(self, monkeypatch, tmp_path):
        proto_path = tmp_path / "a.proto"
        proto_path.write_text('import "data.proto";\nmessage Target {}\n', encoding="utf-8")
        monkeypatch.setattr(
            "protoc_csharp.descriptor_loader.compile_proto", self._compile_with_import
        )

        schema = load_proto(str(proto_path))

        assert schema.name == "a.proto"
        assert [m.name for m in schema.message_types] == ["Target"]

    def test_missing_target(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            "protoc_csharp.descriptor_loader.compile_proto", self._compile_with_import
        )
        with pytest.raises(RuntimeError, match="Could not locate target file 'b.proto'"):
            load_proto(str(tmp_path / "b.proto"))
