import pytest

from protoc_csharp.models import EnumType, EnumValue, MessageType, SchemaFile, Token
from protoc_csharp.type_index import KindMismatch, TypeIndex, TypeKind, TypeNotFound


def _make_schema(package: str = "shop") -> SchemaFile:
    status = EnumType("Status", values=[EnumValue("OK", 0)])
    line = MessageType("Line", nested_types=[MessageType("Discount")])
    order = MessageType("Order", nested_types=[line], enum_types=[status])
    color = EnumType("Color", values=[EnumValue("RED", 0)])
    return SchemaFile(
        name="shop.proto",
        package=package,
        message_types=[order, MessageType("Customer")],
        enum_types=[color],
    )


class TestBuild:
    def test_registers_nested_types_by_full_name(self):
        index = TypeIndex.build(_make_schema())
        assert sorted(index) == [
            ".shop.Color",
            ".shop.Customer",
            ".shop.Order",
            ".shop.Order.Line",
            ".shop.Order.Line.Discount",
            ".shop.Order.Status",
        ]
        assert len(index) == 6

    def test_without_package(self):
        index = TypeIndex.build(_make_schema(package=""))
        assert ".Order.Line" in index
        assert ".Color" in index

    def test_each_build_is_independent(self):
        schema = _make_schema()
        assert TypeIndex.build(schema) is not TypeIndex.build(schema)


class TestLookup:
    def setup_method(self):
        self.schema = _make_schema()
        self.index = TypeIndex.build(self.schema)

    def test_finds_message(self):
        order = self.schema.message_types[0]
        assert self.index.lookup(".shop.Order", TypeKind.MESSAGE) is order
        assert self.index.find_message(".shop.Order.Line") is order.nested_types[0]

    def test_finds_enum(self):
        assert self.index.find_enum(".shop.Order.Status").name == "Status"

    def test_leading_dot_is_optional(self):
        assert self.index.find_enum("shop.Color").name == "Color"

    def test_missing_type_carries_token(self):
        token = Token(value=".shop.Nope", line=7, col=5, line_contents="    Nope nope = 1;")
        with pytest.raises(TypeNotFound) as exc_info:
            self.index.find_message(".shop.Nope", token)
        err = exc_info.value
        assert (err.line, err.col, err.text) == (7, 5, ".shop.Nope")
        assert err.line_contents == "    Nope nope = 1;"
        assert "Type not found: .shop.Nope" in str(err)

    def test_wrong_kind(self):
        with pytest.raises(KindMismatch) as exc_info:
            self.index.find_message(".shop.Color")
        assert "expected message, got enum" in str(exc_info.value)

        with pytest.raises(KindMismatch):
            self.index.find_enum(".shop.Order")
