"""
Unit tests for schema types.

Tests cover:
- Field kinds and value conversion
- Field constraint checks
- Entity definitions and the implicit id field
- Serialization
"""

import pytest

from apigen.erapi_server.schema.types import (
    ID_FIELD_NAME,
    Cardinality,
    EntityDef,
    FieldDef,
    FieldKind,
    FieldValueError,
    RelationshipDef,
    field,
)


class TestFieldKind:
    """Tests for FieldKind."""

    def test_from_str(self):
        assert FieldKind.from_str("string") == FieldKind.STRING
        assert FieldKind.from_str("enum") == FieldKind.ENUM

    def test_from_str_invalid(self):
        with pytest.raises(ValueError, match="Invalid field kind"):
            FieldKind.from_str("timestamp")

    def test_empty_values(self):
        assert FieldKind.STRING.empty_value() == ""
        assert FieldKind.INTEGER.empty_value() == 0
        assert FieldKind.FLOAT.empty_value() == 0.0
        assert FieldKind.BOOLEAN.empty_value() is False
        assert FieldKind.ENUM.empty_value() is None


class TestFieldDef:
    """Tests for FieldDef creation and conversion."""

    def test_enum_requires_values(self):
        with pytest.raises(ValueError, match="enum_values required"):
            FieldDef(name="type", kind=FieldKind.ENUM)

    def test_enum_values_only_for_enum(self):
        with pytest.raises(ValueError, match="only allowed for ENUM"):
            field("title", "string", enum_values=("a",))

    def test_max_length_only_for_string(self):
        with pytest.raises(ValueError, match="max_length only allowed"):
            field("count", "integer", max_length=3)

    def test_bounds_only_for_numbers(self):
        with pytest.raises(ValueError, match="minimum/maximum"):
            field("title", "string", minimum=1)

    def test_inverted_bounds(self):
        with pytest.raises(ValueError, match="minimum greater than maximum"):
            field("price", "float", minimum=10, maximum=1)

    def test_system_generated_cannot_be_required(self):
        with pytest.raises(ValueError, match="cannot be required"):
            field("created", "integer", system_generated=True, required=True)

    def test_convert_integer(self):
        f = field("count", "integer")
        assert f.convert(3) == 3
        assert f.convert("42") == 42
        assert f.convert(5.0) == 5

    @pytest.mark.parametrize("value", [True, "ten", 1.5, [1]])
    def test_convert_integer_rejects(self, value):
        f = field("count", "integer")
        with pytest.raises(FieldValueError, match="does not match type INTEGER"):
            f.convert(value)

    def test_convert_float_accepts_text(self):
        f = field("price", "float")
        assert f.convert("2.50") == 2.5
        assert f.convert(2) == 2.0

    def test_convert_float_rejects_nan(self):
        with pytest.raises(FieldValueError):
            field("price", "float").convert("nan")

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), 10**400])
    def test_convert_numbers_reject_non_finite_values(self, value):
        with pytest.raises(FieldValueError, match="does not match type FLOAT"):
            field("price", "float").convert(value)
        if not isinstance(value, int):
            with pytest.raises(FieldValueError, match="does not match type INTEGER"):
                field("numberinstock", "integer").convert(value)

    def test_convert_boolean(self):
        f = field("pinned", "boolean")
        assert f.convert(True) is True
        assert f.convert("FALSE") is False
        with pytest.raises(FieldValueError, match="BOOLEAN"):
            f.convert(1)

    def test_convert_string_rejects_objects(self):
        f = field("title", "string")
        assert f.convert(12) == "12"
        with pytest.raises(FieldValueError, match="STRING"):
            f.convert({"a": 1})

    def test_enum_membership(self):
        f = field("type", "enum", enum_values=("book", "cd"))
        assert f.convert("cd") == "cd"
        with pytest.raises(FieldValueError, match=r"must be one of \[book, cd\]"):
            f.convert("vinyl")

    def test_max_length(self):
        f = field("isbn13", "string", max_length=5)
        with pytest.raises(FieldValueError, match="exceeds maximum length 5"):
            f.convert("123456")

    def test_bounds(self):
        f = field("price", "float", minimum=0, maximum=100)
        assert f.convert(100) == 100.0
        with pytest.raises(FieldValueError, match="must be >= 0"):
            f.convert(-0.01)
        with pytest.raises(FieldValueError, match="must be <= 100"):
            f.convert(100.5)

    def test_initial_value(self):
        assert field("title", "string").initial_value() == ""
        assert field("count", "integer", default=7).initial_value() == 7
        assert field("isbn13", "string", unique=True).initial_value() is None

    def test_round_trip(self):
        f = field("type", "enum", required=True, enum_values=("book", "cd"), description="kind")
        assert FieldDef.from_dict(f.to_dict()) == f


class TestEntityDef:
    """Tests for EntityDef."""

    def test_plural_defaults(self):
        entity = EntityDef(name="todo")
        assert entity.plural == "todos"

    def test_id_field_is_first(self, item_entity):
        assert item_entity.fields[0].name == ID_FIELD_NAME
        assert item_entity.fields[0].system_generated is True
        assert item_entity.get_field_names() == [
            "id",
            "type",
            "isbn13",
            "price",
            "numberinstock",
        ]

    def test_explicit_id_must_be_system_integer(self):
        with pytest.raises(ValueError, match="system generated integer"):
            EntityDef(name="thing", fields=(field("id", "string"),))

    def test_duplicate_field(self):
        with pytest.raises(ValueError, match="Duplicate field name"):
            EntityDef(name="thing", fields=(field("a", "string"), field("a", "integer")))

    def test_slash_in_plural(self):
        with pytest.raises(ValueError, match="cannot contain"):
            EntityDef(name="thing", plural="a/b")

    def test_unique_fields(self, item_entity):
        assert [f.name for f in item_entity.get_unique_fields()] == ["isbn13"]

    def test_equality_by_name(self):
        assert EntityDef(name="todo") == EntityDef(name="todo", fields=(field("a", "string"),))
        assert hash(EntityDef(name="todo")) == hash(EntityDef(name="todo"))

    def test_round_trip(self, item_entity):
        restored = EntityDef.from_dict(item_entity.to_dict())
        assert restored.fields == item_entity.fields
        assert restored.plural == "items"

    def test_relationships(self):
        rel = RelationshipDef(name="tasks", to_entity="todo", cardinality=Cardinality.MANY)
        entity = EntityDef(name="project", relationships=(rel,))
        data = entity.to_dict()
        assert data["relationships"] == [{"name": "tasks", "to": "todo", "cardinality": "many"}]
        assert EntityDef.from_dict(data).relationships == (rel,)
