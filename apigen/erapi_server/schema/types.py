"""
Core type definitions for the entity schema.

This module defines the foundational types of the entity-relationship model:
- FieldDef: Individual field within an entity
- RelationshipDef: Declared relationship from one entity to another
- EntityDef: Definition of an entity (a resource exposed over HTTP)

Invariants:
    - Entity names and plurals are labels used as routing keys
    - Every entity carries an integer, system generated ``id`` field
    - Field kinds form a closed set; each kind has one conversion rule
    - Definitions are immutable once constructed

How to change safely:
    - Add new field kinds to FieldKind together with a conversion rule
    - Add new constraints as optional attributes with neutral defaults
    - Never make an existing optional constraint mandatory

Example:
    >>> from apigen.erapi_server.schema.types import EntityDef, field
    >>> Item = EntityDef(
    ...     name="item",
    ...     fields=(
    ...         field("price", "float", required=True, minimum=0),
    ...         field("isbn13", "string", required=True, unique=True),
    ...         field("type", "enum", enum_values=("book", "cd")),
    ...     ),
    ... )
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

ID_FIELD_NAME = "id"


class FieldKind(Enum):
    """Supported field types in the schema.

    These map to conversion rules applied to incoming values.
    """

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ENUM = "enum"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Args:
            value: String name of the field kind

        Returns:
            Corresponding FieldKind enum value

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.FLOAT)

    def empty_value(self) -> Any:
        """Value used for an omitted field that declares no default."""
        return _EMPTY_VALUES.get(self)


_EMPTY_VALUES: dict[FieldKind, Any] = {
    FieldKind.STRING: "",
    FieldKind.INTEGER: 0,
    FieldKind.FLOAT: 0.0,
    FieldKind.BOOLEAN: False,
}


class FieldValueError(ValueError):
    """Raised when a value cannot be accepted for a field.

    The message is the reason only; callers prefix the field name.
    """


class Cardinality(Enum):
    """How many target instances a relationship may reference."""

    ONE = "one"
    MANY = "many"


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single field within an entity.

    Attributes:
        name: Field name, also the wire name in JSON and XML bodies
        kind: The data type of the field
        required: Whether the field must be supplied on create/replace
        unique: Whether values must be unique (after normalization)
        system_generated: Whether only the server may set the value
        default: Default value if not provided
        max_length: Maximum length for string values
        minimum: Inclusive lower bound for numeric values
        maximum: Inclusive upper bound for numeric values
        enum_values: Valid values if kind is ENUM
        description: Human-readable description

    Invariants:
        - enum_values required for ENUM and only allowed there
        - max_length only applies to STRING
        - minimum/maximum only apply to numeric kinds
        - a system generated field is never required from a client

    Example:
        >>> isbn = FieldDef(name="isbn13", kind=FieldKind.STRING, unique=True)
    """

    name: str
    kind: FieldKind
    required: bool = False
    unique: bool = False
    system_generated: bool = False
    default: Any = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    enum_values: tuple[str, ...] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")
        if self.kind != FieldKind.ENUM and self.enum_values:
            raise ValueError(f"enum_values only allowed for ENUM field '{self.name}'")
        if self.max_length is not None:
            if self.kind != FieldKind.STRING:
                raise ValueError(f"max_length only allowed for string field '{self.name}'")
            if self.max_length <= 0:
                raise ValueError(f"max_length must be positive for field '{self.name}'")
        if (self.minimum is not None or self.maximum is not None) and not self.kind.is_numeric:
            raise ValueError(f"minimum/maximum only allowed for numeric field '{self.name}'")
        if (
            self.minimum is not None
            and self.maximum is not None
            and self.minimum > self.maximum
        ):
            raise ValueError(f"minimum greater than maximum for field '{self.name}'")
        if self.system_generated and self.required:
            raise ValueError(f"System generated field '{self.name}' cannot be required")

    def initial_value(self) -> Any:
        """Value stored when a create or replace omits this field."""
        if self.default is not None:
            return self.default
        if self.unique:
            return None
        return self.kind.empty_value()

    def convert(self, value: Any) -> Any:
        """Convert a wire value to the internal representation.

        JSON values arrive typed, XML values arrive as text, so numeric
        strings are accepted for numeric kinds and "true"/"false" for
        booleans.

        Args:
            value: The incoming value (never None)

        Returns:
            The converted value

        Raises:
            FieldValueError: If the value does not fit the kind or constraints
        """
        converter = _CONVERTERS[self.kind]
        try:
            converted = converter(value)
        except (TypeError, ValueError, OverflowError):
            raise FieldValueError(f"does not match type {self.kind.name}") from None

        if self.kind == FieldKind.ENUM and converted not in (self.enum_values or ()):
            raise FieldValueError(f"must be one of [{', '.join(self.enum_values or ())}]")
        if self.max_length is not None and len(converted) > self.max_length:
            raise FieldValueError(f"exceeds maximum length {self.max_length}")
        if self.minimum is not None and converted < self.minimum:
            raise FieldValueError(f"must be >= {_format_bound(self.minimum)}")
        if self.maximum is not None and converted > self.maximum:
            raise FieldValueError(f"must be <= {_format_bound(self.maximum)}")
        return converted

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
        }
        if self.required:
            result["required"] = True
        if self.unique:
            result["unique"] = True
        if self.system_generated:
            result["system_generated"] = True
        if self.default is not None:
            result["default"] = self.default
        if self.max_length is not None:
            result["max_length"] = self.max_length
        if self.minimum is not None:
            result["minimum"] = self.minimum
        if self.maximum is not None:
            result["maximum"] = self.maximum
        if self.enum_values:
            result["enum_values"] = list(self.enum_values)
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["kind"]),
            required=data.get("required", False),
            unique=data.get("unique", False),
            system_generated=data.get("system_generated", False),
            default=data.get("default"),
            max_length=data.get("max_length"),
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            enum_values=tuple(data["enum_values"]) if data.get("enum_values") else None,
            description=data.get("description", ""),
        )


def _format_bound(bound: float) -> str:
    if float(bound).is_integer():
        return str(int(bound))
    return str(bound)


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(type(value).__name__)
    return str(value)


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(value)
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            number = float(text)
            if not number.is_integer():
                raise
            return int(number)
    raise TypeError(type(value).__name__)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("bool")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        number = float(value.strip())
    else:
        raise TypeError(type(value).__name__)
    if not math.isfinite(number):
        raise ValueError(value)
    return number


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise TypeError(type(value).__name__)


def _to_enum(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(type(value).__name__)
    return value


_CONVERTERS = {
    FieldKind.STRING: _to_string,
    FieldKind.INTEGER: _to_integer,
    FieldKind.FLOAT: _to_float,
    FieldKind.BOOLEAN: _to_boolean,
    FieldKind.ENUM: _to_enum,
}


def field(
    name: str,
    kind: str | FieldKind,
    *,
    required: bool = False,
    unique: bool = False,
    system_generated: bool = False,
    default: Any = None,
    max_length: int | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
    enum_values: tuple[str, ...] | None = None,
    description: str = "",
) -> FieldDef:
    """Convenience function to create a FieldDef.

    This is the preferred way to define fields in schema definitions.

    Example:
        >>> price = field("price", "float", required=True, minimum=0)
        >>> kind = field("type", "enum", enum_values=("book", "cd"))
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        unique=unique,
        system_generated=system_generated,
        default=default,
        max_length=max_length,
        minimum=minimum,
        maximum=maximum,
        enum_values=enum_values,
        description=description,
    )


@dataclass(frozen=True)
class RelationshipDef:
    """Declared relationship from an entity to another entity.

    Attributes:
        name: Relationship name, unique within the source entity
        to_entity: Name of the target entity
        cardinality: ONE or MANY
        description: Human-readable description
    """

    name: str
    to_entity: str
    cardinality: Cardinality = Cardinality.MANY
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Relationship name cannot be empty")
        if not self.to_entity:
            raise ValueError(f"Relationship '{self.name}' needs a target entity")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "to": self.to_entity,
            "cardinality": self.cardinality.value,
        }
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelationshipDef:
        return cls(
            name=data["name"],
            to_entity=data["to"],
            cardinality=Cardinality(data.get("cardinality", "many")),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class EntityDef:
    """Definition of an entity exposed as an HTTP resource.

    Each entity is served at ``/<plural>`` (collection) and
    ``/<plural>/<id>`` (item). Instances carry a server assigned
    integer id plus a value for every declared field.

    Attributes:
        name: Entity name (singular, also the XML element name)
        fields: Tuple of field definitions (``id`` is always first)
        plural: Collection path segment, defaults to ``name + "s"``
        relationships: Declared relationships to other entities
        max_instances: Per-entity capacity override (None = configured default)
        description: Human-readable description

    Invariants:
        - field names are unique within the entity
        - exactly one ``id`` field, integer and system generated
        - relationship names are unique within the entity

    Example:
        >>> Todo = EntityDef(name="todo", fields=(field("title", "string", required=True),))
        >>> Todo.plural
        'todos'
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    plural: str = ""
    relationships: tuple[RelationshipDef, ...] = dataclass_field(default_factory=tuple)
    max_instances: int | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate entity definition and add the implicit id field."""
        if not self.name:
            raise ValueError("Entity name cannot be empty")
        if not self.plural:
            object.__setattr__(self, "plural", f"{self.name}s")
        if "/" in self.plural or "/" in self.name:
            raise ValueError(f"Entity '{self.name}' name and plural cannot contain '/'")
        if self.max_instances is not None and self.max_instances <= 0:
            raise ValueError(f"max_instances must be positive for entity '{self.name}'")

        field_names = [f.name for f in self.fields]
        if len(field_names) != len(set(field_names)):
            raise ValueError(f"Duplicate field name in entity '{self.name}'")

        id_field = next((f for f in self.fields if f.name == ID_FIELD_NAME), None)
        if id_field is None:
            id_field = FieldDef(name=ID_FIELD_NAME, kind=FieldKind.INTEGER, system_generated=True)
        elif id_field.kind != FieldKind.INTEGER or not id_field.system_generated:
            raise ValueError(
                f"Field 'id' in entity '{self.name}' must be a system generated integer"
            )
        others = tuple(f for f in self.fields if f.name != ID_FIELD_NAME)
        object.__setattr__(self, "fields", (id_field, *others))

        rel_names = [r.name for r in self.relationships]
        if len(rel_names) != len(set(rel_names)):
            raise ValueError(f"Duplicate relationship name in entity '{self.name}'")

    def get_field(self, name: str) -> FieldDef | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        """Get list of all field names."""
        return [f.name for f in self.fields]

    def get_unique_fields(self) -> list[FieldDef]:
        return [f for f in self.fields if f.unique]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "plural": self.plural,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.relationships:
            result["relationships"] = [r.to_dict() for r in self.relationships]
        if self.max_instances is not None:
            result["max_instances"] = self.max_instances
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            fields=tuple(FieldDef.from_dict(f) for f in data.get("fields", [])),
            plural=data.get("plural", ""),
            relationships=tuple(
                RelationshipDef.from_dict(r) for r in data.get("relationships", [])
            ),
            max_instances=data.get("max_instances"),
            description=data.get("description", ""),
        )

    def __hash__(self) -> int:
        """Hash based on name (stable identifier)."""
        return hash(self.name)

    def __eq__(self, other: object) -> bool:
        """Equality based on name."""
        if not isinstance(other, EntityDef):
            return NotImplemented
        return self.name == other.name
