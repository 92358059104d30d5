"""
YAML/JSON schema documents.

A schema document declares the entities served by the engine and,
optionally, seed data used by the populator.

Example document:
    entities:
      - name: item
        plural: items
        max_instances: 100
        fields:
          - name: price
            kind: float
            required: true
            minimum: 0
          - name: isbn13
            kind: string
            required: true
            unique: true
            max_length: 17
          - name: type
            kind: enum
            values: [book, cd, blu-ray]
        relationships:
          - name: supplier
            to: supplier
            cardinality: one

    seed:
      item:
        - price: 1.99
          isbn13: "123-4-56-789012-3"
          type: book
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .registry import DuplicateRegistrationError, SchemaRegistry
from .types import Cardinality, EntityDef, FieldDef, FieldKind, RelationshipDef

logger = logging.getLogger(__name__)

VALID_KINDS = {kind.value for kind in FieldKind}
VALID_CARDINALITIES = {c.value for c in Cardinality}


class SchemaDocumentError(Exception):
    """Raised when a schema document cannot be turned into a registry."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid schema document: " + "; ".join(errors))


@dataclass
class FieldSchema:
    """Schema for a single field."""

    name: str
    kind: str
    required: bool = False
    unique: bool = False
    system_generated: bool = False
    default: Any = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    values: list[str] | None = None  # For enum
    description: str = ""

    def validate(self, entity_name: str) -> list[str]:
        errors = []
        if not self.name:
            errors.append(f"Entity '{entity_name}': field name is required")
        if self.kind not in VALID_KINDS:
            errors.append(
                f"Field '{self.name}': invalid kind '{self.kind}'. Valid: {sorted(VALID_KINDS)}"
            )
        if self.kind == "enum" and not self.values:
            errors.append(f"Field '{self.name}': enum requires 'values' list")
        return errors

    def to_field_def(self) -> FieldDef:
        return FieldDef(
            name=self.name,
            kind=FieldKind.from_str(self.kind),
            required=self.required,
            unique=self.unique,
            system_generated=self.system_generated,
            default=self.default,
            max_length=self.max_length,
            minimum=self.minimum,
            maximum=self.maximum,
            enum_values=tuple(self.values) if self.values else None,
            description=self.description,
        )


@dataclass
class RelationshipSchema:
    """Schema for a relationship."""

    name: str
    to: str
    cardinality: str = "many"
    description: str = ""

    def validate(self, entity_name: str, entity_names: set[str]) -> list[str]:
        errors = []
        if not self.name:
            errors.append(f"Entity '{entity_name}': relationship name is required")
        if self.to not in entity_names:
            errors.append(
                f"Relationship '{self.name}' in entity '{entity_name}': "
                f"target '{self.to}' not found"
            )
        if self.cardinality not in VALID_CARDINALITIES:
            errors.append(
                f"Relationship '{self.name}': invalid cardinality '{self.cardinality}'"
            )
        return errors


@dataclass
class EntitySchema:
    """Schema for an entity."""

    name: str
    plural: str = ""
    fields: list[FieldSchema] = field(default_factory=list)
    relationships: list[RelationshipSchema] = field(default_factory=list)
    max_instances: int | None = None
    description: str = ""

    def validate(self, entity_names: set[str]) -> list[str]:
        errors = []
        if not self.name:
            errors.append("Entity name is required")

        field_names = [f.name for f in self.fields]
        if len(field_names) != len(set(field_names)):
            errors.append(f"Entity '{self.name}': duplicate field names")

        for f in self.fields:
            errors.extend(f.validate(self.name))
        for r in self.relationships:
            errors.extend(r.validate(self.name, entity_names))
        return errors

    def to_entity_def(self) -> EntityDef:
        return EntityDef(
            name=self.name,
            plural=self.plural,
            fields=tuple(f.to_field_def() for f in self.fields),
            relationships=tuple(
                RelationshipDef(
                    name=r.name,
                    to_entity=r.to,
                    cardinality=Cardinality(r.cardinality),
                    description=r.description,
                )
                for r in self.relationships
            ),
            max_instances=self.max_instances,
            description=self.description,
        )


@dataclass
class SchemaDocument:
    """Complete schema document: entities plus optional seed data."""

    entities: list[EntitySchema] = field(default_factory=list)
    seed: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    def validate(self) -> list[str]:
        """Validate the entire document."""
        errors = []

        names = [e.name for e in self.entities]
        if len(names) != len(set(names)):
            errors.append("Duplicate entity names found")

        name_set = set(names)
        for entity in self.entities:
            errors.extend(entity.validate(name_set))

        for entity_name, rows in self.seed.items():
            if entity_name not in name_set:
                errors.append(f"Seed data references unknown entity '{entity_name}'")
            elif not all(isinstance(row, dict) for row in rows):
                errors.append(f"Seed data for '{entity_name}' must be a list of mappings")

        return errors

    def build_registry(self, freeze: bool = True) -> SchemaRegistry:
        """Build a registry from this document.

        Args:
            freeze: Whether to freeze the registry before returning it

        Raises:
            SchemaDocumentError: If the document or any definition is invalid
        """
        errors = self.validate()
        if errors:
            raise SchemaDocumentError(errors)

        registry = SchemaRegistry()
        try:
            for entity in self.entities:
                registry.register_entity(entity.to_entity_def())
        except (ValueError, DuplicateRegistrationError) as e:
            raise SchemaDocumentError([str(e)]) from e

        if freeze:
            registry.freeze()
        return registry


def parse_field(data: dict[str, Any]) -> FieldSchema:
    """Parse a field from dict."""
    return FieldSchema(
        name=data.get("name", ""),
        kind=data.get("kind", "string"),
        required=data.get("required", False),
        unique=data.get("unique", False),
        system_generated=data.get("system_generated", False),
        default=data.get("default"),
        max_length=data.get("max_length"),
        minimum=data.get("minimum"),
        maximum=data.get("maximum"),
        values=data.get("values"),
        description=data.get("description", ""),
    )


def parse_relationship(data: dict[str, Any]) -> RelationshipSchema:
    return RelationshipSchema(
        name=data.get("name", ""),
        to=data.get("to", ""),
        cardinality=data.get("cardinality", "many"),
        description=data.get("description", ""),
    )


def parse_entity(data: dict[str, Any]) -> EntitySchema:
    """Parse an entity from dict."""
    return EntitySchema(
        name=data.get("name", ""),
        plural=data.get("plural", ""),
        fields=[parse_field(f) for f in data.get("fields", [])],
        relationships=[parse_relationship(r) for r in data.get("relationships", [])],
        max_instances=data.get("max_instances"),
        description=data.get("description", ""),
    )


def parse_schema(data: dict[str, Any]) -> SchemaDocument:
    """Parse a complete schema document from dict."""
    return SchemaDocument(
        entities=[parse_entity(e) for e in data.get("entities", [])],
        seed={name: list(rows or []) for name, rows in (data.get("seed") or {}).items()},
    )


def parse_yaml(yaml_str: str) -> SchemaDocument:
    """Parse schema document from YAML string."""
    data = yaml.safe_load(yaml_str)
    return parse_schema(data or {})


def parse_json(json_str: str) -> SchemaDocument:
    """Parse schema document from JSON string."""
    data = json.loads(json_str)
    return parse_schema(data or {})


def load_schema_file(path: str | Path) -> SchemaDocument:
    """Load a schema document, choosing the parser from the file suffix."""
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        document = parse_json(content)
    else:
        document = parse_yaml(content)
    logger.info(
        f"Loaded schema document {path} with {len(document.entities)} entities"
    )
    return document
