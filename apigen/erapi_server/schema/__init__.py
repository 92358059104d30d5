"""
Schema module for the entity API engine.

This module provides the type system for entities, including:
- Type definitions (EntityDef, FieldDef, RelationshipDef)
- Schema registry for entity lookup
- YAML/JSON schema documents with seed data

Invariants:
    - The registry is frozen before the HTTP surface starts serving
    - Every entity has a system generated integer ``id`` field
    - Field kinds form a closed set interpreted by one validator

How to change safely:
    - Add new entities before freezing the registry
    - Add optional constraints with neutral defaults
"""

from .loader import SchemaDocument, SchemaDocumentError, load_schema_file, parse_json, parse_yaml
from .registry import DuplicateRegistrationError, RegistryFrozenError, SchemaRegistry
from .types import (
    ID_FIELD_NAME,
    Cardinality,
    EntityDef,
    FieldDef,
    FieldKind,
    FieldValueError,
    RelationshipDef,
    field,
)

__all__ = [
    # Types
    "ID_FIELD_NAME",
    "Cardinality",
    "EntityDef",
    "FieldDef",
    "FieldKind",
    "FieldValueError",
    "RelationshipDef",
    "field",
    # Registry
    "SchemaRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    # Documents
    "SchemaDocument",
    "SchemaDocumentError",
    "load_schema_file",
    "parse_json",
    "parse_yaml",
]
