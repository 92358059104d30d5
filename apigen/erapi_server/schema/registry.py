"""
Schema Registry for the entity API engine.

The SchemaRegistry is the central authority for all entity definitions.
It provides:
- Registration of entity definitions
- Lookup by name or by collection path (plural)
- Schema fingerprinting for consistency checks
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Registry is mutable during startup, frozen before serving
    - Once frozen, no new entities can be registered
    - Entity names and plurals are globally unique
    - Fingerprint changes when schema changes

How to change safely:
    - Register all entities before calling freeze()
    - Never modify registered entities after freeze
    - Pass the registry explicitly; there is no process-wide instance

Example:
    >>> registry = SchemaRegistry()
    >>> registry.register_entity(EntityDef(name="item", fields=(field("title", "string"),)))
    >>> registry.freeze()
    'sha256:...'
    >>> registry.get_entity_by_plural("items").name
    'item'
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterator, Optional

from .types import EntityDef

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a duplicate entity name or plural."""
    pass


class SchemaRegistry:
    """Central registry for all entity definitions.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the schema (computed on freeze)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._entities: Dict[str, EntityDef] = {}
        self._entities_by_plural: Dict[str, EntityDef] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register_entity(self, entity: EntityDef) -> None:
        """Register an entity definition.

        Args:
            entity: The entity to register

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If name or plural is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register entity '{entity.name}': registry is frozen"
                )

            if entity.name in self._entities:
                raise DuplicateRegistrationError(
                    f"Entity name '{entity.name}' already registered"
                )

            if entity.plural in self._entities_by_plural:
                existing = self._entities_by_plural[entity.plural]
                raise DuplicateRegistrationError(
                    f"Plural '{entity.plural}' already registered for entity '{existing.name}'"
                )

            for relationship in entity.relationships:
                if (
                    relationship.to_entity not in self._entities
                    and relationship.to_entity != entity.name
                ):
                    logger.warning(
                        f"Entity '{entity.name}' relationship '{relationship.name}' "
                        f"references unregistered entity '{relationship.to_entity}'"
                    )

            self._entities[entity.name] = entity
            self._entities_by_plural[entity.plural] = entity
            logger.debug(f"Registered entity: {entity.name} (/{entity.plural})")

    def get_entity(self, name: str) -> Optional[EntityDef]:
        """Get an entity by name."""
        return self._entities.get(name)

    def get_entity_by_plural(self, plural: str) -> Optional[EntityDef]:
        """Get an entity by its collection path segment."""
        return self._entities_by_plural.get(plural)

    def entities(self) -> Iterator[EntityDef]:
        """Iterate over all registered entities in registration order."""
        yield from self._entities.values()

    def __len__(self) -> int:
        return len(self._entities)

    def freeze(self) -> str:
        """Freeze the registry and compute fingerprint.

        Returns:
            Schema fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema registry frozen with {len(self._entities)} entities, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint over the canonical JSON of the schema."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation (sorted by name)."""
        return {
            "entities": [
                self._entities[name].to_dict()
                for name in sorted(self._entities.keys())
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> SchemaRegistry:
        """Create registry from dictionary representation.

        Returns:
            New SchemaRegistry with entities registered (not frozen)
        """
        registry = cls()
        for entity_data in data.get("entities", []):
            registry.register_entity(EntityDef.from_dict(entity_data))
        return registry

    @classmethod
    def from_json(cls, json_str: str) -> SchemaRegistry:
        return cls.from_dict(json.loads(json_str))

    def validate_all(self) -> list[str]:
        """Validate all registered entities for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for entity in self._entities.values():
            for relationship in entity.relationships:
                if relationship.to_entity not in self._entities:
                    errors.append(
                        f"Relationship '{relationship.name}' in entity '{entity.name}' "
                        f"references unknown entity '{relationship.to_entity}'"
                    )
        return errors
