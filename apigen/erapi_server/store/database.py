"""
Databases of instance collections.

A Database owns one InstanceCollection per registered entity and is the
single shared mutable structure behind the HTTP surface. The
DatabaseManager keeps the default database plus any named databases
requested by clients, all sharing one frozen schema registry.

Invariants:
    - Collections are created empty when the database is constructed
    - Entities are independent: each collection has its own lock
    - The set of databases is guarded by the manager's lock
    - The default database always exists and cannot be dropped

How to change safely:
    - Route every write through the collection operations so capacity
      and uniqueness stay atomic
    - Pass databases explicitly; there is no module-level instance
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any, Mapping

from ..errors import DatabaseLimitError, NotFoundError
from ..schema.registry import SchemaRegistry
from ..validate import Validator
from .instances import DEFAULT_CAPACITY, DEFAULT_LOW_WATERMARK, Instance, InstanceCollection
from .populator import DataPopulator, NullPopulator

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "__default"
DEFAULT_MAX_DATABASES = 100


class Database:
    """Named set of instance collections, one per entity.

    Attributes:
        name: Database name
        registry: Frozen schema registry
        populator: Seed data source used by populate() and reset()

    Example:
        >>> db = Database("__default", registry, populator=StaticDataPopulator(seed))
        >>> db.populate()
        >>> db.create("item", {"price": 2.0, "isbn13": "1234567890123"})
    """

    def __init__(
        self,
        name: str,
        registry: SchemaRegistry,
        validator: Validator | None = None,
        populator: DataPopulator | None = None,
        capacity: int = DEFAULT_CAPACITY,
        low_watermark: int = DEFAULT_LOW_WATERMARK,
    ) -> None:
        if not registry.frozen:
            raise ValueError("Schema registry must be frozen before creating a database")
        self.name = name
        self.registry = registry
        self.populator: DataPopulator = populator or NullPopulator()
        validator = validator or Validator()
        self._collections: dict[str, InstanceCollection] = {
            entity.name: InstanceCollection(
                entity,
                validator,
                capacity=entity.max_instances or capacity,
                low_watermark=low_watermark,
            )
            for entity in registry.entities()
        }

    def collection(self, entity_name: str) -> InstanceCollection:
        """Get the collection for an entity.

        Raises:
            NotFoundError: If the entity is not registered
        """
        collection = self._collections.get(entity_name)
        if collection is None:
            raise NotFoundError(
                f"Unknown entity {entity_name}",
                resource_type="entity",
                resource_id=entity_name,
            )
        return collection

    def collections(self) -> Iterator[InstanceCollection]:
        yield from self._collections.values()

    def create(self, entity_name: str, payload: Mapping[str, Any]) -> Instance:
        return self.collection(entity_name).create(payload)

    def get(self, entity_name: str, instance_id: int) -> Instance:
        return self.collection(entity_name).get(instance_id)

    def list(self, entity_name: str) -> list[Instance]:
        return self.collection(entity_name).list()

    def update(
        self,
        entity_name: str,
        instance_id: int,
        payload: Mapping[str, Any],
        partial: bool = False,
    ) -> Instance:
        return self.collection(entity_name).update(instance_id, payload, partial=partial)

    def delete(self, entity_name: str, instance_id: int) -> Instance:
        return self.collection(entity_name).delete(instance_id)

    def counts(self) -> dict[str, int]:
        return {name: c.count() for name, c in self._collections.items()}

    def populate(self, entity_name: str | None = None) -> int:
        """Run the populator against this database."""
        return self.populator.populate(self, entity_name)

    def clear(self) -> None:
        for collection in self._collections.values():
            collection.clear()

    def reset(self) -> int:
        """Clear every collection, then reseed."""
        self.clear()
        created = self.populate()
        logger.info(f"Database '{self.name}' reset", extra={"database": self.name})
        return created


class DatabaseManager:
    """Owns the default database and any named databases.

    Thread safety:
        Lookup-or-create of a named database is atomic under the
        manager's lock; new databases are populated before they are
        published to other requests.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        populator: DataPopulator | None = None,
        capacity: int = DEFAULT_CAPACITY,
        low_watermark: int = DEFAULT_LOW_WATERMARK,
        max_databases: int = DEFAULT_MAX_DATABASES,
        populate_default: bool = True,
    ) -> None:
        self.registry = registry
        self.populator = populator
        self.capacity = capacity
        self.low_watermark = low_watermark
        self.max_databases = max_databases
        self._validator = Validator()
        self._databases: dict[str, Database] = {}
        self._lock = threading.Lock()

        default = self._new_database(DEFAULT_DATABASE_NAME)
        if populate_default:
            default.populate()
        self._databases[DEFAULT_DATABASE_NAME] = default

    @property
    def default(self) -> Database:
        return self._databases[DEFAULT_DATABASE_NAME]

    def names(self) -> list[str]:
        with self._lock:
            return list(self._databases.keys())

    def get(self, name: str | None) -> Database | None:
        if not name:
            return self.default
        with self._lock:
            return self._databases.get(name)

    def get_or_create(self, name: str | None) -> Database:
        """Return the named database, creating and populating it if needed.

        Raises:
            DatabaseLimitError: If ``max_databases`` would be exceeded
        """
        if not name:
            return self.default
        with self._lock:
            database = self._databases.get(name)
            if database is not None:
                return database
            if len(self._databases) >= self.max_databases:
                raise DatabaseLimitError(self.max_databases)
            database = self._new_database(name)
            database.populate()
            self._databases[name] = database

        logger.info(f"Created database '{name}'", extra={"database": name})
        return database

    def drop(self, name: str) -> bool:
        if name == DEFAULT_DATABASE_NAME:
            raise ValueError("The default database cannot be dropped")
        with self._lock:
            return self._databases.pop(name, None) is not None

    def _new_database(self, name: str) -> Database:
        return Database(
            name,
            self.registry,
            validator=self._validator,
            populator=self.populator,
            capacity=self.capacity,
            low_watermark=self.low_watermark,
        )
