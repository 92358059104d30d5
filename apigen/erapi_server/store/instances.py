"""
In-memory instance collections.

This module holds the live instances of one entity:
- Instance: an id plus the field values of one record
- InstanceCollection: insertion-ordered, capacity bounded set of instances

Invariants:
    - Ids start at 1, increase monotonically and are never reused
    - len(collection) <= capacity, even under concurrent creates
    - Capacity check, validation (including uniqueness) and the write
      happen inside one critical section per collection
    - Readers only ever see complete snapshots

How to change safely:
    - Keep every check-then-write inside ``with self._lock``
    - Never perform I/O or call out to hooks while holding the lock,
      except through ``locked()`` which callers use deliberately
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import CapacityExceededError, NotFoundError
from ..schema.types import ID_FIELD_NAME, EntityDef
from ..validate import Validator
from .uniqueness import UniquenessIndex

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_LOW_WATERMARK = 5


@dataclass(frozen=True)
class Instance:
    """One record of an entity.

    Attributes:
        entity: The entity definition this instance belongs to
        id: Server assigned identifier (immutable)
        values: Field values, excluding ``id``
    """

    entity: EntityDef
    id: int
    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, field_name: str) -> Any:
        if field_name == ID_FIELD_NAME:
            return self.id
        return self.values.get(field_name)

    def to_dict(self) -> dict[str, Any]:
        """Representation: ``id`` plus every declared field."""
        return {name: self.get(name) for name in self.entity.get_field_names()}


class InstanceCollection:
    """Ordered, capacity-bounded instances of one entity.

    Thread safety:
        All mutations run under a re-entrant lock owned by the collection.
        ``locked()`` exposes the same lock so a caller can make a
        read-then-mutate sequence (e.g. low-watermark reseeding) atomic.

    Example:
        >>> items = InstanceCollection(item_entity, Validator(), capacity=100)
        >>> created = items.create({"price": 1.5, "isbn13": "1234567890123"})
        >>> items.get(created.id).get("price")
        1.5
    """

    def __init__(
        self,
        entity: EntityDef,
        validator: Validator,
        capacity: int = DEFAULT_CAPACITY,
        low_watermark: int = DEFAULT_LOW_WATERMARK,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if low_watermark < 0:
            raise ValueError(f"low_watermark cannot be negative, got {low_watermark}")
        self.entity = entity
        self.capacity = capacity
        self.low_watermark = low_watermark
        self._validator = validator
        self._instances: dict[int, Instance] = {}
        self._index = UniquenessIndex(entity)
        self._next_id = 1
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[InstanceCollection]:
        """Hold the collection's critical section."""
        with self._lock:
            yield self

    def count(self) -> int:
        with self._lock:
            return len(self._instances)

    def __len__(self) -> int:
        return self.count()

    def list(self) -> list[Instance]:
        """Snapshot of all instances in insertion order."""
        with self._lock:
            return list(self._instances.values())

    def get(self, instance_id: int) -> Instance:
        """Get an instance by id.

        Raises:
            NotFoundError: If no live instance has this id
        """
        with self._lock:
            instance = self._instances.get(instance_id)
        if instance is None:
            raise self._not_found(instance_id)
        return instance

    def create(self, payload: Mapping[str, Any]) -> Instance:
        """Validate and insert a new instance.

        Args:
            payload: Decoded field values supplied by the client

        Returns:
            The created instance

        Raises:
            CapacityExceededError: If the collection is full
            ValidationError: If the payload is invalid
        """
        with self._lock:
            if len(self._instances) >= self.capacity:
                raise CapacityExceededError(self.capacity, entity_name=self.entity.name)

            values = self._validator.check_create(self.entity, payload, self._index)
            instance = Instance(entity=self.entity, id=self._next_id, values=values)
            self._index.add(instance.id, values)
            self._instances[instance.id] = instance
            self._next_id += 1

        logger.debug(
            "Instance created",
            extra={"entity": self.entity.name, "instance_id": instance.id},
        )
        return instance

    def update(
        self,
        instance_id: int,
        payload: Mapping[str, Any],
        partial: bool = False,
    ) -> Instance:
        """Replace (partial=False) or amend (partial=True) an instance.

        Raises:
            NotFoundError: If the instance does not exist
            ValidationError: If the payload is invalid
        """
        with self._lock:
            current = self._instances.get(instance_id)
            if current is None:
                raise self._not_found(instance_id)

            values = self._validator.check_update(
                self.entity,
                payload,
                self._index,
                instance_id=instance_id,
                current=current.values,
                partial=partial,
            )
            updated = Instance(entity=self.entity, id=instance_id, values=values)
            self._index.replace(instance_id, current.values, values)
            self._instances[instance_id] = updated

        logger.debug(
            "Instance updated",
            extra={
                "entity": self.entity.name,
                "instance_id": instance_id,
                "partial": partial,
            },
        )
        return updated

    def delete(self, instance_id: int) -> Instance:
        """Remove an instance and free its unique values.

        Raises:
            NotFoundError: If the instance does not exist
        """
        with self._lock:
            instance = self._instances.pop(instance_id, None)
            if instance is None:
                raise self._not_found(instance_id)
            self._index.remove(instance_id, instance.values)

        logger.debug(
            "Instance deleted",
            extra={"entity": self.entity.name, "instance_id": instance_id},
        )
        return instance

    def clear(self) -> int:
        """Remove every instance. Ids keep counting from where they were.

        Returns:
            Number of instances removed
        """
        with self._lock:
            removed = len(self._instances)
            self._instances.clear()
            self._index.clear()
        return removed

    def _not_found(self, instance_id: int) -> NotFoundError:
        return NotFoundError(
            f"Could not find an instance with {self.entity.plural}/{instance_id}",
            resource_type=self.entity.name,
            resource_id=str(instance_id),
        )
