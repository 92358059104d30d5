"""
Seed data populators.

A populator fills a Database with instances. It is an external input to
the engine: deployments supply their own, and the schema document's
``seed`` section provides a static one. GeneratedDataPopulator builds
rows from factories so unique values can differ on every reseed.

Invariants:
    - Populators go through Database.create, so every seeded instance is
      validated and counted against capacity like a client create
    - A seed row that fails validation is logged and skipped
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Protocol, Sequence

from ..errors import CapacityExceededError, ValidationError

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)

RowFactory = Callable[[], Mapping[str, Any]]


class DataPopulator(Protocol):
    """Anything that can seed a database."""

    def populate(self, database: Database, entity_name: str | None = None) -> int:
        """Seed ``database`` (optionally only one entity).

        Returns:
            Number of instances created
        """
        ...


class NullPopulator:
    """Populator that creates nothing."""

    def populate(self, database: Database, entity_name: str | None = None) -> int:
        return 0


class GeneratedDataPopulator:
    """Creates one instance per row factory on every call.

    Factories are called afresh each time the populator runs, so they can
    hand out new values for unique fields and reseeding adds a full set of
    rows even while earlier seeded instances survive.

    Example:
        >>> isbns = itertools.count(1)
        >>> populator = GeneratedDataPopulator(
        ...     {"item": [lambda: {"type": "book", "isbn13": f"978-{next(isbns):09d}"}]}
        ... )
    """

    def __init__(self, factories: Mapping[str, Sequence[RowFactory]]) -> None:
        self.factories = {name: list(rows) for name, rows in factories.items()}

    def populate(self, database: Database, entity_name: str | None = None) -> int:
        created = 0
        for name, factories in self.factories.items():
            if entity_name is not None and name != entity_name:
                continue
            collection = database.collection(name)
            with collection.locked():
                for factory in factories:
                    try:
                        collection.create(factory())
                    except CapacityExceededError:
                        logger.warning(
                            f"Stopped seeding '{name}' in database '{database.name}': "
                            f"capacity {collection.capacity} reached"
                        )
                        break
                    except ValidationError as e:
                        logger.warning(
                            f"Skipped seed row for '{name}': {e.message}",
                            extra={"database": database.name, "entity": name},
                        )
                        continue
                    created += 1

        logger.info(
            f"Populated database '{database.name}' with {created} instances",
            extra={"database": database.name, "entity": entity_name},
        )
        return created


class StaticDataPopulator(GeneratedDataPopulator):
    """Creates a fixed list of payloads per entity on every call.

    Rows whose unique values are still held by surviving instances are
    skipped, so a reseed of an entity with unique fields may add fewer rows
    than the seed lists.

    Example:
        >>> populator = StaticDataPopulator({"todo": [{"title": "scan paperwork"}]})
        >>> populator.populate(database)
        1
    """

    def __init__(self, seed: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        self.seed = {name: [dict(row) for row in rows] for name, rows in seed.items()}
        super().__init__(
            {
                name: [functools.partial(dict, row) for row in rows]
                for name, rows in self.seed.items()
            }
        )
