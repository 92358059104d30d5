"""
Store module for the entity API engine.

This module holds all live data:
- InstanceCollection: per-entity, capacity bounded, atomically mutated
- UniquenessIndex: normalized values of unique fields
- Database / DatabaseManager: collections per entity, named databases
- Populators: seed data sources

Invariants:
    - Nothing survives the process
    - Check-then-write never spans two critical sections
"""

from .database import DEFAULT_DATABASE_NAME, Database, DatabaseManager
from .instances import DEFAULT_CAPACITY, DEFAULT_LOW_WATERMARK, Instance, InstanceCollection
from .populator import DataPopulator, GeneratedDataPopulator, NullPopulator, StaticDataPopulator
from .uniqueness import UniquenessIndex, normalize_unique_value

__all__ = [
    "DEFAULT_CAPACITY",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_LOW_WATERMARK",
    "DataPopulator",
    "Database",
    "DatabaseManager",
    "GeneratedDataPopulator",
    "Instance",
    "InstanceCollection",
    "NullPopulator",
    "StaticDataPopulator",
    "UniquenessIndex",
    "normalize_unique_value",
]
