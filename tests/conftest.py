"""
Shared fixtures for entity API tests.

The ``item`` entity mirrors a small product catalogue with a unique,
hyphen-tolerant ISBN. Its seed rows come from factories that draw a new
serial number per row, so every reseed brings fresh ISBNs. The ``note``
entity has no unique fields and is seeded from fixed rows.
"""

import functools
import itertools

import pytest

from apigen.erapi_server.schema import EntityDef, SchemaRegistry, field
from apigen.erapi_server.store import (
    Database,
    DatabaseManager,
    GeneratedDataPopulator,
    StaticDataPopulator,
)


def item_row(serial: int) -> dict:
    return {
        "type": "book",
        "isbn13": f"978-0-00-{serial:06d}-{serial % 10}",
        "price": float(serial % 100),
        "numberinstock": serial,
    }


ITEM_SEED = [item_row(n) for n in range(1, 9)]

NOTE_SEED = [{"title": f"note {n}"} for n in range(1, 9)]


def make_item_entity() -> EntityDef:
    return EntityDef(
        name="item",
        fields=(
            field("type", "enum", required=True, enum_values=("book", "cd", "blu-ray")),
            field("isbn13", "string", required=True, unique=True, max_length=17),
            field("price", "float", required=True, minimum=0, maximum=100),
            field("numberinstock", "integer", minimum=0),
        ),
    )


def make_note_entity() -> EntityDef:
    return EntityDef(
        name="note",
        fields=(
            field("title", "string", required=True, max_length=50),
            field("body", "string"),
            field("pinned", "boolean"),
        ),
    )


def make_registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.register_entity(make_item_entity())
    registry.register_entity(make_note_entity())
    registry.freeze()
    return registry


@pytest.fixture
def item_entity():
    return make_item_entity()


@pytest.fixture
def note_entity():
    return make_note_entity()


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def seed():
    return {
        "item": [dict(row) for row in ITEM_SEED],
        "note": [dict(row) for row in NOTE_SEED],
    }


@pytest.fixture
def static_populator(seed):
    return StaticDataPopulator(seed)


@pytest.fixture
def populator():
    """Eight items with fresh serial numbers and eight fixed notes per call."""
    serials = itertools.count(1)
    return GeneratedDataPopulator(
        {
            "item": [lambda: item_row(next(serials)) for _ in ITEM_SEED],
            "note": [functools.partial(dict, row) for row in NOTE_SEED],
        }
    )


@pytest.fixture
def database(registry, populator):
    """Empty database whose populator knows the seed rows."""
    return Database("test", registry, populator=populator)


@pytest.fixture
def databases(registry, populator):
    """Manager with a seeded default database."""
    return DatabaseManager(registry, populator=populator)
