"""
Entity API server - schema-driven REST CRUD engine.

Given a set of entity definitions, this package serves a complete HTTP API
over in-memory data:

    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│   aiohttp   │────▶│  ApiDispatcher  │
    │ (JSON/XML)  │     │    app      │     │ route + hooks   │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                                                     ▼
                        ┌─────────────────────────────────────────┐
                        │     Database (one per name header)      │
                        │  InstanceCollection per entity + index  │
                        └─────────────────────────────────────────┘

Invariants:
    - A collection never holds more than its capacity
    - Unique fields never hold two values that normalize the same
    - Every mutation is validated in the same critical section that
      applies it
    - Nothing is persisted

How to change safely:
    - New field kinds need a converter and an empty value in schema.types
    - Keep the schema registry frozen before serving

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
