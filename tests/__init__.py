"""
Entity API Test Suite.

This package contains:
- unit/: Unit tests (no network)
- integration/: HTTP tests against an in-process aiohttp server
"""
