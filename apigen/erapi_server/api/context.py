"""
Request context and transport-neutral responses.

The dispatcher builds a RequestContext for every request and fills it in as
the request moves through routing, hooks and the store. Hooks and the
access gate only ever see these objects, never the aiohttp request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ..store.database import Database
from .routing import RouteMatch


@dataclass
class ApiResponse:
    """Status, headers and an optional body."""

    status: int
    body: bytes | None = None
    content_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RequestContext:
    """In-flight request state.

    Attributes:
        method: HTTP verb as received
        path: Request path
        headers: Request headers (case-insensitive mapping from the server)
        body: Raw request body
        database: Database selected for this request; None while a named
            database that does not exist yet has not been created
        route: Resolved route, None until routing succeeded
        payload: Decoded body for create/replace/amend
        response: Set before post hooks run
    """

    method: str
    path: str
    headers: Mapping[str, str]
    body: bytes
    database: Database | None
    route: RouteMatch | None = None
    payload: dict[str, Any] | None = None
    response: ApiResponse | None = None

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    @property
    def entity_name(self) -> str | None:
        return self.route.entity.name if self.route else None
