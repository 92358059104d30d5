"""
Routing of (verb, path) pairs to entity actions.

Every registered entity is served at two levels:

    <prefix>/<plural>          collection: GET, HEAD, OPTIONS, POST
    <prefix>/<plural>/<id>     item:       GET, HEAD, OPTIONS, PUT, POST, DELETE

Resolution:
    - unknown path                      -> NotFoundError (404)
    - known path, verb not mapped       -> MethodNotAllowedError (405)
    - item path with a non-integer id   -> NotFoundError (404)

This module is also the only place that maps an error kind to an HTTP
status (status_for_error).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from ..errors import (
    BadRequestError,
    DatabaseLimitError,
    ErApiError,
    ForbiddenError,
    MethodNotAllowedError,
    NotAcceptableError,
    NotFoundError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from ..schema.registry import SchemaRegistry
from ..schema.types import EntityDef

logger = logging.getLogger(__name__)


class RoutingVerb(Enum):
    """HTTP verbs the router knows about."""

    GET = "GET"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, method: str) -> RoutingVerb | None:
        try:
            return cls(method.upper())
        except ValueError:
            return None


class EntityAction(Enum):
    """What a resolved request does to the store."""

    LIST = "list"
    CREATE = "create"
    GET = "get"
    REPLACE = "replace"
    AMEND = "amend"
    DELETE = "delete"
    PROBE = "probe"

    @property
    def needs_body(self) -> bool:
        return self in (EntityAction.CREATE, EntityAction.REPLACE, EntityAction.AMEND)


class PathLevel(Enum):
    COLLECTION = "collection"
    ITEM = "item"


@dataclass(frozen=True)
class RoutingDefinition:
    """One verb on one path level and its outcome on success."""

    verb: RoutingVerb
    level: PathLevel
    action: EntityAction
    status: int
    suppress_body: bool = False


ROUTING_DEFINITIONS: tuple[RoutingDefinition, ...] = (
    RoutingDefinition(RoutingVerb.GET, PathLevel.COLLECTION, EntityAction.LIST, 200),
    RoutingDefinition(
        RoutingVerb.HEAD, PathLevel.COLLECTION, EntityAction.LIST, 200, suppress_body=True
    ),
    RoutingDefinition(
        RoutingVerb.OPTIONS, PathLevel.COLLECTION, EntityAction.PROBE, 204, suppress_body=True
    ),
    RoutingDefinition(RoutingVerb.POST, PathLevel.COLLECTION, EntityAction.CREATE, 201),
    RoutingDefinition(RoutingVerb.GET, PathLevel.ITEM, EntityAction.GET, 200),
    RoutingDefinition(
        RoutingVerb.HEAD, PathLevel.ITEM, EntityAction.GET, 200, suppress_body=True
    ),
    RoutingDefinition(
        RoutingVerb.OPTIONS, PathLevel.ITEM, EntityAction.PROBE, 204, suppress_body=True
    ),
    RoutingDefinition(RoutingVerb.PUT, PathLevel.ITEM, EntityAction.REPLACE, 200),
    RoutingDefinition(RoutingVerb.POST, PathLevel.ITEM, EntityAction.AMEND, 200),
    RoutingDefinition(RoutingVerb.DELETE, PathLevel.ITEM, EntityAction.DELETE, 200),
)


AllowHeaderFormatter = Callable[[Sequence[str]], str]


def default_allow_formatter(verbs: Sequence[str]) -> str:
    return ", ".join(verbs)


@dataclass(frozen=True)
class RouteMatch:
    """Result of resolving a request."""

    entity: EntityDef
    definition: RoutingDefinition
    path: str
    instance_id: int | None
    allowed: tuple[str, ...]

    @property
    def action(self) -> EntityAction:
        return self.definition.action


class Router:
    """Resolves requests against the entities of a frozen registry.

    Example:
        >>> router = Router(registry, prefix="/simpleapi")
        >>> match = router.resolve("POST", "/simpleapi/items")
        >>> match.action
        <EntityAction.CREATE: 'create'>
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        prefix: str = "",
        allow_formatter: AllowHeaderFormatter = default_allow_formatter,
    ) -> None:
        self.registry = registry
        self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""
        self.allow_formatter = allow_formatter
        self._table: dict[PathLevel, dict[RoutingVerb, RoutingDefinition]] = {
            level: {} for level in PathLevel
        }
        for definition in ROUTING_DEFINITIONS:
            self._table[definition.level][definition.verb] = definition

    def allowed_verbs(self, level: PathLevel) -> tuple[str, ...]:
        return tuple(verb.value for verb in self._table[level])

    def allow_header(self, allowed: Sequence[str]) -> str:
        return self.allow_formatter(allowed)

    def resolve(self, method: str, path: str) -> RouteMatch:
        """Resolve a request to an entity action.

        Raises:
            NotFoundError: If the path is unknown or the id is not an integer
            MethodNotAllowedError: If the verb is not mapped for the path
        """
        entity, level, raw_id = self._match_path(path)
        allowed = self.allowed_verbs(level)

        verb = RoutingVerb.parse(method)
        definition = self._table[level].get(verb) if verb is not None else None
        if definition is None:
            raise MethodNotAllowedError(path, method.upper(), allowed)

        instance_id = None
        if level == PathLevel.ITEM:
            instance_id = self._parse_id(entity, raw_id)

        return RouteMatch(
            entity=entity,
            definition=definition,
            path=path,
            instance_id=instance_id,
            allowed=allowed,
        )

    def _match_path(self, path: str) -> tuple[EntityDef, PathLevel, str | None]:
        relative = path
        if self.prefix:
            if relative != self.prefix and not relative.startswith(self.prefix + "/"):
                raise self._unknown_path(path)
            relative = relative[len(self.prefix):]

        segments = [s for s in relative.strip("/").split("/")]
        if not segments or segments == [""] or len(segments) > 2:
            raise self._unknown_path(path)

        entity = self.registry.get_entity_by_plural(segments[0])
        if entity is None:
            raise self._unknown_path(path)

        if len(segments) == 1:
            return entity, PathLevel.COLLECTION, None
        if not segments[1]:
            raise self._unknown_path(path)
        return entity, PathLevel.ITEM, segments[1]

    @staticmethod
    def _parse_id(entity: EntityDef, raw_id: str | None) -> int:
        instance_id = 0
        if raw_id and raw_id.isascii() and raw_id.isdigit():
            instance_id = int(raw_id)
        if instance_id < 1:
            raise NotFoundError(
                f"Could not find an instance with {entity.plural}/{raw_id}",
                resource_type=entity.name,
                resource_id=str(raw_id),
            )
        return instance_id

    @staticmethod
    def _unknown_path(path: str) -> NotFoundError:
        return NotFoundError(
            f"No such endpoint: {path}",
            resource_type="endpoint",
            resource_id=path,
        )


_ERROR_STATUSES: tuple[tuple[type[ErApiError], int], ...] = (
    (NotAcceptableError, 406),
    (UnsupportedMediaTypeError, 400),
    (ValidationError, 400),
    (BadRequestError, 400),
    (DatabaseLimitError, 400),
    (NotFoundError, 404),
    (MethodNotAllowedError, 405),
    (ForbiddenError, 403),
)


def status_for_error(error: ErApiError) -> int:
    """Map an engine error to its HTTP status (most specific class first)."""
    for error_type, status in _ERROR_STATUSES:
        if isinstance(error, error_type):
            return status
    logger.warning(f"No status mapping for {type(error).__name__}, using 500")
    return 500
