"""
HTTP server for the entity API engine.

This module binds the schema-driven API to aiohttp:
- ApiDispatcher runs the request flow (route, gate, hooks, negotiate,
  validate + mutate, hooks, encode) on plain values
- create_http_app wires a catch-all aiohttp route to the dispatcher

Request flow:
    Router.resolve -> access gate -> database -> pre hooks -> Accept/Content-Type
    -> decode body -> store operation (validation inside the collection
    lock) -> post hooks -> encode response

Invariants:
    - Every error is rendered as {"errorMessages": [...]} (or XML) except
      405, which carries only an Allow header
    - Response Content-Type is exactly the negotiated media type
    - Dispatch runs on a worker thread pool; the store's per-entity
      locks make concurrent requests safe

How to change safely:
    - Keep status mapping in routing.status_for_error
    - Keep the dispatcher free of aiohttp types so it stays testable
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor

from aiohttp import web

from ..config import HttpConfig
from ..errors import ErApiError, ForbiddenError, MethodNotAllowedError
from ..store.database import DatabaseManager
from .context import ApiResponse, RequestContext
from .hooks import HookPipeline
from .negotiation import (
    MediaFormat,
    decode_body,
    encode_collection,
    encode_errors,
    encode_instance,
    request_format,
    response_format,
)
from .routing import EntityAction, Router, status_for_error

logger = logging.getLogger(__name__)

AccessGate = Callable[[RequestContext], bool]


class ApiDispatcher:
    """Runs one request through the engine and produces an ApiResponse.

    Attributes:
        router: Resolves (verb, path) to entity actions
        databases: Source of the database each request works on
        hooks: Pre/post request hooks
        access_gate: Optional pass/fail decision taken before hooks run
        database_header: Header naming a non-default database
    """

    def __init__(
        self,
        router: Router,
        databases: DatabaseManager,
        hooks: HookPipeline | None = None,
        access_gate: AccessGate | None = None,
        database_header: str = "X-Database-Name",
    ) -> None:
        self.router = router
        self.databases = databases
        self.hooks = hooks or HookPipeline()
        self.access_gate = access_gate
        self.database_header = database_header

    def dispatch(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes = b"",
    ) -> ApiResponse:
        """Handle a request end to end.

        A named database is only created once the request has been routed
        and allowed through the access gate; before that the context holds
        the database if it already exists, else None.
        """
        error_format = _error_format(headers.get("Accept"))
        database_name = headers.get(self.database_header)
        context = RequestContext(
            method=method.upper(),
            path=path,
            headers=headers,
            body=body,
            database=self.databases.get(database_name),
        )

        try:
            context.route = self.router.resolve(context.method, path)
            if self.access_gate is not None and not self.access_gate(context):
                raise ForbiddenError()
            if context.database is None:
                context.database = self.databases.get_or_create(database_name)

            aborted = self.hooks.run_pre(context)
            if aborted is not None:
                context.response = aborted
                return aborted

            context.response = self._perform(context)
        except ErApiError as e:
            context.response = self._error_response(e, error_format)

        replacement = self.hooks.run_post(context)
        response = replacement or context.response

        logger.debug(
            "Request handled",
            extra={
                "method": context.method,
                "path": path,
                "status": response.status,
                "database": context.database.name if context.database else database_name,
            },
        )
        return response

    def _perform(self, context: RequestContext) -> ApiResponse:
        route = context.route
        assert route is not None and context.database is not None
        definition = route.definition

        if route.action == EntityAction.PROBE:
            return ApiResponse(
                status=definition.status,
                headers={"Allow": self.router.allow_header(route.allowed)},
            )

        fmt = response_format(context.header("Accept"))
        if route.action.needs_body:
            body_format = request_format(context.header("Content-Type"))
            context.payload = decode_body(context.body, body_format)

        collection = context.database.collection(route.entity.name)
        headers: dict[str, str] = {}
        body: bytes | None

        if route.action == EntityAction.LIST:
            body = encode_collection(route.entity, collection.list(), fmt)
        elif route.action == EntityAction.GET:
            body = encode_instance(collection.get(route.instance_id), fmt)
        elif route.action == EntityAction.CREATE:
            instance = collection.create(context.payload or {})
            headers["Location"] = f"{self.router.prefix}/{route.entity.plural}/{instance.id}"
            body = encode_instance(instance, fmt)
        elif route.action in (EntityAction.REPLACE, EntityAction.AMEND):
            instance = collection.update(
                route.instance_id,
                context.payload or {},
                partial=route.action == EntityAction.AMEND,
            )
            body = encode_instance(instance, fmt)
        elif route.action == EntityAction.DELETE:
            collection.delete(route.instance_id)
            return ApiResponse(status=definition.status)
        else:
            raise ValueError(f"Unhandled action {route.action}")

        return ApiResponse(
            status=definition.status,
            body=None if definition.suppress_body else body,
            content_type=fmt.media_type,
            headers=headers,
        )

    def _error_response(self, error: ErApiError, fmt: MediaFormat) -> ApiResponse:
        status = status_for_error(error)
        if isinstance(error, MethodNotAllowedError):
            return ApiResponse(
                status=status,
                headers={"Allow": self.router.allow_header(error.allowed)},
            )
        logger.info(
            f"Request failed with {status}: {error.message}",
            extra={"error_code": error.code},
        )
        return ApiResponse(
            status=status,
            body=encode_errors(error.messages, fmt),
            content_type=fmt.media_type,
        )


DISPATCHER_KEY = web.AppKey("dispatcher", ApiDispatcher)
EXECUTOR_KEY = web.AppKey("executor", ThreadPoolExecutor)


def _error_format(accept: str | None) -> MediaFormat:
    """Format for error bodies; falls back to JSON when Accept is unusable."""
    try:
        return response_format(accept)
    except ErApiError:
        return MediaFormat.JSON


def to_web_response(response: ApiResponse, method: str) -> web.Response:
    """Convert an ApiResponse into an aiohttp response."""
    headers = dict(response.headers)
    if response.content_type:
        headers["Content-Type"] = response.content_type
    body = None if method.upper() == "HEAD" else response.body
    return web.Response(status=response.status, body=body, headers=headers)


def create_http_app(
    dispatcher: ApiDispatcher,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create an aiohttp application serving the dispatcher.

    Args:
        dispatcher: Configured ApiDispatcher
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    app = web.Application()
    executor = ThreadPoolExecutor(
        max_workers=config.max_workers, thread_name_prefix="erapi-worker"
    )
    app[DISPATCHER_KEY] = dispatcher
    app[EXECUTOR_KEY] = executor

    async def handle(request: web.Request) -> web.Response:
        body = await request.read()
        response = await asyncio.get_event_loop().run_in_executor(
            executor,
            functools.partial(
                dispatcher.dispatch,
                request.method,
                request.path,
                request.headers,
                body,
            ),
        )
        return to_web_response(response, request.method)

    app.router.add_route("*", "/{tail:.*}", handle)

    # Add error handler
    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response(
                {"errorMessages": ["Internal server error"]},
                status=500,
            )

    app.middlewares.append(error_middleware)

    async def shutdown_executor(app: web.Application) -> None:
        executor.shutdown(wait=False)

    app.on_cleanup.append(shutdown_executor)

    return app


async def run_http_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 4567,
) -> web.AppRunner:
    """Start serving ``app``.

    Returns:
        The started runner; call ``await runner.cleanup()`` to stop
    """
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"HTTP server running on http://{host}:{port}")
    return runner
