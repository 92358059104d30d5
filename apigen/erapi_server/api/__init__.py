"""
API module for the entity API engine.

This module provides the HTTP surface:
- Router mapping (verb, path) to entity actions
- Content negotiation for JSON and XML
- Hook pipeline run around every request
- aiohttp application delegating to ApiDispatcher

Invariants:
    - Routing, negotiation and the store never see aiohttp objects
    - Error kinds map to HTTP statuses in exactly one place

How to change safely:
    - Add routes to ROUTING_DEFINITIONS, not to the aiohttp router
    - New error kinds need a status in routing.status_for_error
"""

from .context import ApiResponse, RequestContext
from .hooks import ApiRequestHook, HookPipeline, LowWatermarkRepopulator
from .http_server import ApiDispatcher, create_http_app, run_http_server
from .negotiation import MediaFormat, request_format, response_format
from .routing import EntityAction, Router, RoutingVerb, status_for_error

__all__ = [
    "ApiDispatcher",
    "ApiRequestHook",
    "ApiResponse",
    "EntityAction",
    "HookPipeline",
    "LowWatermarkRepopulator",
    "MediaFormat",
    "RequestContext",
    "Router",
    "RoutingVerb",
    "create_http_app",
    "request_format",
    "response_format",
    "run_http_server",
    "status_for_error",
]
