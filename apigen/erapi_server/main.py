"""
Entity API server - Main entry point.

This module starts the server with all components:
- Schema document -> frozen registry + seed populator
- Database manager (default database populated at startup)
- Hook pipeline (low-watermark repopulation per entity)
- aiohttp HTTP server

Usage:
    SCHEMA_PATH=schema.yaml python -m apigen.erapi_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The registry is frozen before the first request is served
    - Graceful shutdown stops accepting requests before exit

How to change safely:
    - Register new hooks in build_hooks, in the order they must run
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
from aiohttp import web

from .api import ApiDispatcher, HookPipeline, LowWatermarkRepopulator, Router, create_http_app
from .api.http_server import AccessGate, run_http_server
from .config import ServerConfig
from .schema import SchemaDocument, SchemaRegistry, load_schema_file
from .store import DatabaseManager, DataPopulator, StaticDataPopulator

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def build_hooks(registry: SchemaRegistry, config: ServerConfig) -> HookPipeline:
    """Create the hook pipeline for a registry."""
    hooks = HookPipeline()
    if config.store.repopulate_enabled:
        for entity in registry.entities():
            hooks.add_post_request_hook(
                LowWatermarkRepopulator(entity.name, config.store.low_watermark)
            )
    return hooks


def build_app(
    document: SchemaDocument,
    config: ServerConfig,
    access_gate: AccessGate | None = None,
    populator: DataPopulator | None = None,
) -> web.Application:
    """Wire registry, store, router and hooks into an aiohttp application.

    Args:
        document: Parsed schema document
        config: Server configuration
        access_gate: Optional pass/fail check run before hooks
        populator: Seed source replacing the document's static seed rows

    Raises:
        SchemaDocumentError: If the document does not describe a valid schema
    """
    registry = document.build_registry(freeze=True)
    logger.info(
        f"Schema registry frozen, fingerprint: {registry.fingerprint}",
        extra={"entities": [e.name for e in registry.entities()]},
    )

    databases = DatabaseManager(
        registry,
        populator=populator or StaticDataPopulator(document.seed),
        capacity=config.store.max_instances,
        low_watermark=config.store.low_watermark,
        max_databases=config.store.max_databases,
    )
    router = Router(registry, prefix=config.http.api_prefix)
    dispatcher = ApiDispatcher(
        router,
        databases,
        hooks=build_hooks(registry, config),
        access_gate=access_gate,
        database_header=config.http.database_header,
    )
    return create_http_app(dispatcher, config.http)


class Server:
    """Entity API server orchestrator.

    Attributes:
        config: Server configuration
        app: aiohttp application (built in start())

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting entity API server")
        self.config.log_config()

        try:
            if not self.config.schema.path:
                raise ValueError("SCHEMA_PATH is required")
            document = load_schema_file(self.config.schema.path)
            self.app = build_app(document, self.config)

            self._runner = await run_http_server(
                self.app,
                host=self.config.http.host,
                port=self.config.http.port,
            )

            self._running = True
            logger.info("Entity API server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        if not self._running:
            return

        self._running = False
        logger.info("Entity API server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Create server
    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    # Run server
    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
