"""Catalog HTTP server using aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import web

from catalog.errors import PackageNotFound, PublishError
from catalog.identifiers import parse_name, parse_version
from catalog.policy import PublishPolicy
from catalog.publisher import Publisher
from catalog.store import PackageStore
from catalog.summary import SummaryIndex, default_summary_path
from catalog.upload import UploadPolicy
from catalog.upstream import GitHubTagResolver, TagResolver
from constants import Constants

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Configuration for the catalog server."""

    host: str = Constants.SERVER_HOST
    port: int = Constants.SERVER_PORT
    packages_root: str = Constants.PACKAGES_ROOT
    data_root: str = Constants.DATA_ROOT
    github_api: str = Constants.GITHUB_API_BASE
    timeout: int = Constants.REQUEST_TIMEOUT
    max_part_size: int = Constants.UPLOAD_MAX_PART_BYTES
    policy_config: Dict[str, Any] = field(default_factory=dict)
    allow_external: bool = False

    @classmethod
    def from_args(cls, args: Any, file_config: Optional[Dict[str, Any]] = None) -> "ServerConfig":
        """Create config from CLI arguments layered over a config file.

        Args:
            args: Parsed CLI arguments namespace.
            file_config: ``server`` section of the YAML config, if any.

        Returns:
            ServerConfig instance.
        """
        config = cls()
        for key, value in (file_config or {}).items():
            if hasattr(config, key) and key != "policy_config":
                setattr(config, key, value)

        # CLI flags take precedence over the config file
        overrides = {
            "host": getattr(args, "HOST", None),
            "port": getattr(args, "PORT", None),
            "packages_root": getattr(args, "PACKAGES_ROOT", None),
            "data_root": getattr(args, "DATA_ROOT", None),
            "github_api": getattr(args, "GITHUB_API", None),
            "timeout": getattr(args, "TIMEOUT", None),
            "max_part_size": getattr(args, "MAX_PART_SIZE", None),
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        if getattr(args, "ALLOW_EXTERNAL", False):
            config.allow_external = True
        return config


class CatalogServer:
    """HTTP front end for the publish pipeline and read endpoints."""

    def __init__(self, config: ServerConfig, resolver: Optional[TagResolver] = None):
        """Initialize the catalog server.

        Args:
            config: Server configuration.
            resolver: Tag resolver override; defaults to GitHub.
        """
        self._config = config
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

        self._store = PackageStore(config.packages_root)
        self._summary = SummaryIndex(default_summary_path(config.data_root))
        self._resolver = resolver or GitHubTagResolver(
            base_url=config.github_api, timeout=config.timeout
        )
        self._policy = PublishPolicy(config.policy_config)
        self._publisher = Publisher(
            store=self._store,
            summary=self._summary,
            resolver=self._resolver,
            policy=self._policy,
            upload_policy=UploadPolicy(max_part_size=config.max_part_size),
        )

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application(
            client_max_size=Constants.SERVER_MAX_BODY_BYTES,
            middlewares=[self._error_middleware],
        )
        app.router.add_get("/_catalog/health", self._health_check)
        app.router.add_post("/register", self._register)
        app.router.add_get("/versions", self._versions)
        app.router.add_get("/latest", self._latest)
        app.router.add_get("/documentation", self._documentation)
        app.router.add_get("/catalog/{author}/{project}/latest", self._redirect_latest)
        app.router.add_get(
            "/catalog/{author}/{project}/latest/{tail:.*}", self._redirect_latest
        )
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        """Turn publish pipeline errors into JSON responses."""
        try:
            return await handler(request)
        except PublishError as exc:
            if exc.status >= 500:
                logger.error("%s %s failed: %s", request.method, request.path, exc.message)
            else:
                logger.info("%s %s rejected: %s", request.method, request.path, exc.kind)
            return self._error_response(exc)

    @staticmethod
    def _error_response(exc: PublishError) -> web.Response:
        headers = {}
        if exc.retryable:
            headers["Retry-After"] = str(Constants.RETRY_AFTER_SEC)
        return web.Response(
            status=exc.status,
            headers=headers,
            content_type="application/json",
            body=json.dumps(exc.to_dict(), indent=2).encode(),
        )

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok", "packages": len(self._summary)})

    async def _on_startup(self, app: web.Application) -> None:
        """Load (or rebuild) the summary index and open the resolver."""
        start = getattr(self._resolver, "start", None)
        if start is not None:
            await start()
        await asyncio.to_thread(self._open_summary)
        logger.info("Catalog serving %d packages from %s", len(self._summary), self._store.root)

    def _open_summary(self) -> None:
        """Use the persisted index; rebuild from the store only if it is missing or unreadable."""
        try:
            if self._summary.load():
                return
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Summary index unreadable, rebuilding: %s", exc)
        self._summary.rebuild(self._store, self._policy)
        self._summary.save()

    async def _on_cleanup(self, app: web.Application) -> None:
        """Close the resolver session."""
        stop = getattr(self._resolver, "stop", None)
        if stop is not None:
            await stop()
        logger.info("Catalog server stopped")

    async def _register(self, request: web.Request) -> web.Response:
        """Publish a new package version."""
        reader = None
        if request.content_type.startswith("multipart/"):
            try:
                reader = await request.multipart()
            except ValueError:
                # No usable boundary; treated as a missing upload.
                reader = None

        result = await self._publisher.publish(
            request.query.get("name"),
            request.query.get("version"),
            reader,
        )
        return web.json_response(result.to_dict(), status=201)

    async def _versions(self, request: web.Request) -> web.Response:
        """List the known versions of a package."""
        name = parse_name(request.query.get("name"))
        versions = self._summary.versions_of(name)
        if versions is None:
            raise PackageNotFound(f"Package {name} is not registered.", package=str(name))
        return web.json_response([str(v) for v in versions])

    async def _latest(self, request: web.Request) -> web.Response:
        """Latest version of a package."""
        name = parse_name(request.query.get("name"))
        latest = self._summary.latest(name)
        if latest is None:
            raise PackageNotFound(f"Package {name} is not registered.", package=str(name))
        return web.json_response({"name": str(name), "version": str(latest)})

    async def _documentation(self, request: web.Request) -> web.Response:
        """Serve the committed documentation artifact."""
        name = parse_name(request.query.get("name"))
        version = parse_version(request.query.get("version"))
        body = await asyncio.to_thread(self._store.read_documentation, name, version)
        return web.Response(body=body, content_type="application/json")

    async def _redirect_latest(self, request: web.Request) -> web.Response:
        """Redirect ``.../latest/...`` to the greatest known version."""
        author = request.match_info["author"]
        project = request.match_info["project"]
        name = parse_name(f"{author}/{project}")
        latest = self._summary.latest(name)
        if latest is None:
            raise PackageNotFound(f"Package {name} is not registered.", package=str(name))
        tail = request.match_info.get("tail")
        tail = f"/{tail}" if tail is not None else ""
        raise web.HTTPFound(f"/catalog/{name}/{latest}{tail}")

    @property
    def summary(self) -> SummaryIndex:
        return self._summary

    @property
    def store(self) -> PackageStore:
        return self._store

    async def start(self) -> None:
        """Start the catalog server."""
        self._app = self._create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

        logger.info(
            "Catalog server listening on http://%s:%s",
            self._config.host, self._config.port,
        )
        logger.info("Packages root: %s", Path(self._config.packages_root).resolve())
        logger.info("Upstream tags: %s", self._config.github_api)

    async def stop(self) -> None:
        """Stop the catalog server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def run_server_sync(config: ServerConfig) -> None:
    """Run the catalog server synchronously.

    Installs signal handlers for SIGTERM and SIGINT for clean shutdown.

    Args:
        config: Server configuration.
    """
    server = CatalogServer(config)
    loop = asyncio.new_event_loop()

    async def run():
        await server.start()
        stop_event = asyncio.Event()
        running_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            running_loop.add_signal_handler(sig, stop_event.set)
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
        await server.stop()

    try:
        loop.run_until_complete(run())
    except KeyboardInterrupt:
        # Fallback for platforms where signal handlers don't work (Windows)
        loop.run_until_complete(server.stop())
    finally:
        loop.close()
        logger.info("Catalog server shutdown complete")
