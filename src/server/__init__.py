"""Catalog HTTP server package.

Exposes the publish, version-query and documentation-fetch operations of
the catalog over HTTP.
"""

from .server import CatalogServer, ServerConfig, run_server_sync

__all__ = [
    "CatalogServer",
    "ServerConfig",
    "run_server_sync",
]
