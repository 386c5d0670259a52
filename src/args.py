"""Argument parsing functionality for pkgcatalog."""

import argparse

from constants import Constants


def _add_logging_args(parser):
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def _add_storage_args(parser):
    parser.add_argument("--packages-root",
                        dest="PACKAGES_ROOT",
                        help=f"Directory holding published packages (default: {Constants.PACKAGES_ROOT})",
                        action="store",
                        type=str)
    parser.add_argument("--data-root",
                        dest="DATA_ROOT",
                        help=f"Directory holding the summary index (default: {Constants.DATA_ROOT})",
                        action="store",
                        type=str)


def _add_config_arg(parser):
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="pkgcatalog",
        description="pkgcatalog - package catalog server and publish tooling",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", required=True)

    serve = subparsers.add_parser("serve", help="Run the catalog HTTP server")
    _add_logging_args(serve)
    _add_storage_args(serve)
    serve.add_argument("--host",
                       dest="HOST",
                       help=f"Bind address (default: {Constants.SERVER_HOST})",
                       action="store",
                       type=str)
    serve.add_argument("--port",
                       dest="PORT",
                       help=f"Bind port (default: {Constants.SERVER_PORT})",
                       action="store",
                       type=int)
    serve.add_argument("--allow-external",
                       dest="ALLOW_EXTERNAL",
                       help="Allow binding to a non-loopback address",
                       action="store_true")
    serve.add_argument("--github-api",
                       dest="GITHUB_API",
                       help="Base URL of the GitHub API used to resolve tags",
                       action="store",
                       type=str)
    serve.add_argument("--timeout",
                       dest="TIMEOUT",
                       help="Upstream request timeout in seconds",
                       action="store",
                       type=int)
    serve.add_argument("--max-part-size",
                       dest="MAX_PART_SIZE",
                       help=f"Maximum bytes per uploaded part (default: {Constants.UPLOAD_MAX_PART_BYTES})",
                       action="store",
                       type=int)
    _add_config_arg(serve)

    rebuild = subparsers.add_parser("rebuild-index",
                                    help="Rebuild the summary index from the package store")
    _add_logging_args(rebuild)
    _add_storage_args(rebuild)
    _add_config_arg(rebuild)

    versions = subparsers.add_parser("versions", help="List known versions of a package")
    _add_logging_args(versions)
    _add_storage_args(versions)
    _add_config_arg(versions)
    versions.add_argument("NAME", help="Package name (author/project)")

    publish = subparsers.add_parser("publish", help="Upload a package version to a catalog server")
    _add_logging_args(publish)
    publish.add_argument("NAME", help="Package name (author/project)")
    publish.add_argument("VERSION", help="Version to publish (N.N.N)")
    publish.add_argument("--description",
                         dest="DESCRIPTION",
                         help="Path to the package description JSON",
                         action="store",
                         type=str,
                         required=True)
    publish.add_argument("--documentation",
                         dest="DOCUMENTATION",
                         help="Path to the documentation JSON",
                         action="store",
                         type=str,
                         required=True)
    publish.add_argument("--server",
                         dest="SERVER",
                         help=f"Catalog server URL (default: http://{Constants.SERVER_HOST}:{Constants.SERVER_PORT})",
                         action="store",
                         type=str,
                         default=f"http://{Constants.SERVER_HOST}:{Constants.SERVER_PORT}")

    return parser.parse_args(argv)
