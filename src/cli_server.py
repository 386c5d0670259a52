"""CLI entry point for the catalog server.

This module provides the command-line interface for starting the catalog
server and for maintaining its summary index.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import sys
from typing import Any, Dict, Optional

import yaml

from common.logging_utils import configure_logging
from constants import Constants, ExitCodes

logger = logging.getLogger(__name__)


def _is_local_bind_host(host: str) -> bool:
    """Return True if host is a loopback/local bind target."""
    if not host:
        return False
    host_lower = host.strip().lower()
    if host_lower in ("localhost",):
        return True
    try:
        return ipaddress.ip_address(host_lower).is_loopback
    except ValueError:
        # Non-IP hostnames are treated as non-local unless explicitly allowed.
        return False


def _enforce_local_binding(host: str, allow_external: bool) -> None:
    """Enforce local-only binding unless explicitly allowed."""
    if _is_local_bind_host(host):
        return
    if not allow_external:
        sys.stderr.write(
            "ERROR: Non-local bindings require --allow-external.\n"
        )
        sys.exit(2)
    logger.warning(
        "Binding catalog server to non-local address (%s). Ensure network controls are in place.",
        host,
    )


def _load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the YAML (or JSON) configuration file.

    Args:
        config_path: Path to the config file.

    Returns:
        Config dict with optional ``server`` and ``policy`` sections.
    """
    if not config_path:
        return {}

    if not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load config: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if not isinstance(data, dict):
        logger.error("Config file must contain a mapping: %s", config_path)
        sys.exit(ExitCodes.FILE_ERROR.value)
    return data


def setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    # Honor CLI --loglevel
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()

    configure_logging()

    # Add file handler if --logfile specified
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def run_catalog_server(args: Any) -> None:
    """Entry point for the serve command.

    Args:
        args: Parsed CLI arguments namespace.
    """
    from server.server import ServerConfig, run_server_sync  # pylint: disable=import-outside-toplevel

    file_config = _load_config(getattr(args, "CONFIG", None))
    config = ServerConfig.from_args(args, file_config.get("server"))
    config.policy_config = file_config.get("policy") or {}

    if config.policy_config:
        logger.info("Loaded policy config from: %s", args.CONFIG)
    else:
        logger.info("No policy config loaded - all packages will be allowed")

    _enforce_local_binding(config.host, config.allow_external)

    # Print startup banner
    print(
        f"\n"
        f"  pkgcatalog server\n"
        f"  =================\n"
        f"  Listening: http://{config.host}:{config.port}\n"
        f"  Packages:  {config.packages_root}\n"
        f"\n"
        f"  Publish with:\n"
        f"    pkgcatalog publish author/project 1.0.0 \\\n"
        f"      --description {Constants.DESCRIPTION_FILE} \\\n"
        f"      --documentation {Constants.DOCUMENTATION_FILE} \\\n"
        f"      --server http://{config.host}:{config.port}\n"
        f"\n"
        f"  Press Ctrl+C to stop\n"
    )

    run_server_sync(config)
