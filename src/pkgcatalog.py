"""pkgcatalog - package catalog server and publish tooling

    Returns:
        int: Exit code
"""
import logging
import sys

from args import parse_args
from catalog.errors import InvalidParameter
from catalog.identifiers import parse_name
from catalog.policy import PublishPolicy
from catalog.store import PackageStore
from catalog.summary import SummaryIndex, default_summary_path
from cli_server import _load_config, run_catalog_server, setup_logging
from constants import Constants, ExitCodes

logger = logging.getLogger(__name__)


def _open_index(args):
    store = PackageStore(getattr(args, "PACKAGES_ROOT", None) or Constants.PACKAGES_ROOT)
    summary = SummaryIndex(default_summary_path(getattr(args, "DATA_ROOT", None) or Constants.DATA_ROOT))
    return store, summary


def _load_policy(args):
    """Publish policy from the config file, so rebuilds skip rejected versions."""
    file_config = _load_config(getattr(args, "CONFIG", None))
    try:
        return PublishPolicy(file_config.get("policy") or {})
    except ValueError as exc:
        logger.error("Invalid policy config: %s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)


def rebuild_index(args):
    """Rebuild the summary index from the package store and save it."""
    store, summary = _open_index(args)
    count = summary.rebuild(store, _load_policy(args))
    summary.save()
    print(f"Indexed {count} packages into {summary.path}")
    return ExitCodes.SUCCESS.value


def list_versions(args):
    """Print the known versions of a package, one per line."""
    try:
        name = parse_name(args.NAME)
    except InvalidParameter as exc:
        logger.error("%s: %s", exc.message, args.NAME)
        return ExitCodes.FILE_ERROR.value

    store, summary = _open_index(args)
    if not summary.load():
        summary.rebuild(store, _load_policy(args))

    versions = summary.versions_of(name)
    if versions is None:
        logger.error("Package %s is not registered.", name)
        return ExitCodes.FILE_ERROR.value
    for version in versions:
        print(version)
    return ExitCodes.SUCCESS.value


def publish(args):
    """Upload a package version to a catalog server."""
    from client import PublishClient, PublishClientError  # pylint: disable=import-outside-toplevel

    client = PublishClient(args.SERVER)
    try:
        client.publish(args.NAME, args.VERSION, args.DESCRIPTION, args.DOCUMENTATION)
    except FileNotFoundError as exc:
        logger.error("File not found: %s, aborting", exc.filename)
        return ExitCodes.FILE_ERROR.value
    except PublishClientError as exc:
        logger.error("Publish rejected (%s): %s", exc.kind or exc.status, exc.message)
        if exc.status >= 500:
            return ExitCodes.CONNECTION_ERROR.value
        return ExitCodes.PUBLISH_REJECTED.value
    print(f"Published {args.NAME} {args.VERSION}")
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    setup_logging(args)

    if args.COMMAND == "serve":
        run_catalog_server(args)
        return ExitCodes.SUCCESS.value
    if args.COMMAND == "rebuild-index":
        return rebuild_index(args)
    if args.COMMAND == "versions":
        return list_versions(args)
    if args.COMMAND == "publish":
        return publish(args)
    logger.error("Unknown command: %s", args.COMMAND)
    return ExitCodes.FILE_ERROR.value


if __name__ == "__main__":
    sys.exit(main())
