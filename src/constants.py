"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    PUBLISH_REJECTED = 3


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PACKAGES_ROOT = "packages"
    DATA_ROOT = "data"
    SUMMARY_FILE = "summary.json"
    DESCRIPTION_FILE = "description.json"
    DOCUMENTATION_FILE = "documentation.json"

    # Upload gate
    UPLOAD_FIELDS = ("description", "documentation")
    UPLOAD_CONTENT_TYPE = "application/json"
    UPLOAD_MAX_PART_BYTES = 2 ** 19  # 512 KiB
    UPLOAD_CHUNK_BYTES = 8192

    # Server
    SERVER_HOST = "127.0.0.1"
    SERVER_PORT = 8000
    SERVER_MAX_BODY_BYTES = 4 * 1024 * 1024
    RETRY_AFTER_SEC = 30

    LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
    ENV_LOG_LEVEL = "PKGCATALOG_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests

    # Upstream authority
    GITHUB_API_BASE = "https://api.github.com"
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    REPO_API_PER_PAGE = 100
    REPO_API_MAX_PAGES = 50
