"""Client for publishing to a catalog server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from common.http_client import safe_get, safe_post
from constants import Constants

logger = logging.getLogger(__name__)


class PublishClientError(Exception):
    """The server rejected a request."""

    def __init__(self, status: int, message: str, kind: str = ""):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.kind = kind


def _error_from_response(res) -> PublishClientError:
    try:
        body: Dict[str, Any] = res.json()
    except ValueError:
        return PublishClientError(res.status_code, res.text or res.reason or "")
    return PublishClientError(
        res.status_code,
        str(body.get("message", res.text)),
        str(body.get("error", "")),
    )


class PublishClient:
    """Talks to the catalog server's publish and query endpoints."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def publish(
        self,
        name: str,
        version: str,
        description_path: str,
        documentation_path: str,
    ) -> Dict[str, Any]:
        """Upload a description and documentation for ``name`` ``version``.

        Raises:
            PublishClientError: If the server rejects the publish.
        """
        description = Path(description_path).read_bytes()
        documentation = Path(documentation_path).read_bytes()
        content_type = Constants.UPLOAD_CONTENT_TYPE
        files = {
            "description": (Constants.DESCRIPTION_FILE, description, content_type),
            "documentation": (Constants.DOCUMENTATION_FILE, documentation, content_type),
        }
        res = safe_post(
            f"{self.base_url}/register",
            context="publish",
            params={"name": name, "version": version},
            files=files,
        )
        if res.status_code != 201:
            raise _error_from_response(res)
        logger.info("Published %s %s to %s", name, version, self.base_url)
        return res.json()

    def versions(self, name: str) -> List[str]:
        """Versions the server knows for ``name``.

        Raises:
            PublishClientError: If the package is unknown or the name invalid.
        """
        res = safe_get(f"{self.base_url}/versions", context="versions", params={"name": name})
        if res.status_code != 200:
            raise _error_from_response(res)
        return list(res.json())
