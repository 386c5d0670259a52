"""Error taxonomy for the publish pipeline.

Every gate in the pipeline raises one of these. The HTTP layer is the only
place they are turned into responses, using ``status`` and ``to_dict``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PublishError(Exception):
    """Base class for publish pipeline failures."""

    kind = "PublishError"
    status = 400
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an error response body."""
        body: Dict[str, Any] = {"error": self.kind, "message": self.message}
        body.update(self.details)
        if self.retryable:
            body["retryable"] = True
        return body


class InvalidParameter(PublishError):
    """A request parameter did not parse."""

    kind = "InvalidParameter"

    def __init__(self, param: str):
        super().__init__(f"problem with parameter '{param}'", parameter=param)
        self.param = param


class AlreadyRegistered(PublishError):
    """The version is already registered locally."""

    kind = "AlreadyRegistered"

    def __init__(self, version: str):
        super().__init__(
            f"Version {version} has already been registered.", version=version
        )
        self.version = version


class TagNotPushed(PublishError):
    """The upstream authority has no tag for the version."""

    kind = "TagNotPushed"

    def __init__(self, version: str):
        super().__init__(
            f"The tag {version} has not been pushed to GitHub.", version=version
        )
        self.version = version


class UpstreamUnavailable(PublishError):
    """The upstream tag resolver itself failed; safe to retry."""

    kind = "UpstreamUnavailable"
    status = 503
    retryable = True


class UploadRejected(PublishError):
    """The multipart body violated the two-part upload contract."""

    kind = "UploadRejected"

    def __init__(self, reasons: List[str], missing_files: bool = False):
        message = "; ".join(reasons) if reasons else "upload rejected"
        super().__init__(message, reasons=list(reasons))
        self.reasons = list(reasons)
        self.missing_files = missing_files
        # "Files were not uploaded" is reported as 404, other violations as 400.
        self.status = 404 if missing_files else 400


class MalformedDescription(PublishError):
    """The committed description artifact is not valid package metadata."""

    kind = "MalformedDescription"

    def __init__(self, reason: str, path: Optional[str] = None):
        super().__init__(f"Malformed package description: {reason}", path=path)
        self.reason = reason


class PolicyRejected(PublishError):
    """The package failed the publish policy."""

    kind = "PolicyRejected"

    def __init__(self, name: str, violations: List[str], message: Optional[str] = None):
        super().__init__(
            message or f"Package {name} rejected by policy: {', '.join(violations)}",
            package=name,
            violated_rules=list(violations),
        )
        self.name = name
        self.violations = list(violations)


class PackageNotFound(PublishError):
    """No such package, or no such version of it."""

    kind = "PackageNotFound"
    status = 404
