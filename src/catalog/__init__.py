"""Catalog publish pipeline.

This package validates and registers new package versions: identifier
parsing, the package store, upstream tag resolution, the two-part upload
gate, the publish policy and the summary index.
"""

from .errors import (
    AlreadyRegistered,
    InvalidParameter,
    MalformedDescription,
    PackageNotFound,
    PolicyRejected,
    PublishError,
    TagNotPushed,
    UploadRejected,
    UpstreamUnavailable,
)
from .identifiers import PackageName, Version, parse_name, parse_version
from .store import PackageStore
from .summary import SummaryIndex, SummaryEntry
from .upstream import GitHubTagResolver, StaticTagResolver
from .upload import UploadPolicy, StagedUpload, accept_upload
from .policy import PublishPolicy, PolicyDecision
from .publisher import Publisher, PublishResult

__all__ = [
    "AlreadyRegistered",
    "InvalidParameter",
    "MalformedDescription",
    "PackageNotFound",
    "PolicyRejected",
    "PublishError",
    "TagNotPushed",
    "UploadRejected",
    "UpstreamUnavailable",
    "PackageName",
    "Version",
    "parse_name",
    "parse_version",
    "PackageStore",
    "SummaryIndex",
    "SummaryEntry",
    "GitHubTagResolver",
    "StaticTagResolver",
    "UploadPolicy",
    "StagedUpload",
    "accept_upload",
    "PublishPolicy",
    "PolicyDecision",
    "Publisher",
    "PublishResult",
]
