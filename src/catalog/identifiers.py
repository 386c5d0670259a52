"""Package name and version identifiers parsed from untrusted input.

These parsers are the only path from request parameters to file-system
paths: a parsed PackageName or Version never contains a traversal segment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional, TypeVar

import semantic_version

from .errors import InvalidParameter

T = TypeVar("T")

_AUTHOR_PATTERN = re.compile(r"^[A-Za-z0-9](?:-?[A-Za-z0-9])*$")
_PROJECT_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?$")


@dataclass(frozen=True, order=True)
class PackageName:
    """A validated ``author/project`` package name."""

    author: str
    project: str

    @classmethod
    def parse(cls, raw: str) -> "PackageName":
        """Parse ``author/project``.

        Raises:
            ValueError: If the string is empty, contains traversal
                segments, or does not match the name grammar.
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("empty package name")
        if ".." in raw or "\\" in raw or raw.startswith("/"):
            raise ValueError(f"unsafe package name: {raw!r}")

        parts = raw.split("/")
        if len(parts) != 2:
            raise ValueError(f"package name must be author/project: {raw!r}")

        author, project = parts
        if not _AUTHOR_PATTERN.match(author):
            raise ValueError(f"invalid author: {author!r}")
        if not _PROJECT_PATTERN.match(project):
            raise ValueError(f"invalid project: {project!r}")
        return cls(author=author, project=project)

    def to_path(self) -> PurePosixPath:
        """Relative path segment for this package."""
        return PurePosixPath(self.author, self.project)

    def __str__(self) -> str:
        return f"{self.author}/{self.project}"


@dataclass(frozen=True, order=True)
class Version:
    """A ``major.minor.patch`` version, ordered numerically per component."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, raw: str) -> "Version":
        """Parse a strict ``N.N.N`` version string.

        Raises:
            ValueError: If the string is not a canonical three-part version.
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("empty version")
        try:
            parsed = semantic_version.Version(raw)
        except ValueError as exc:
            raise ValueError(f"invalid version: {raw!r}") from exc

        if parsed.prerelease or parsed.build:
            raise ValueError(f"version must be major.minor.patch: {raw!r}")
        # Reject non-canonical spellings such as leading zeros.
        if str(parsed) != raw:
            raise ValueError(f"non-canonical version: {raw!r}")
        return cls(major=parsed.major, minor=parsed.minor, patch=parsed.patch)

    @classmethod
    def from_string(cls, raw: str) -> Optional["Version"]:
        """Like ``parse`` but returns None instead of raising."""
        try:
            return cls.parse(raw)
        except ValueError:
            return None

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_parameter(param: str, raw: Optional[str], parser: Callable[[str], T]) -> T:
    """Parse a request parameter, mapping any failure to InvalidParameter."""
    if raw is None:
        raise InvalidParameter(param)
    try:
        return parser(raw)
    except ValueError as exc:
        raise InvalidParameter(param) from exc


def parse_name(raw: Optional[str], param: str = "name") -> PackageName:
    """Parse a package name parameter."""
    return parse_parameter(param, raw, PackageName.parse)


def parse_version(raw: Optional[str], param: str = "version") -> Version:
    """Parse a version parameter."""
    return parse_parameter(param, raw, Version.parse)
