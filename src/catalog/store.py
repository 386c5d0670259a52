"""File-system package store.

Maps ``(PackageName, Version)`` to ``<root>/<author>/<project>/<version>/``.
The store is the only component that writes into package directories.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from constants import Constants

from .errors import PackageNotFound
from .identifiers import PackageName, Version

logger = logging.getLogger(__name__)


class PackageStore:
    """Read/write access to published package directories."""

    def __init__(self, root: os.PathLike | str = Constants.PACKAGES_ROOT):
        """Initialize the store.

        Args:
            root: Directory holding one subtree per package.
        """
        self.root = Path(root)

    def root_for(self, name: PackageName, version: Version) -> Path:
        """Directory for a package version. Pure; performs no I/O."""
        return self.root / name.author / name.project / str(version)

    def description_path(self, name: PackageName, version: Version) -> Path:
        return self.root_for(name, version) / Constants.DESCRIPTION_FILE

    def documentation_path(self, name: PackageName, version: Version) -> Path:
        return self.root_for(name, version) / Constants.DOCUMENTATION_FILE

    def exists(self, name: PackageName, version: Version) -> bool:
        """True if the version directory exists."""
        return self.root_for(name, version).is_dir()

    def list_versions(self, name: PackageName) -> Optional[List[Version]]:
        """Committed versions on disk, ascending; None for an unknown package.

        Entries that do not parse as a version, or that hold no description
        artifact (an upload that never committed), are ignored.
        """
        package_dir = self.root / name.author / name.project
        if not package_dir.is_dir():
            return None
        versions = []
        for entry in package_dir.iterdir():
            version = Version.from_string(entry.name)
            if version is None:
                continue
            if (entry / Constants.DESCRIPTION_FILE).is_file():
                versions.append(version)
        return sorted(versions)

    def create_directory(self, name: PackageName, version: Version) -> Path:
        """Ensure the version directory exists; never touches artifacts."""
        directory = self.root_for(name, version)
        directory.mkdir(parents=True, exist_ok=True)
        logger.debug("Ensured package directory %s", directory)
        return directory

    def commit(
        self,
        name: PackageName,
        version: Version,
        description: bytes,
        documentation: bytes,
    ) -> None:
        """Write both artifacts into an existing version directory.

        Each artifact is written to a temporary file in the same directory
        and moved into place, so a reader never sees a truncated file.
        """
        directory = self.root_for(name, version)
        self._write_atomic(directory / Constants.DESCRIPTION_FILE, description)
        self._write_atomic(directory / Constants.DOCUMENTATION_FILE, documentation)
        logger.info("Committed artifacts for %s %s", name, version)

    def read_documentation(self, name: PackageName, version: Version) -> bytes:
        """Raw documentation artifact bytes.

        Raises:
            PackageNotFound: If the version is not registered.
        """
        if not self.exists(name, version):
            raise PackageNotFound("That library and version is not registered.")
        try:
            return self.documentation_path(name, version).read_bytes()
        except FileNotFoundError as exc:
            raise PackageNotFound("That library and version is not registered.") from exc

    def iter_packages(self) -> Iterator[Tuple[PackageName, List[Version]]]:
        """Yield every package on disk with its versions."""
        if not self.root.is_dir():
            return
        for author_dir in sorted(self.root.iterdir()):
            if not author_dir.is_dir():
                continue
            for project_dir in sorted(author_dir.iterdir()):
                if not project_dir.is_dir():
                    continue
                try:
                    name = PackageName.parse(f"{author_dir.name}/{project_dir.name}")
                except ValueError:
                    logger.warning("Skipping unrecognised directory %s", project_dir)
                    continue
                versions = self.list_versions(name)
                if versions:
                    yield name, versions

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
