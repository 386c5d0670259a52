"""Summary index: package name to summary text and published versions.

Entries are immutable and replaced wholesale on update, so a reader always
sees either the old entry or the new one. Writers serialize on one lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from constants import Constants

from .description import Description, read_description
from .errors import MalformedDescription
from .identifiers import PackageName, Version
from .policy import PublishPolicy
from .store import PackageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryEntry:
    """Cached projection of one package."""

    name: PackageName
    summary: str
    versions: Tuple[Version, ...]

    def with_version(self, version: Version, summary: str) -> "SummaryEntry":
        versions = tuple(sorted(set(self.versions) | {version}))
        # The summary tracks the latest version's description.
        if version != versions[-1]:
            summary = self.summary
        return SummaryEntry(self.name, summary, versions)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": str(self.name),
            "summary": self.summary,
            "versions": [str(v) for v in self.versions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "SummaryEntry":
        versions = tuple(sorted(Version.parse(v) for v in data.get("versions", [])))
        return cls(PackageName.parse(data["name"]), str(data.get("summary", "")), versions)


class SummaryIndex:
    """Process-wide, explicitly owned cache of package metadata."""

    def __init__(self, path: Optional[os.PathLike | str] = None):
        """Initialize an empty index.

        Args:
            path: File the index is persisted to; None keeps it in memory only.
        """
        self.path = Path(path) if path is not None else None
        self._entries: Dict[PackageName, SummaryEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, name: PackageName) -> Optional[SummaryEntry]:
        return self._entries.get(name)

    def all_entries(self) -> List[SummaryEntry]:
        return sorted(self._entries.values(), key=lambda e: e.name)

    def versions_of(self, name: PackageName) -> Optional[List[Version]]:
        """Known versions, ascending; None for an unknown package."""
        entry = self._entries.get(name)
        return list(entry.versions) if entry else None

    def latest(self, name: PackageName) -> Optional[Version]:
        """Greatest known version of ``name``."""
        entry = self._entries.get(name)
        if not entry or not entry.versions:
            return None
        return max(entry.versions)

    async def add(self, description: Description) -> SummaryEntry:
        """Append a newly published version and persist the index.

        The new entry becomes visible only after the index file is written.
        """
        async with self._lock:
            current = self._entries.get(description.name)
            if current is None:
                updated = SummaryEntry(description.name, description.summary, (description.version,))
            else:
                updated = current.with_version(description.version, description.summary)
            entries = dict(self._entries)
            entries[description.name] = updated
            if self.path is not None:
                await asyncio.to_thread(self._write, self._serialize(entries))
            self._entries = entries
        logger.info("Summary index updated: %s %s", description.name, description.version)
        return updated

    def rebuild(self, store: PackageStore, policy: Optional[PublishPolicy] = None) -> int:
        """Replace all entries with what is on disk. Returns the package count.

        A version counts only if its description reads back, names the
        directory's package and version, and passes ``policy``. Versions left
        behind by a rejected publish are skipped.
        """
        entries: Dict[PackageName, SummaryEntry] = {}
        for name, versions in store.iter_packages():
            accepted: List[Version] = []
            summary = ""
            for version in versions:
                description = _verified_description(store, name, version, policy)
                if description is None:
                    continue
                accepted.append(version)
                summary = description.summary
            if accepted:
                entries[name] = SummaryEntry(name, summary, tuple(accepted))
        self._entries = entries
        logger.info("Summary index rebuilt with %d packages", len(entries))
        return len(entries)

    def load(self) -> bool:
        """Load entries from ``path``. Returns False if there is no file."""
        if self.path is None or not self.path.is_file():
            return False
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"summary index must be a JSON list: {self.path}")
        self._entries = {e.name: e for e in (SummaryEntry.from_dict(d) for d in data)}
        logger.info("Loaded summary index with %d packages from %s", len(self._entries), self.path)
        return True

    def save(self) -> None:
        """Persist the current entries to ``path``."""
        if self.path is not None:
            self._write(self._serialize(self._entries))

    @staticmethod
    def _serialize(entries: Dict[PackageName, SummaryEntry]) -> bytes:
        ordered = sorted(entries.values(), key=lambda e: e.name)
        return json.dumps([e.to_dict() for e in ordered], indent=2).encode("utf-8")

    def _write(self, data: bytes) -> None:
        assert self.path is not None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def _verified_description(
    store: PackageStore,
    name: PackageName,
    version: Version,
    policy: Optional[PublishPolicy],
) -> Optional[Description]:
    try:
        description = read_description(store.description_path(name, version))
    except MalformedDescription as exc:
        logger.warning("Skipping %s %s: %s", name, version, exc.reason)
        return None
    if description.name != name or description.version != version:
        logger.warning(
            "Skipping %s %s: description declares %s %s",
            name, version, description.name, description.version,
        )
        return None
    if policy is not None:
        decision = policy.evaluate(description)
        if not decision.allowed:
            logger.warning("Skipping %s %s: rejected by policy %s", name, version, decision.violated_rules)
            return None
    return description


def default_summary_path(data_root: os.PathLike | str = Constants.DATA_ROOT) -> Path:
    return Path(data_root) / Constants.SUMMARY_FILE
