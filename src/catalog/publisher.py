"""Publish orchestration.

Runs the registration sequence for one request. Each step is a hard gate:
the first failure raises and nothing after it runs. There is no rollback;
a rejected upload may leave an empty version directory behind.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Hashable, Optional

from aiohttp import MultipartReader

from common.logging_utils import Timer, extra_context

from .description import Description, read_description
from .errors import AlreadyRegistered, MalformedDescription, PolicyRejected, TagNotPushed
from .identifiers import PackageName, Version, parse_name, parse_version
from .policy import PublishPolicy
from .store import PackageStore
from .summary import SummaryIndex
from .upload import UploadPolicy, accept_upload
from .upstream import TagResolver

logger = logging.getLogger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, discarded once no task holds or awaits it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class PublishResult:
    """A successful publish."""

    name: PackageName
    version: Version
    description: Description

    def to_dict(self) -> Dict[str, str]:
        return {"name": str(self.name), "version": str(self.version)}


class Publisher:
    """Composes store, resolver, upload gate, policy and summary index."""

    def __init__(
        self,
        store: PackageStore,
        summary: SummaryIndex,
        resolver: TagResolver,
        policy: Optional[PublishPolicy] = None,
        upload_policy: Optional[UploadPolicy] = None,
    ):
        self.store = store
        self.summary = summary
        self.resolver = resolver
        self.policy = policy or PublishPolicy()
        self.upload_policy = upload_policy or UploadPolicy()
        self._locks = KeyedLock()

    async def publish(
        self,
        raw_name: Optional[str],
        raw_version: Optional[str],
        reader: Optional[MultipartReader],
    ) -> PublishResult:
        """Register a new package version.

        Args:
            raw_name: Untrusted ``name`` parameter.
            raw_version: Untrusted ``version`` parameter.
            reader: Multipart reader for the request body (None if the body
                is not multipart).

        Raises:
            PublishError: The first gate that failed.
        """
        name = parse_name(raw_name)
        version = parse_version(raw_version)

        with Timer() as t:
            async with self._locks.hold((name, version)):
                result = await self._register(name, version, reader)

        logger.info(
            "Published %s %s",
            name,
            version,
            extra=extra_context(
                event="publish",
                component="publisher",
                outcome="success",
                package=str(name),
                version=str(version),
                duration_ms=t.duration_ms(),
            ),
        )
        return result

    async def _register(
        self,
        name: PackageName,
        version: Version,
        reader: Optional[MultipartReader],
    ) -> PublishResult:
        await self.verify_version(name, version)

        await asyncio.to_thread(self.store.create_directory, name, version)

        staged = await accept_upload(reader, self.upload_policy)

        await asyncio.to_thread(
            self.store.commit, name, version, staged.description, staged.documentation
        )

        description = await asyncio.to_thread(
            read_description, self.store.description_path(name, version)
        )
        if description.name != name or description.version != version:
            raise MalformedDescription(
                f"description declares {description.name} {description.version}, "
                f"expected {name} {version}",
                path=str(self.store.description_path(name, version)),
            )

        decision = self.policy.evaluate(description)
        if not decision.allowed:
            logger.warning("Policy rejected %s %s: %s", name, version, decision.violated_rules)
            raise PolicyRejected(str(name), decision.violated_rules, decision.message)

        await self.summary.add(description)
        return PublishResult(name, version, description)

    async def verify_version(self, name: PackageName, version: Version) -> None:
        """Local duplicate check, then upstream tag check."""
        local_versions = self.summary.versions_of(name)
        if local_versions and version in local_versions:
            raise AlreadyRegistered(str(version))

        public_versions = await self.resolver.tags_for(name)
        if version not in public_versions:
            raise TagNotPushed(str(version))
