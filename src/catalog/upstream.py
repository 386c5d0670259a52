"""Upstream tag resolution.

A version may only be registered if the source-control authority has a tag
for it. Resolver failures are reported as UpstreamUnavailable so that an
outage is never mistaken for a missing tag.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Iterable, Optional, Protocol, Set

import aiohttp

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants

from .errors import UpstreamUnavailable
from .identifiers import PackageName, Version

logger = logging.getLogger(__name__)


class TagResolver(Protocol):
    """Anything that can list the version tags pushed for a package."""

    async def tags_for(self, name: PackageName) -> Set[Version]:
        ...


class StaticTagResolver:
    """Resolver backed by a fixed mapping, for offline use and tests."""

    def __init__(self, tags: Optional[Dict[str, Iterable[str]]] = None):
        self._tags: Dict[str, Set[Version]] = {}
        for name, versions in (tags or {}).items():
            for raw in versions:
                self.add(name, raw)

    def add(self, name: str, version: str) -> None:
        """Record a pushed tag."""
        self._tags.setdefault(name, set()).add(Version.parse(version))

    async def tags_for(self, name: PackageName) -> Set[Version]:
        return set(self._tags.get(str(name), set()))


class GitHubTagResolver:
    """Lists version tags of ``github.com/<author>/<project>``.

    Tag names that are not ``N.N.N`` versions are ignored.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = Constants.REQUEST_TIMEOUT,
    ):
        """Initialize the resolver.

        Args:
            base_url: GitHub API base (defaults to Constants.GITHUB_API_BASE).
            token: API token (defaults to the GITHUB_TOKEN env var).
            timeout: Total request timeout in seconds.
        """
        self.base_url = (base_url or Constants.GITHUB_API_BASE).rstrip("/")
        self.token = token or os.environ.get(Constants.ENV_GITHUB_TOKEN)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "pkgcatalog/1.0",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def tags_for(self, name: PackageName) -> Set[Version]:
        """Fetch every version tag for ``name``.

        Returns:
            Set of tag versions; empty if the repository does not exist.

        Raises:
            UpstreamUnavailable: On network errors, timeouts, rate limiting,
                server errors or unparseable responses.
        """
        if self._session is None:
            await self.start()
        assert self._session is not None

        url: Optional[str] = (
            f"{self.base_url}/repos/{name.author}/{name.project}/tags"
            f"?per_page={Constants.REPO_API_PER_PAGE}"
        )
        tags: Set[Version] = set()
        pages = 0

        while url and pages < Constants.REPO_API_MAX_PAGES:
            pages += 1
            page, url = await self._fetch_page(url, name)
            if page is None:
                return set()
            for item in page:
                raw = item.get("name") if isinstance(item, dict) else None
                version = Version.from_string(raw) if isinstance(raw, str) else None
                if version is not None:
                    tags.add(version)

        if url:
            # A truncated listing must not be read as a missing tag.
            logger.warning(
                "Tag listing for %s exceeds %d pages; giving up",
                name, Constants.REPO_API_MAX_PAGES,
            )
            raise UpstreamUnavailable(
                f"Tag listing for {name} exceeds {Constants.REPO_API_MAX_PAGES} pages.",
                pages=pages,
            )

        logger.debug("Resolved %d version tags for %s", len(tags), name)
        return tags

    async def _fetch_page(self, url: str, name: PackageName):
        """Fetch one page; returns (items or None for 404, next url)."""
        assert self._session is not None
        target = safe_url(url)
        with Timer() as t:
            try:
                async with self._session.get(url, headers=self._get_headers()) as response:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "Upstream response",
                            extra=extra_context(
                                event="http_response",
                                component="tag_resolver",
                                status_code=response.status,
                                duration_ms=t.duration_ms(),
                                target=target,
                            ),
                        )
                    if response.status == 404:
                        logger.info("No upstream repository for %s", name)
                        return None, None
                    if response.status != 200:
                        raise UpstreamUnavailable(
                            f"GitHub responded with HTTP {response.status} while "
                            f"listing tags for {name}.",
                            upstream_status=response.status,
                        )
                    data = await response.json(content_type=None)
                    next_link = response.links.get("next")
            except asyncio.TimeoutError as exc:
                logger.error("Tag lookup for %s timed out: %s", name, target)
                raise UpstreamUnavailable(
                    f"Timed out listing tags for {name}; try again later."
                ) from exc
            except (aiohttp.ClientError, ValueError) as exc:
                logger.error("Tag lookup for %s failed: %s", name, exc)
                raise UpstreamUnavailable(
                    f"Could not list tags for {name}: {exc}"
                ) from exc

        if not isinstance(data, list):
            raise UpstreamUnavailable(f"Unexpected tag listing format for {name}.")
        next_url = str(next_link["url"]) if next_link and "url" in next_link else None
        return data, next_url

    async def __aenter__(self) -> "GitHubTagResolver":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
