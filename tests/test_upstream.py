"""Tests for upstream tag resolution."""

import asyncio
from unittest.mock import patch

import aiohttp.test_utils
import pytest
from aiohttp import web

from catalog.errors import UpstreamUnavailable
from catalog.identifiers import PackageName, Version
from catalog.upstream import GitHubTagResolver, StaticTagResolver
from constants import Constants

NAME = PackageName.parse("author/project")


def _fake_github(pages=None, status=200, payload=None, seen=None):
    """aiohttp app standing in for the GitHub tags endpoint."""

    async def _tags(request):
        if seen is not None:
            seen.append(request)
        if status != 200:
            return web.json_response({"message": "nope"}, status=status)
        if payload is not None:
            return web.json_response(payload)
        page = int(request.query.get("page", "1"))
        headers = {}
        if page < len(pages):
            next_url = request.url.with_query(per_page=100, page=page + 1)
            headers["Link"] = f'<{next_url}>; rel="next"'
        body = [{"name": tag} for tag in pages[page - 1]]
        return web.json_response(body, headers=headers)

    app = web.Application()
    app.router.add_get("/repos/{author}/{project}/tags", _tags)
    return app


def _resolve(app, token=None):
    async def _run():
        async with aiohttp.test_utils.TestServer(app) as ts:
            base = f"http://{ts.host}:{ts.port}"
            async with GitHubTagResolver(base_url=base, token=token, timeout=5) as resolver:
                return await resolver.tags_for(NAME)

    return asyncio.run(_run())


class TestGitHubTagResolver:
    """Tests for GitHubTagResolver."""

    def test_single_page(self):
        """Version tags are parsed and other tags ignored."""
        app = _fake_github(pages=[["1.0.0", "v2.0.0", "nightly", "1.1.0"]])
        assert _resolve(app) == {Version(1, 0, 0), Version(1, 1, 0)}

    def test_follows_pagination(self):
        """Pages linked with rel=next are all fetched."""
        app = _fake_github(pages=[["1.0.0"], ["1.1.0"], ["2.0.0"]])
        assert _resolve(app) == {Version(1, 0, 0), Version(1, 1, 0), Version(2, 0, 0)}

    def test_page_cap_is_unavailable(self):
        """A listing cut off at the page cap is not treated as complete."""
        app = _fake_github(pages=[["1.0.0"], ["1.1.0"], ["2.0.0"]])
        with patch.object(Constants, "REPO_API_MAX_PAGES", 2):
            with pytest.raises(UpstreamUnavailable) as excinfo:
                _resolve(app)
        assert excinfo.value.details["pages"] == 2

    def test_missing_repository_is_empty(self):
        """A 404 from upstream means there are no tags."""
        assert _resolve(_fake_github(status=404)) == set()

    @pytest.mark.parametrize("status", [403, 429, 500, 502])
    def test_upstream_failure(self, status):
        """Rate limits and server errors are reported as unavailable."""
        with pytest.raises(UpstreamUnavailable) as excinfo:
            _resolve(_fake_github(status=status))
        assert excinfo.value.status == 503
        assert excinfo.value.retryable is True
        assert excinfo.value.details["upstream_status"] == status

    def test_unexpected_payload(self):
        """A non-list body is unavailable, not an empty tag set."""
        with pytest.raises(UpstreamUnavailable):
            _resolve(_fake_github(payload={"tags": []}))

    def test_connection_refused(self):
        """Network errors are reported as unavailable."""

        async def _run():
            # Nothing listens on the port once the server has shut down
            async with aiohttp.test_utils.TestServer(web.Application()) as ts:
                base = f"http://{ts.host}:{ts.port}"
            async with GitHubTagResolver(base_url=base, timeout=5) as resolver:
                return await resolver.tags_for(NAME)

        with pytest.raises(UpstreamUnavailable):
            asyncio.run(_run())

    def test_token_sent_as_bearer(self):
        """A configured token is sent in the Authorization header."""
        seen = []
        _resolve(_fake_github(pages=[["1.0.0"]], seen=seen), token="secret")
        assert seen[0].headers["Authorization"] == "Bearer secret"

    def test_no_token_no_authorization(self, monkeypatch):
        """Without a token no Authorization header is sent."""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        seen = []
        _resolve(_fake_github(pages=[["1.0.0"]], seen=seen))
        assert "Authorization" not in seen[0].headers


class TestStaticTagResolver:
    """Tests for StaticTagResolver."""

    def test_tags_for(self):
        """Configured tags are returned; unknown packages have none."""
        resolver = StaticTagResolver({"author/project": ["1.0.0", "1.2.0"]})
        resolver.add("author/project", "2.0.0")
        tags = asyncio.run(resolver.tags_for(NAME))
        assert tags == {Version(1, 0, 0), Version(1, 2, 0), Version(2, 0, 0)}
        assert asyncio.run(resolver.tags_for(PackageName.parse("other/pkg"))) == set()
