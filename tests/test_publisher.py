"""Tests for publish orchestration."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from catalog.errors import (
    AlreadyRegistered,
    InvalidParameter,
    MalformedDescription,
    PolicyRejected,
    TagNotPushed,
    UploadRejected,
    UpstreamUnavailable,
)
from catalog.identifiers import PackageName, Version
from catalog.policy import PublishPolicy
from catalog.publisher import KeyedLock, Publisher
from catalog.store import PackageStore
from catalog.summary import SummaryIndex
from catalog.upload import StagedUpload
from catalog.upstream import StaticTagResolver

NAME = PackageName.parse("author/project")


def _staged(name="author/project", version="1.0.0", native=False):
    description = json.dumps({
        "name": name,
        "version": version,
        "summary": "Test package",
        "native-modules": native,
    }).encode()
    return StagedUpload({"description": description, "documentation": b'[{"name": "Main"}]'})


def _publisher(tmp_path, tags=("1.0.0",), policy=None, resolver=None):
    store = PackageStore(tmp_path / "packages")
    summary = SummaryIndex(tmp_path / "data" / "summary.json")
    resolver = resolver or StaticTagResolver({"author/project": list(tags)})
    return Publisher(store, summary, resolver, policy=policy)


def _publish(publisher, staged, version="1.0.0"):
    with patch("catalog.publisher.accept_upload", AsyncMock(return_value=staged)) as upload:
        result = asyncio.run(publisher.publish("author/project", version, None))
    return result, upload


class TestPublisher:
    """Tests for Publisher.publish."""

    def test_successful_publish(self, tmp_path):
        """A tagged, unregistered version with valid uploads is registered."""
        publisher = _publisher(tmp_path)
        result, upload = _publish(publisher, _staged())

        assert result.to_dict() == {"name": "author/project", "version": "1.0.0"}
        assert result.description.summary == "Test package"
        upload.assert_awaited_once()
        assert publisher.summary.versions_of(NAME) == [Version(1, 0, 0)]
        docs = publisher.store.documentation_path(NAME, Version(1, 0, 0))
        assert docs.read_bytes() == b'[{"name": "Main"}]'
        assert (tmp_path / "data" / "summary.json").is_file()

    def test_invalid_parameters_checked_first(self, tmp_path):
        """Bad names fail before any other gate runs."""
        publisher = _publisher(tmp_path)
        with patch("catalog.publisher.accept_upload", AsyncMock()) as upload:
            with pytest.raises(InvalidParameter) as excinfo:
                asyncio.run(publisher.publish("../etc", "1.0.0", None))
        assert excinfo.value.param == "name"
        upload.assert_not_awaited()
        assert not (tmp_path / "packages").exists()

    def test_already_registered(self, tmp_path):
        """A second publish of the same version is rejected before upload."""
        publisher = _publisher(tmp_path)
        _publish(publisher, _staged())

        with pytest.raises(AlreadyRegistered) as excinfo:
            _publish(publisher, _staged())
        assert excinfo.value.message == "Version 1.0.0 has already been registered."

    def test_already_registered_skips_upload(self, tmp_path):
        """The duplicate check runs before the upload gate."""
        publisher = _publisher(tmp_path)
        _publish(publisher, _staged())
        with patch("catalog.publisher.accept_upload", AsyncMock()) as upload:
            with pytest.raises(AlreadyRegistered):
                asyncio.run(publisher.publish("author/project", "1.0.0", None))
        upload.assert_not_awaited()

    def test_tag_not_pushed_leaves_no_directory(self, tmp_path):
        """Without an upstream tag nothing is created on disk."""
        publisher = _publisher(tmp_path, tags=())
        with pytest.raises(TagNotPushed) as excinfo:
            _publish(publisher, _staged())
        assert excinfo.value.message == "The tag 1.0.0 has not been pushed to GitHub."
        assert not publisher.store.exists(NAME, Version(1, 0, 0))

    def test_upstream_unavailable_propagates(self, tmp_path):
        """Resolver outages are not reported as a missing tag."""
        resolver = StaticTagResolver()
        resolver.tags_for = AsyncMock(side_effect=UpstreamUnavailable("down"))
        publisher = _publisher(tmp_path, resolver=resolver)
        with pytest.raises(UpstreamUnavailable):
            _publish(publisher, _staged())
        assert not publisher.store.exists(NAME, Version(1, 0, 0))

    def test_upload_rejected_does_not_block_retry(self, tmp_path):
        """A rejected upload leaves the version publishable."""
        publisher = _publisher(tmp_path)
        rejected = AsyncMock(side_effect=UploadRejected(["bad"], missing_files=True))
        with patch("catalog.publisher.accept_upload", rejected):
            with pytest.raises(UploadRejected):
                asyncio.run(publisher.publish("author/project", "1.0.0", None))

        assert publisher.store.exists(NAME, Version(1, 0, 0))
        assert publisher.summary.versions_of(NAME) is None

        result, _ = _publish(publisher, _staged())
        assert str(result.version) == "1.0.0"

    def test_description_mismatch(self, tmp_path):
        """A description for another package is malformed."""
        publisher = _publisher(tmp_path)
        with pytest.raises(MalformedDescription):
            _publish(publisher, _staged(name="someone/else"))
        assert publisher.summary.versions_of(NAME) is None

    def test_unparseable_description(self, tmp_path):
        """Non-JSON description bytes are malformed."""
        publisher = _publisher(tmp_path)
        staged = StagedUpload({"description": b"not json", "documentation": b"[]"})
        with pytest.raises(MalformedDescription):
            _publish(publisher, staged)
        assert publisher.summary.versions_of(NAME) is None

    def test_policy_rejected(self, tmp_path):
        """Native packages are held for review when the native rule is on."""
        policy = PublishPolicy({"rules": [{"type": "native"}]})
        publisher = _publisher(tmp_path, policy=policy)
        with pytest.raises(PolicyRejected) as excinfo:
            _publish(publisher, _staged(native=True))
        assert "Native review for author/project" in excinfo.value.message
        assert publisher.summary.versions_of(NAME) is None

    def test_concurrent_same_version_succeeds_once(self, tmp_path):
        """Two simultaneous publishes of one version register it once."""
        publisher = _publisher(tmp_path)

        async def _run():
            return await asyncio.gather(
                publisher.publish("author/project", "1.0.0", None),
                publisher.publish("author/project", "1.0.0", None),
                return_exceptions=True,
            )

        with patch("catalog.publisher.accept_upload", AsyncMock(return_value=_staged())):
            results = asyncio.run(_run())

        assert sum(1 for r in results if isinstance(r, AlreadyRegistered)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert publisher.summary.versions_of(NAME) == [Version(1, 0, 0)]

    def test_concurrent_distinct_versions(self, tmp_path):
        """Different versions of one package both register."""
        publisher = _publisher(tmp_path, tags=("1.0.0", "1.1.0"))

        # The reader argument is passed through untouched; use it to pick the version.
        async def _upload(reader, policy):
            return _staged(version=reader)

        async def _run():
            await asyncio.gather(
                publisher.publish("author/project", "1.0.0", "1.0.0"),
                publisher.publish("author/project", "1.1.0", "1.1.0"),
            )

        with patch("catalog.publisher.accept_upload", _upload):
            asyncio.run(_run())

        assert publisher.summary.versions_of(NAME) == [Version(1, 0, 0), Version(1, 1, 0)]

    def test_policy_rejected_not_registered_after_restart(self, tmp_path):
        """A rebuilt index does not resurrect a policy-rejected version."""
        policy = PublishPolicy({"rules": [{"type": "native"}]})
        publisher = _publisher(tmp_path, policy=policy)
        with pytest.raises(PolicyRejected):
            _publish(publisher, _staged(native=True))

        restarted = _publisher(tmp_path, policy=policy)
        restarted.summary.rebuild(restarted.store, policy)
        assert restarted.summary.versions_of(NAME) is None
        with pytest.raises(PolicyRejected):
            _publish(restarted, _staged(native=True))

    def test_foreign_description_not_registered_after_restart(self, tmp_path):
        """A rebuilt index does not resurrect a mismatched description."""
        publisher = _publisher(tmp_path)
        with pytest.raises(MalformedDescription):
            _publish(publisher, _staged(name="someone/else"))

        restarted = _publisher(tmp_path)
        restarted.summary.rebuild(restarted.store)
        assert restarted.summary.versions_of(NAME) is None
        result, _ = _publish(restarted, _staged())
        assert str(result.version) == "1.0.0"

    def test_cancelled_upload_commits_nothing(self, tmp_path):
        """A client disconnect during the upload leaves no artifacts behind."""
        publisher = _publisher(tmp_path)

        async def _run():
            entered = asyncio.Event()

            async def _stalled_upload(reader, policy):
                entered.set()
                await asyncio.Event().wait()

            with patch("catalog.publisher.accept_upload", _stalled_upload):
                task = asyncio.create_task(publisher.publish("author/project", "1.0.0", None))
                await entered.wait()
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        asyncio.run(_run())

        assert not publisher.store.description_path(NAME, Version(1, 0, 0)).exists()
        assert not publisher.store.documentation_path(NAME, Version(1, 0, 0)).exists()
        assert publisher.summary.versions_of(NAME) is None
        assert len(publisher._locks) == 0

    def test_locks_released(self, tmp_path):
        """No per-version lock outlives its publish."""
        publisher = _publisher(tmp_path, tags=())
        with pytest.raises(TagNotPushed):
            _publish(publisher, _staged())
        assert len(publisher._locks) == 0


class TestKeyedLock:
    """Tests for KeyedLock."""

    def test_serializes_same_key(self):
        """Holders of one key never overlap."""
        locks = KeyedLock()
        events = []

        async def _worker(tag):
            async with locks.hold("k"):
                events.append(f"{tag}-in")
                await asyncio.sleep(0)
                events.append(f"{tag}-out")

        async def _run():
            await asyncio.gather(_worker("a"), _worker("b"))

        asyncio.run(_run())
        assert events == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    def test_distinct_keys_do_not_block(self):
        """Different keys can be held at once."""
        locks = KeyedLock()

        async def _run():
            async with locks.hold("a"):
                async with locks.hold("b"):
                    return len(locks)

        assert asyncio.run(_run()) == 2
        assert len(locks) == 0
