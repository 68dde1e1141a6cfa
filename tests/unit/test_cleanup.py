"""
Unit tests for ResourceScope.

Author: Ayodele Oladeji
Date: 2025
"""

import pytest

from portablob.backends import InMemoryBackend
from portablob.cleanup import ResourceScope
from portablob.client import ObjectStoreClient
from portablob.exceptions import CleanupError, TransientError


@pytest.fixture
def client():
    return ObjectStoreClient(InMemoryBackend())


class TestResourceScope:
    """Test release ordering and failure handling."""

    @pytest.mark.asyncio
    async def test_releases_in_reverse_order(self):
        order = []

        async with ResourceScope() as scope:
            for name in ["first", "second", "third"]:
                async def release(name=name):
                    order.append(name)
                scope.add_callback(name, release)
            assert scope.pending == ["first", "second", "third"]

        assert order == ["third", "second", "first"]
        assert scope.released == ["third", "second", "first"]
        assert scope.pending == []

    @pytest.mark.asyncio
    async def test_container_deleted_on_success(self, client):
        async with ResourceScope() as scope:
            container = await client.create_container("scoped")
            scope.add_container(client, container)

        assert await client.container_exists("scoped") is False
        assert scope.released == ["container:scoped"]

    @pytest.mark.asyncio
    async def test_container_deleted_when_body_raises(self, client):
        with pytest.raises(RuntimeError):
            async with ResourceScope() as scope:
                await client.create_container("boom")
                scope.add_container(client, "boom")
                raise RuntimeError("body failed")

        assert await client.container_exists("boom") is False

    @pytest.mark.asyncio
    async def test_already_deleted_counts_as_released(self, client):
        async with ResourceScope() as scope:
            await client.create_container("early")
            scope.add_container(client, "early")
            await client.delete_container("early")

        assert scope.failures == []
        assert scope.released == ["container:early"]

    @pytest.mark.asyncio
    async def test_local_file_removed(self, tmp_path):
        path = tmp_path / "local.txt"
        path.write_text("hello")

        async with ResourceScope() as scope:
            scope.add_path(path)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_missing_file_counts_as_released(self, tmp_path):
        async with ResourceScope() as scope:
            scope.add_path(tmp_path / "never-written.txt")

        assert scope.failures == []
        assert len(scope.released) == 1

    @pytest.mark.asyncio
    async def test_failure_raises_cleanup_error(self):
        async def broken():
            raise TransientError("service down")

        async def fine():
            pass

        with pytest.raises(CleanupError) as exc_info:
            async with ResourceScope() as scope:
                scope.add_callback("ok", fine)
                scope.add_callback("bad", broken)

        failures = exc_info.value.failures
        assert [f.resource for f in failures] == ["bad"]
        assert failures[0].error_type == "transient"
        assert scope.released == ["ok"]

    @pytest.mark.asyncio
    async def test_body_error_wins_over_release_failure(self):
        async def broken():
            raise PermissionError("locked")

        with pytest.raises(ValueError):
            async with ResourceScope() as scope:
                scope.add_callback("bad", broken)
                raise ValueError("body failed")

        assert len(scope.failures) == 1
        assert scope.failures[0].error_type == "PermissionError"

    @pytest.mark.asyncio
    async def test_all_releases_attempted_after_failure(self):
        released = []

        async def broken():
            raise OSError("io")

        async def track():
            released.append(True)

        scope = ResourceScope()
        scope.add_callback("a", track)
        scope.add_callback("b", broken)
        scope.add_callback("c", track)

        failures = await scope.release()

        assert [f.resource for f in failures] == ["b"]
        assert released == [True, True]

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self):
        calls = []

        async def track():
            calls.append(True)

        scope = ResourceScope()
        scope.add_callback("a", track)
        await scope.release()
        await scope.release()

        assert calls == [True]
