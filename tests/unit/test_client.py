"""
Unit tests for ObjectStoreClient.

Covers the client contract over the in-memory backend: lifecycle laws,
stream handling, error translation, retry, timeout, and cancellation.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
import io

import pytest

from portablob.backends import InMemoryBackend
from portablob.client import ClientOptions, ObjectStoreClient
from portablob.core.config_manager import PortablobConfig
from portablob.core.resilience import RetryPolicy
from portablob.exceptions import (
    ConflictError,
    ContainerNotFoundError,
    NotFoundError,
    ObjectNotFoundError,
    OperationTimeoutError,
    TransientError,
    ValidationError,
)
from portablob.models import PublicAccessLevel


class Sink(io.BytesIO):
    """BytesIO that remembers its content once closed."""

    content = None

    def close(self):
        if not self.closed:
            self.content = self.getvalue()
        super().close()


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose get_container fails a few times first."""

    def __init__(self, failures: int, error: Exception):
        super().__init__()
        self.failures = failures
        self.error = error
        self.calls = 0

    async def get_container(self, name):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return await super().get_container(name)


class SlowBackend(InMemoryBackend):
    async def get_container(self, name):
        await asyncio.sleep(10)
        return await super().get_container(name)


FAST_RETRY = RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0)


@pytest.fixture
def client():
    """Create a client over a fresh in-memory backend."""
    return ObjectStoreClient(InMemoryBackend(), ClientOptions(chunk_size=4, retry=FAST_RETRY))


class TestContainerLifecycle:
    """Container create / properties / metadata / delete."""

    @pytest.mark.asyncio
    async def test_create_then_properties(self, client):
        """A new container has no metadata and default public access."""
        container = await client.create_container("fresh")
        props = await client.get_properties("fresh")

        assert container.name == "fresh"
        assert props.public_access == PublicAccessLevel.NONE
        assert props.last_modified is not None
        assert await client.get_metadata("fresh") == {}

    @pytest.mark.asyncio
    async def test_create_with_public_access(self, client):
        await client.create_container("public", public_access="blob")
        props = await client.get_properties("public")
        assert props.public_access == PublicAccessLevel.BLOB

    @pytest.mark.asyncio
    async def test_create_conflict(self, client):
        await client.create_container("taken")
        with pytest.raises(ConflictError):
            await client.create_container("taken")

    @pytest.mark.asyncio
    async def test_create_invalid_name(self, client):
        with pytest.raises(ValidationError):
            await client.create_container("Not_Valid")

    @pytest.mark.asyncio
    async def test_create_invalid_metadata(self, client):
        with pytest.raises(ValidationError):
            await client.create_container("meta", metadata={"k": 1})
        assert await client.container_exists("meta") is False

    @pytest.mark.asyncio
    async def test_properties_of_missing_container(self, client):
        with pytest.raises(NotFoundError):
            await client.get_properties("absent")

    @pytest.mark.asyncio
    async def test_metadata_full_replace_law(self, client):
        """set M then get returns M; set M2 then get returns exactly M2."""
        await client.create_container("law")

        first = {"docType": "textDocuments", "category": "guidance"}
        await client.set_metadata("law", first)
        assert await client.get_metadata("law") == first

        second = {"owner": "ops"}
        await client.set_metadata("law", second)
        assert await client.get_metadata("law") == second

    @pytest.mark.asyncio
    async def test_metadata_is_copied(self, client):
        """Mutating the caller's dict after set does not leak into storage."""
        await client.create_container("copy")
        metadata = {"a": "1"}
        await client.set_metadata("copy", metadata)
        metadata["b"] = "2"

        stored = await client.get_metadata("copy")
        stored["c"] = "3"
        assert await client.get_metadata("copy") == {"a": "1"}

    @pytest.mark.asyncio
    async def test_set_metadata_rejects_non_string(self, client):
        await client.create_container("strict")
        with pytest.raises(ValidationError):
            await client.set_metadata("strict", {"nested": {"x": "y"}})

    @pytest.mark.asyncio
    async def test_set_metadata_missing_container(self, client):
        with pytest.raises(NotFoundError):
            await client.set_metadata("absent", {"a": "b"})

    @pytest.mark.asyncio
    async def test_accepts_container_model(self, client):
        container = await client.create_container("model")
        await client.set_metadata(container, {"k": "v"})
        assert await client.get_metadata(container) == {"k": "v"}

    @pytest.mark.asyncio
    async def test_delete_twice(self, client):
        """Second delete on the same name always raises NotFoundError."""
        await client.create_container("gone")
        await client.delete_container("gone")
        with pytest.raises(NotFoundError):
            await client.delete_container("gone")

    @pytest.mark.asyncio
    async def test_delete_never_created(self, client):
        with pytest.raises(NotFoundError):
            await client.delete_container("never")

    @pytest.mark.asyncio
    async def test_deleted_is_terminal(self, client):
        """Every operation on a deleted container fails with NotFoundError."""
        await client.create_container("terminal")
        await client.upload_object("terminal", "a", b"x")
        await client.delete_container("terminal")

        with pytest.raises(NotFoundError):
            await client.get_properties("terminal")
        with pytest.raises(NotFoundError):
            await client.get_metadata("terminal")
        with pytest.raises(NotFoundError):
            await client.set_metadata("terminal", {})
        with pytest.raises(NotFoundError):
            await client.upload_object("terminal", "b", b"y")
        with pytest.raises(NotFoundError):
            await client.read_object("terminal", "a")
        with pytest.raises(NotFoundError):
            await client.list_objects("terminal").names()


class TestUpload:
    """Upload semantics and stream handling."""

    @pytest.mark.asyncio
    async def test_round_trip(self, client):
        await client.create_container("rt")
        payload = bytes(range(256)) * 3
        entry = await client.upload_object("rt", "blob.bin", io.BytesIO(payload))

        assert entry.size == len(payload)
        assert await client.read_object("rt", "blob.bin") == payload

    @pytest.mark.asyncio
    async def test_round_trip_empty(self, client):
        await client.create_container("rt")
        await client.upload_object("rt", "empty.bin", io.BytesIO(b""))
        assert await client.read_object("rt", "empty.bin") == b""

    @pytest.mark.asyncio
    async def test_upload_bytes(self, client):
        await client.create_container("rt")
        await client.upload_object("rt", "raw", b"raw bytes")
        assert await client.read_object("rt", "raw") == b"raw bytes"

    @pytest.mark.asyncio
    async def test_overwrite(self, client):
        await client.create_container("ow")
        await client.upload_object("ow", "a", b"one")
        await client.upload_object("ow", "a", b"two")
        assert await client.read_object("ow", "a") == b"two"
        assert await client.list_objects("ow").names() == ["a"]

    @pytest.mark.asyncio
    async def test_source_closed_on_success(self, client):
        await client.create_container("close")
        source = io.BytesIO(b"payload")
        await client.upload_object("close", "a", source)
        assert source.closed

    @pytest.mark.asyncio
    async def test_source_closed_on_missing_container(self, client):
        source = io.BytesIO(b"payload")
        with pytest.raises(ContainerNotFoundError):
            await client.upload_object("absent", "a", source)
        assert source.closed

    @pytest.mark.asyncio
    async def test_source_closed_on_invalid_name(self, client):
        source = io.BytesIO(b"payload")
        with pytest.raises(ValidationError):
            await client.upload_object("ok", "bad/", source)
        assert source.closed

    @pytest.mark.asyncio
    async def test_text_stream_rejected(self, client):
        await client.create_container("text")
        source = io.StringIO("not bytes")
        with pytest.raises(ValidationError):
            await client.upload_object("text", "a", source)
        assert source.closed
        with pytest.raises(NotFoundError):
            await client.read_object("text", "a")

    @pytest.mark.asyncio
    async def test_invalid_source_type(self, client):
        await client.create_container("weird")
        with pytest.raises(ValidationError):
            await client.upload_object("weird", "a", 12345)

    @pytest.mark.asyncio
    async def test_content_type_guessed(self, client):
        await client.create_container("ct")
        entry = await client.upload_object("ct", "hello.txt", b"hi")
        assert entry.content_type == "text/plain"

        entry = await client.upload_object("ct", "noext", b"hi")
        assert entry.content_type == "application/octet-stream"

        entry = await client.upload_object("ct", "data.bin", b"hi", content_type="image/png")
        assert entry.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_source_read_error_becomes_transient(self, client):
        """A stream that fails midway surfaces as TransientError and stores nothing."""
        await client.create_container("partial")

        class Broken(io.BytesIO):
            def read(self, size=-1):
                if self.tell() >= 4:
                    raise ConnectionResetError("peer reset")
                return super().read(size)

        source = Broken(b"0123456789")
        with pytest.raises(TransientError):
            await client.upload_object("partial", "a", source)
        assert source.closed
        assert await client.list_objects("partial").names() == []

    @pytest.mark.asyncio
    async def test_cancelled_upload(self):
        """Cancelling an in-flight upload closes the source and stores nothing."""
        client = ObjectStoreClient(InMemoryBackend(), ClientOptions(chunk_size=1))
        await client.create_container("cancel")
        started = asyncio.Event()

        class Slow(io.BytesIO):
            def read(self, size=-1):
                started.set()
                return super().read(size)

        source = Slow(b"x" * 100000)
        task = asyncio.create_task(client.upload_object("cancel", "big", source))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert source.closed
        assert await client.list_objects("cancel").names() == []


class TestDownload:
    """Download semantics and sink handling."""

    @pytest.mark.asyncio
    async def test_cancelled_download_closes_sink(self):
        """Cancelling an in-flight download propagates and closes the sink."""
        client = ObjectStoreClient(InMemoryBackend(read_chunk_size=1))
        await client.create_container("cancel")
        await client.upload_object("cancel", "big", b"x" * 10000)
        started = asyncio.Event()

        class Watched(Sink):
            def write(self, data):
                started.set()
                return super().write(data)

        sink = Watched()
        task = asyncio.create_task(client.download_object("cancel", "big", sink))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert sink.closed
        assert 0 < len(sink.content) < 10000
        assert len(await client.read_object("cancel", "big")) == 10000

    @pytest.mark.asyncio
    async def test_download_into_sink(self, client):
        await client.create_container("dl")
        await client.upload_object("dl", "hello.txt", b"Hello, World!")

        sink = Sink()
        entry = await client.download_object("dl", "hello.txt", sink)

        assert sink.closed
        assert sink.content == b"Hello, World!"
        assert entry.size == 13

    @pytest.mark.asyncio
    async def test_download_to_file(self, client, tmp_path):
        await client.create_container("dl")
        await client.upload_object("dl", "a.bin", b"\x00\x01\x02")

        target = tmp_path / "a.bin"
        await client.download_object("dl", "a.bin", open(target, "wb"))
        assert target.read_bytes() == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_sink_closed_on_missing_object(self, client):
        await client.create_container("dl")
        sink = Sink()
        with pytest.raises(ObjectNotFoundError):
            await client.download_object("dl", "ghost", sink)
        assert sink.closed

    @pytest.mark.asyncio
    async def test_sink_closed_on_missing_container(self, client):
        sink = Sink()
        with pytest.raises(ContainerNotFoundError):
            await client.download_object("absent", "ghost", sink)
        assert sink.closed

    @pytest.mark.asyncio
    async def test_sink_write_error_becomes_transient(self, client):
        await client.create_container("dl")
        await client.upload_object("dl", "a", b"data")

        class Full(Sink):
            def write(self, data):
                raise OSError(28, "No space left on device")

        sink = Full()
        with pytest.raises(TransientError):
            await client.download_object("dl", "a", sink)
        assert sink.closed


class TestListing:
    """Object enumeration."""

    @pytest.mark.asyncio
    async def test_empty_container(self, client):
        await client.create_container("empty")
        assert [e async for e in client.list_objects("empty")] == []

    @pytest.mark.asyncio
    async def test_set_equality(self, client):
        await client.create_container("ab")
        await client.upload_object("ab", "a", b"1")
        await client.upload_object("ab", "b", b"2")
        assert set(await client.list_objects("ab").names()) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_pagination_is_transparent(self, client):
        await client.create_container("paged")
        names = [f"item-{i:02d}" for i in range(7)]
        for name in names:
            await client.upload_object("paged", name, name.encode())

        listing = client.list_objects("paged", page_size=2)
        entries = await listing.to_list()

        assert [e.name for e in entries] == names
        assert all(e.size == len(e.name) for e in entries)

    @pytest.mark.asyncio
    async def test_listing_is_restartable(self, client):
        await client.create_container("again")
        await client.upload_object("again", "a", b"1")

        listing = client.list_objects("again")
        assert await listing.names() == ["a"]

        await client.upload_object("again", "b", b"2")
        assert await listing.names() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_prefix(self, client):
        await client.create_container("pre")
        for name in ["logs/1", "logs/2", "data/1"]:
            await client.upload_object("pre", name, b"x")
        assert await client.list_objects("pre", prefix="logs/").names() == ["logs/1", "logs/2"]

    @pytest.mark.asyncio
    async def test_missing_container_raises_on_iteration(self, client):
        listing = client.list_objects("absent")
        with pytest.raises(NotFoundError):
            await listing.to_list()

    @pytest.mark.parametrize("page_size", [0, -1])
    def test_invalid_page_size(self, client, page_size):
        with pytest.raises(ValidationError):
            client.list_objects("ok", page_size=page_size)


class TestDeleteObject:
    """Single-object delete."""

    @pytest.mark.asyncio
    async def test_delete_object(self, client):
        await client.create_container("del")
        await client.upload_object("del", "a", b"1")
        await client.delete_object("del", "a")
        assert await client.list_objects("del").names() == []

        with pytest.raises(ObjectNotFoundError):
            await client.delete_object("del", "a")


class TestErrorTranslation:
    """Foreign exceptions never escape the client."""

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transient(self):
        backend = FlakyBackend(failures=10, error=ConnectionError("refused"))
        client = ObjectStoreClient(backend, ClientOptions(retry=RetryPolicy(max_attempts=1)))
        with pytest.raises(TransientError) as exc_info:
            await client.get_properties("any")
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_transient(self):
        backend = FlakyBackend(failures=10, error=RuntimeError("boom"))
        client = ObjectStoreClient(backend, ClientOptions(retry=RetryPolicy(max_attempts=1)))
        with pytest.raises(TransientError):
            await client.get_metadata("any")

    @pytest.mark.asyncio
    async def test_retry_recovers_from_transient(self):
        backend = FlakyBackend(failures=2, error=ConnectionError("flaky"))
        await backend.create_container("retry")
        client = ObjectStoreClient(backend, ClientOptions(retry=FAST_RETRY))

        props = await client.get_properties("retry")

        assert props.public_access == PublicAccessLevel.NONE
        assert backend.calls == 3

    @pytest.mark.asyncio
    async def test_retry_gives_up(self):
        backend = FlakyBackend(failures=5, error=ConnectionError("down"))
        client = ObjectStoreClient(backend, ClientOptions(retry=FAST_RETRY))
        with pytest.raises(TransientError):
            await client.get_properties("retry")
        assert backend.calls == 3

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self):
        backend = FlakyBackend(failures=0, error=ConnectionError("unused"))
        client = ObjectStoreClient(backend, ClientOptions(retry=FAST_RETRY))
        with pytest.raises(NotFoundError):
            await client.get_properties("absent")
        assert backend.calls == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = ObjectStoreClient(
            SlowBackend(),
            ClientOptions(timeout_seconds=0.01, retry=RetryPolicy(max_attempts=1)),
        )
        with pytest.raises(OperationTimeoutError) as exc_info:
            await client.get_properties("slow")
        assert isinstance(exc_info.value, TransientError)


class TestConcurrencyAndConfig:
    """Concurrent use and construction."""

    @pytest.mark.asyncio
    async def test_concurrent_containers(self, client):
        names = [f"c{i}" for i in range(8)]

        async def lifecycle(name):
            await client.create_container(name)
            await client.upload_object(name, "obj", name.encode())
            data = await client.read_object(name, "obj")
            await client.delete_container(name)
            return data

        results = await asyncio.gather(*[lifecycle(n) for n in names])
        assert results == [n.encode() for n in names]

    @pytest.mark.asyncio
    async def test_from_config_memory(self):
        config = PortablobConfig()
        client = ObjectStoreClient.from_config(config)
        assert isinstance(client.backend, InMemoryBackend)
        assert client.options.timeout_seconds == config.client.timeout_seconds
        assert client.options.retry.max_attempts == config.client.retry.max_attempts

    def test_from_config_malformed_azure_connection_string(self):
        config = PortablobConfig(backend={"type": "azure", "connection_string": "garbage"})
        with pytest.raises(ValidationError):
            ObjectStoreClient.from_config(config)

    @pytest.mark.asyncio
    async def test_context_manager_closes_backend(self):
        closed = []

        class Tracking(InMemoryBackend):
            async def close(self):
                closed.append(True)

        async with ObjectStoreClient(Tracking()) as client:
            await client.create_container("ctx")

        assert closed == [True]
