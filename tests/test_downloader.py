"""Tests for multi-source download orchestration."""

import asyncio
import hashlib
from collections import Counter
from unittest.mock import AsyncMock, patch

import pytest

from client.downloader import ChunkAssignment, DownloadOrchestrator, assign_chunks
from client.peer_client import PeerClient
from common.chunk_storage import ChunkManifest, ChunkStore
from common.checksum_validator import compute_checksum
from common.exceptions import (
    ConnectionFailureError,
    FileNotFoundInCatalogError,
    IntegrityFailureError,
)
from common.protocol import chunk_response
from node.dispatcher import ConnectionDispatcher


class CountingDispatcher(ConnectionDispatcher):
    """Records the id of every chunk it serves."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.served = []

    async def _handle_chunk_request(self, message):
        self.served.append(message.payload.chunk_id)
        return await super()._handle_chunk_request(message)


class RewritingDispatcher(ConnectionDispatcher):
    """Serves wrong bytes for chunk_0 together with their correct hash."""

    async def _handle_chunk_request(self, message):
        response = await super()._handle_chunk_request(message)
        payload = response.payload
        if payload.chunk_id != "chunk_0":
            return response
        data = b"\x00" * len(payload.data)
        return chunk_response(payload.file_hash, payload.chunk_id, data, compute_checksum(data))


class TamperingDispatcher(ConnectionDispatcher):
    """Alters the first byte of chunk_2 after its hash was computed."""

    async def _handle_chunk_request(self, message):
        response = await super()._handle_chunk_request(message)
        payload = response.payload
        if payload.chunk_id != "chunk_2":
            return response
        return chunk_response(payload.file_hash, payload.chunk_id, b"X" + payload.data[1:], payload.hash)


@pytest.fixture
def orchestrator_factory(tmp_path):
    def _make(**kwargs):
        return DownloadOrchestrator(
            chunk_store=ChunkStore(tmp_path / "client_chunks"),
            download_dir=tmp_path / "downloads",
            **kwargs
        )

    return _make


class TestAssignChunks:
    """Tests for round-robin chunk assignment."""

    def test_round_robin(self):
        chunks = [f"chunk_{i}" for i in range(7)]

        assignments = assign_chunks(chunks, ["a:1", "b:2", "c:3"])

        assert [a.server for a in assignments] == ["a:1", "b:2", "c:3", "a:1", "b:2", "c:3", "a:1"]
        assert assignments[4] == ChunkAssignment(index=4, chunk_id="chunk_4", server="b:2")

    def test_single_server_gets_everything(self):
        assignments = assign_chunks(["chunk_0", "chunk_1"], ["a:1"])

        assert {a.server for a in assignments} == {"a:1"}

    def test_no_chunks(self):
        assert assign_chunks([], ["a:1"]) == []

    def test_no_servers(self):
        with pytest.raises(ValueError):
            assign_chunks(["chunk_0"], [])


class TestDownload:
    """Tests for DownloadOrchestrator.download."""

    @pytest.mark.asyncio
    async def test_single_node_download(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory
    ):
        path = write_random_file(shared_dir, "movie.bin", 4096 * 3 + 7)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        orchestrator = orchestrator_factory()

        async with make_node(shared_dir) as server:
            output = await orchestrator.download(content_hash, "copy.bin", [node_address(server)])

        assert output.name == "copy.bin"
        assert output.read_bytes() == path.read_bytes()

    @pytest.mark.asyncio
    async def test_chunks_spread_round_robin_over_nodes(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory
    ):
        path = write_random_file(shared_dir, "big.bin", 4096 * 6 + 100)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        orchestrator = orchestrator_factory(worker_count=3)

        async with make_node(shared_dir, dispatcher_cls=CountingDispatcher) as first, \
                make_node(shared_dir, dispatcher_cls=CountingDispatcher) as second, \
                make_node(shared_dir, dispatcher_cls=CountingDispatcher) as third:
            servers = [node_address(first), node_address(second), node_address(third)]
            output = await orchestrator.download(content_hash, "big.bin", servers)

        assert output.read_bytes() == path.read_bytes()
        assert sorted(first.dispatcher.served) == ["chunk_0", "chunk_3", "chunk_6"]
        assert sorted(second.dispatcher.served) == ["chunk_1", "chunk_4"]
        assert sorted(third.dispatcher.served) == ["chunk_2", "chunk_5"]

    @pytest.mark.asyncio
    async def test_more_workers_than_chunks(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory
    ):
        path = write_random_file(shared_dir, "small.bin", 4096 * 2 + 1)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        orchestrator = orchestrator_factory(worker_count=16)

        async with make_node(shared_dir, dispatcher_cls=CountingDispatcher) as server:
            output = await orchestrator.download(content_hash, "small.bin", [node_address(server)])

        assert output.read_bytes() == path.read_bytes()
        assert Counter(server.dispatcher.served) == {"chunk_0": 1, "chunk_1": 1, "chunk_2": 1}

    @pytest.mark.asyncio
    async def test_empty_file(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory
    ):
        write_random_file(shared_dir, "empty.txt", 0)
        orchestrator = orchestrator_factory()

        async with make_node(shared_dir) as server:
            output = await orchestrator.download(
                hashlib.sha256(b"").hexdigest(), "empty.txt", [node_address(server)]
            )

        assert output.read_bytes() == b""

    @pytest.mark.asyncio
    async def test_hash_is_case_insensitive(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory
    ):
        path = write_random_file(shared_dir, "a.bin", 50)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest().upper()

        async with make_node(shared_dir) as server:
            output = await orchestrator_factory().download(content_hash, "a.bin", [node_address(server)])

        assert output.read_bytes() == path.read_bytes()

    @pytest.mark.asyncio
    async def test_unknown_hash(self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory):
        write_random_file(shared_dir, "a.bin", 50)

        async with make_node(shared_dir) as server:
            with pytest.raises(FileNotFoundInCatalogError):
                await orchestrator_factory().download("ab" * 32, "a.bin", [node_address(server)])

    @pytest.mark.asyncio
    async def test_reconstructed_file_failing_verification_is_removed(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory, tmp_path
    ):
        path = write_random_file(shared_dir, "a.bin", 4096 * 2)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()

        async with make_node(shared_dir, dispatcher_cls=RewritingDispatcher) as server:
            with pytest.raises(IntegrityFailureError):
                await orchestrator_factory().download(content_hash, "a.bin", [node_address(server)])

        assert list((tmp_path / "downloads").iterdir()) == []

    @pytest.mark.asyncio
    async def test_seed_unreachable(self, unused_tcp_port, orchestrator_factory):
        with pytest.raises(ConnectionFailureError):
            await orchestrator_factory().download("ab" * 32, "a.bin", [f"127.0.0.1:{unused_tcp_port}"])

    @pytest.mark.asyncio
    async def test_chunk_node_unreachable_fails_download(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory,
        unused_tcp_port, tmp_path
    ):
        path = write_random_file(shared_dir, "a.bin", 4096 * 4)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()

        async with make_node(shared_dir) as server:
            servers = [node_address(server), f"127.0.0.1:{unused_tcp_port}"]
            with pytest.raises(ConnectionFailureError):
                await orchestrator_factory(worker_count=2).download(content_hash, "a.bin", servers)

        assert not (tmp_path / "downloads" / "a.bin").exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_hash,file_name,servers", [
        ("ab" * 32, "a.bin", []),
        ("not-a-hash", "a.bin", ["127.0.0.1:1"]),
        ("ab" * 32, "", ["127.0.0.1:1"]),
    ])
    async def test_invalid_arguments(self, orchestrator_factory, content_hash, file_name, servers):
        with pytest.raises(ValueError):
            await orchestrator_factory().download(content_hash, file_name, servers)

    def test_worker_count_must_be_positive(self, orchestrator_factory):
        with pytest.raises(ValueError):
            orchestrator_factory(worker_count=0)

    @pytest.mark.asyncio
    async def test_chunk_altered_after_hashing_fails_download(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory, tmp_path
    ):
        path = write_random_file(shared_dir, "a.bin", 4096 * 4 + 10)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()

        async with make_node(shared_dir, dispatcher_cls=TamperingDispatcher) as server:
            with pytest.raises(IntegrityFailureError, match="chunk_2"):
                await orchestrator_factory(worker_count=2).download(
                    content_hash, "a.bin", [node_address(server)]
                )

        downloads = tmp_path / "downloads"
        assert not downloads.exists() or list(downloads.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_verification_keeps_existing_file(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory, tmp_path
    ):
        path = write_random_file(shared_dir, "a.bin", 4096 * 2)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        existing = tmp_path / "downloads" / "a.bin"
        existing.parent.mkdir()
        existing.write_bytes(b"previous download")

        async with make_node(shared_dir, dispatcher_cls=RewritingDispatcher) as server:
            with pytest.raises(IntegrityFailureError):
                await orchestrator_factory().download(content_hash, "a.bin", [node_address(server)])

        assert existing.read_bytes() == b"previous download"
        assert list(existing.parent.iterdir()) == [existing]

    @pytest.mark.asyncio
    async def test_output_name_survives_manifest_rewrite(
        self, shared_dir, make_node, node_address, write_random_file, orchestrator_factory, tmp_path
    ):
        path = write_random_file(shared_dir, "hosted.bin", 4096 + 1)
        content_hash = hashlib.sha256(path.read_bytes()).hexdigest()
        orchestrator = orchestrator_factory()
        store = orchestrator.chunk_store
        original_write_manifest = store.write_manifest

        def write_then_resplit(manifest):
            # A local node sharing the store re-splits the same file right after
            result = original_write_manifest(manifest)
            original_write_manifest(ChunkManifest(
                name="hosted.bin", size=manifest.size, hash=manifest.hash, chunks=manifest.chunks
            ))
            return result

        async with make_node(shared_dir) as server:
            with patch.object(store, "write_manifest", side_effect=write_then_resplit):
                output = await orchestrator.download(content_hash, "wanted.bin", [node_address(server)])

        assert output == tmp_path / "downloads" / "wanted.bin"
        assert output.read_bytes() == path.read_bytes()
        assert not (tmp_path / "downloads" / "hosted.bin").exists()

    @pytest.mark.asyncio
    async def test_earliest_failure_is_raised(self, orchestrator_factory):
        async def fake_request_chunk(peer, file_hash, chunk_id):
            if chunk_id == "chunk_0":
                await asyncio.sleep(0.2)
                raise ConnectionFailureError("late failure")
            raise IntegrityFailureError("early failure")

        assignments = assign_chunks(["chunk_0", "chunk_1"], ["a:1"])
        with patch.object(PeerClient, "connect", new=AsyncMock()), \
                patch.object(PeerClient, "request_chunk", new=fake_request_chunk):
            with pytest.raises(IntegrityFailureError, match="early failure"):
                await orchestrator_factory(worker_count=2)._fetch_all("ab" * 32, assignments)
