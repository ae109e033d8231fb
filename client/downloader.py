"""Multi-source chunk download orchestration."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from common.chunk_storage import ChunkManifest, ChunkStore, validate_file_hash
from common.constants import DEFAULT_WORKER_COUNT
from common.exceptions import FileNotFoundInCatalogError
from common.protocol import FileEntry
from client.peer_client import PeerClient
from node.catalog import find_entry


@dataclass(frozen=True)
class ChunkAssignment:
    """One unit of download work: a chunk and the node it is fetched from."""
    index: int
    chunk_id: str
    server: str


def assign_chunks(chunks: Sequence[str], servers: Sequence[str]) -> List[ChunkAssignment]:
    """
    Spread chunks across servers round-robin.

    Chunk ``i`` is always fetched from ``servers[i % len(servers)]``.

    Raises:
        ValueError: If no servers are given
    """
    if not servers:
        raise ValueError("At least one server is required")
    return [
        ChunkAssignment(index=i, chunk_id=chunk_id, server=servers[i % len(servers)])
        for i, chunk_id in enumerate(chunks)
    ]


class DownloadOrchestrator:
    """
    Downloads a file by content hash from one or more nodes.

    The catalog is read from the first node only; chunks are then spread
    round-robin over every given node and pulled by a bounded pool of workers
    sharing one queue. Every chunk is verified and stored as soon as it
    arrives. The first failure fails the whole download; nothing is retried.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        download_dir: Union[str, Path],
        worker_count: int = DEFAULT_WORKER_COUNT,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            chunk_store: Local store receiving verified chunks
            download_dir: Directory receiving reconstructed files
            worker_count: Size of the fetch worker pool
            timeout: Optional seconds to wait for each reply (None waits forever)
            logger: Logger receiving download events (defaults to the module logger)
        """
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.chunk_store = chunk_store
        self.download_dir = Path(download_dir)
        self.worker_count = worker_count
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def download(self, content_hash: str, file_name: str, servers: Sequence[str]) -> Path:
        """
        Fetch, verify and reconstruct a file.

        Args:
            content_hash: SHA-256 of the wanted file
            file_name: Name of the reconstructed file in the download directory
            servers: Node addresses; the first one is the catalog seed

        Returns:
            Path of the reconstructed file

        Raises:
            ValueError: If arguments are invalid
            FileNotFoundInCatalogError: If the seed does not host the hash
            ConnectionFailureError: If a node cannot be reached or drops the connection
            IntegrityFailureError: If a chunk or the final file fails verification
        """
        servers = list(servers)
        if not servers:
            raise ValueError("At least one server is required")
        content_hash = validate_file_hash(content_hash.lower())
        output_name = Path(file_name).name
        if not output_name:
            raise ValueError(f"Invalid output file name: {file_name!r}")

        entry = await self._discover(content_hash, servers[0])
        self.logger.info(
            f"File {entry.name} ({content_hash}) has {len(entry.chunks)} chunks, "
            f"downloading from {len(servers)} node(s)"
        )

        assignments = assign_chunks(entry.chunks, servers)
        await self._fetch_all(content_hash, assignments)

        return await asyncio.to_thread(self._reconstruct, entry, output_name)

    async def _discover(self, content_hash: str, seed: str) -> FileEntry:
        async with PeerClient(seed, timeout=self.timeout) as peer:
            catalog = await peer.request_catalog()

        entry = find_entry(catalog, content_hash)
        if entry is None:
            raise FileNotFoundInCatalogError(f"File {content_hash} not found on {seed}")
        return entry

    async def _fetch_all(self, content_hash: str, assignments: List[ChunkAssignment]) -> None:
        """Run the worker pool over every assignment and re-raise the earliest failure."""
        if not assignments:
            return

        queue: asyncio.Queue = asyncio.Queue()
        for assignment in assignments:
            queue.put_nowait(assignment)

        failed = asyncio.Event()
        failures: List[BaseException] = []
        worker_total = min(self.worker_count, len(assignments))
        results = await asyncio.gather(
            *(
                self._worker(worker_id, content_hash, queue, failed, failures)
                for worker_id in range(worker_total)
            ),
            return_exceptions=True,
        )
        failures.extend(
            result for result in results
            if isinstance(result, BaseException) and result not in failures
        )

        for error in failures:
            self.logger.error(f"Error during chunk download: {error}")
        if failures:
            raise failures[0]

    async def _worker(
        self,
        worker_id: int,
        content_hash: str,
        queue: asyncio.Queue,
        failed: asyncio.Event,
        failures: List[BaseException]
    ) -> int:
        """
        Pull assignments until the queue is empty or another worker failed.

        A failure is appended to ``failures`` in the order it happened and
        signalled through ``failed`` before it is raised.

        Each worker keeps one connection per node it has been assigned work on.

        Returns:
            Number of chunks this worker stored
        """
        connections: Dict[str, PeerClient] = {}
        stored = 0
        try:
            while not failed.is_set():
                try:
                    assignment: ChunkAssignment = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break

                try:
                    peer = connections.get(assignment.server)
                    if peer is None:
                        peer = PeerClient(assignment.server, timeout=self.timeout)
                        await peer.connect()
                        connections[assignment.server] = peer

                    data = await peer.request_chunk(content_hash, assignment.chunk_id)
                    await asyncio.to_thread(
                        self.chunk_store.write_chunk, content_hash, assignment.chunk_id, data
                    )
                except BaseException as e:
                    failures.append(e)
                    failed.set()
                    raise
                finally:
                    queue.task_done()

                stored += 1
                self.logger.debug(
                    f"Worker {worker_id} stored chunk {assignment.chunk_id} from {assignment.server}"
                )
        finally:
            for peer in connections.values():
                await peer.close()

        return stored

    def _reconstruct(self, entry: FileEntry, output_name: str) -> Path:
        """Record the manifest for the downloaded chunks and assemble the verified file."""
        manifest = ChunkManifest(
            name=output_name,
            size=entry.size,
            hash=entry.hash,
            chunks=list(entry.chunks),
        )
        self.chunk_store.write_manifest(manifest)
        output_path = self.chunk_store.reconstruct(
            self.download_dir, entry.hash, manifest=manifest, verify_hash=True
        )

        self.logger.info(f"Successfully downloaded and reconstructed {output_path}")
        return output_path
