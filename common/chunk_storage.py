"""Manages chunk files on disk: split, reconstruct, read/write and manifests.

Layout under the storage root::

    <root>/<file_hash>/chunk_0
    <root>/<file_hash>/chunk_1
    ...
    <root>/<file_hash>/manifest.json
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from common.checksum_validator import IncrementalChecksumCalculator
from common.constants import CHUNK_ID_PREFIX, CHUNK_SIZE_BYTES, MANIFEST_FILENAME
from common.exceptions import IntegrityFailureError

logger = logging.getLogger(__name__)

_FILE_HASH_PATTERN = re.compile(r'^[0-9a-f]{64}$')
_CHUNK_ID_PATTERN = re.compile(rf'^{CHUNK_ID_PREFIX}(0|[1-9][0-9]*)$')


def make_chunk_id(index: int) -> str:
    """Return the chunk id of the chunk at a positional index."""
    return f"{CHUNK_ID_PREFIX}{index}"


def validate_file_hash(file_hash: str) -> str:
    """
    Check that a content hash is a lowercase SHA-256 hex digest.

    Raises:
        ValueError: If the hash is malformed
    """
    if not isinstance(file_hash, str) or not _FILE_HASH_PATTERN.match(file_hash):
        raise ValueError(f"Invalid file hash: {file_hash!r}")
    return file_hash


def validate_chunk_id(chunk_id: str) -> str:
    """
    Check that a chunk id has the ``chunk_<index>`` form.

    Raises:
        ValueError: If the chunk id is malformed
    """
    if not isinstance(chunk_id, str) or not _CHUNK_ID_PATTERN.match(chunk_id):
        raise ValueError(f"Invalid chunk id: {chunk_id!r}")
    return chunk_id


@dataclass
class ChunkManifest:
    """
    Sidecar record of a split file.

    Attributes:
        name: Original file name (used as the reconstructed file's name)
        size: Original file size in bytes
        hash: SHA-256 of the whole file
        chunks: Chunk ids in file byte order
    """
    name: str
    size: int
    hash: str
    chunks: List[str] = field(default_factory=list)


class ChunkStore:
    """
    Content-addressed chunk storage rooted at a directory.

    Each file hash gets its own namespace directory, so chunk file names never
    collide between files and concurrent writers of distinct chunks never touch
    the same path.
    """

    def __init__(self, root: Union[str, Path], chunk_size: int = CHUNK_SIZE_BYTES):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.root = Path(root)
        self.chunk_size = chunk_size

    def get_namespace_path(self, file_hash: str) -> Path:
        return self.root / validate_file_hash(file_hash)

    def get_chunk_path(self, file_hash: str, chunk_id: str) -> Path:
        """
        Get file path for a chunk.

        Args:
            file_hash: Content hash namespace
            chunk_id: Chunk id within the namespace

        Returns:
            Path object for chunk file
        """
        return self.get_namespace_path(file_hash) / validate_chunk_id(chunk_id)

    def get_manifest_path(self, file_hash: str) -> Path:
        return self.get_namespace_path(file_hash) / MANIFEST_FILENAME

    def write_chunk(self, file_hash: str, chunk_id: str, data: bytes) -> Path:
        """
        Write chunk data to disk.

        Args:
            file_hash: Content hash namespace
            chunk_id: Chunk id within the namespace
            data: Raw chunk data

        Returns:
            Path to written file

        Raises:
            OSError: If write operation fails
        """
        filepath = self.get_chunk_path(file_hash, chunk_id)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        _write_atomic(filepath, data)
        return filepath

    def read_chunk(self, file_hash: str, chunk_id: str) -> bytes:
        """
        Read entire chunk from disk.

        Raises:
            FileNotFoundError: If chunk does not exist
            OSError: If read operation fails
        """
        return self.get_chunk_path(file_hash, chunk_id).read_bytes()

    def chunk_exists(self, file_hash: str, chunk_id: str) -> bool:
        return self.get_chunk_path(file_hash, chunk_id).is_file()

    def list_chunks(self, file_hash: str) -> List[str]:
        """
        List chunk ids present on disk for a namespace, in positional order.

        Returns:
            Chunk ids, empty if the namespace does not exist
        """
        namespace = self.get_namespace_path(file_hash)
        if not namespace.is_dir():
            return []

        chunk_ids = [
            path.name for path in namespace.iterdir()
            if path.is_file() and _CHUNK_ID_PATTERN.match(path.name)
        ]
        return sorted(chunk_ids, key=lambda chunk_id: int(chunk_id[len(CHUNK_ID_PREFIX):]))

    def write_manifest(self, manifest: ChunkManifest) -> Path:
        """
        Persist a manifest into its hash namespace.

        Raises:
            OSError: If write operation fails
        """
        path = self.get_manifest_path(manifest.hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        _write_atomic(path, json.dumps(asdict(manifest), indent=2).encode('utf-8'))
        return path

    def read_manifest(self, file_hash: str) -> ChunkManifest:
        """
        Load the manifest of a hash namespace.

        Raises:
            FileNotFoundError: If the namespace has no manifest
            ValueError: If the manifest is corrupted
        """
        path = self.get_manifest_path(file_hash)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        try:
            manifest = ChunkManifest(
                name=data['name'],
                size=int(data['size']),
                hash=data['hash'],
                chunks=list(data['chunks']),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Corrupted manifest {path}: {e}") from e

        if manifest.hash != file_hash:
            raise ValueError(f"Manifest {path} belongs to {manifest.hash}, not {file_hash}")
        return manifest

    def split(self, file_path: Union[str, Path], file_hash: str) -> ChunkManifest:
        """
        Cut a file into fixed-size chunks under its hash namespace.

        Re-splitting the same file rewrites identical chunks; stale chunks with
        a higher index than the new chunk count are removed.

        Args:
            file_path: File to split
            file_hash: SHA-256 of the file's bytes

        Returns:
            The written manifest

        Raises:
            OSError: If reading the file or writing a chunk fails
        """
        file_path = Path(file_path)
        namespace = self.get_namespace_path(file_hash)
        namespace.mkdir(parents=True, exist_ok=True)

        chunk_ids: List[str] = []
        size = 0
        with open(file_path, 'rb') as f:
            while True:
                data = f.read(self.chunk_size)
                if not data:
                    break
                chunk_id = make_chunk_id(len(chunk_ids))
                _write_atomic(namespace / chunk_id, data)
                chunk_ids.append(chunk_id)
                size += len(data)

        for stale_id in self.list_chunks(file_hash)[len(chunk_ids):]:
            (namespace / stale_id).unlink(missing_ok=True)

        manifest = ChunkManifest(name=file_path.name, size=size, hash=file_hash, chunks=chunk_ids)
        self.write_manifest(manifest)
        logger.debug(f"Split {file_path} into {len(chunk_ids)} chunks under {namespace}")
        return manifest

    def reconstruct(
        self,
        output_dir: Union[str, Path],
        file_hash: str,
        manifest: Optional[ChunkManifest] = None,
        verify_hash: bool = False
    ) -> Path:
        """
        Reassemble a file from its manifest into ``output_dir``.

        The file is assembled in a temporary file in ``output_dir`` and renamed
        into place only after every chunk was copied (and, with ``verify_hash``,
        only if the assembled bytes hash to ``file_hash``). A failed assembly
        never touches an existing file of the same name.

        Args:
            output_dir: Directory receiving the file
            file_hash: Hash namespace to reassemble
            manifest: Manifest to follow instead of the one stored on disk
            verify_hash: Check the assembled bytes against ``file_hash`` before the rename

        Returns:
            Path of the reconstructed file, named after the manifest's original name

        Raises:
            FileNotFoundError: If the manifest or a chunk is missing
            ValueError: If the manifest is corrupted
            IntegrityFailureError: If ``verify_hash`` is set and the bytes do not match
            OSError: If writing the output fails
        """
        if manifest is None:
            manifest = self.read_manifest(file_hash)
        name = Path(manifest.name).name
        if not name:
            raise ValueError(f"Manifest of {file_hash} has no original file name")

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / name

        calculator = IncrementalChecksumCalculator()
        fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".part", dir=output_dir)
        try:
            with os.fdopen(fd, 'wb') as out:
                for chunk_id in manifest.chunks:
                    data = self.read_chunk(file_hash, chunk_id)
                    calculator.update(data)
                    out.write(data)

            actual = calculator.finalize()
            if verify_hash and actual != file_hash:
                raise IntegrityFailureError(
                    f"Reconstructed file {name} has hash {actual}, expected {file_hash}"
                )
            os.replace(tmp_name, output_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Reconstructed {output_path} from {len(manifest.chunks)} chunks")
        return output_path


def _write_atomic(path: Path, data: bytes) -> None:
    """Write bytes so concurrent readers see either the old or the new file, never a partial one."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
