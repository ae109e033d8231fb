"""Builds the catalog of files hosted in a shared directory."""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from common.checksum_validator import compute_file_checksum
from common.chunk_storage import ChunkStore
from common.exceptions import CatalogError
from common.protocol import Catalog, FileEntry

logger = logging.getLogger(__name__)


def build_catalog(directory: Union[str, Path], chunk_store: ChunkStore) -> Catalog:
    """
    Hash and split every regular file directly under ``directory``.

    Subdirectories are skipped. The catalog is an atomic snapshot: the first
    file that cannot be hashed or split aborts the whole build.

    Args:
        directory: Shared directory to scan (non-recursive)
        chunk_store: Store receiving each file's chunks under its hash

    Returns:
        Catalog with one entry per regular file, sorted by name

    Raises:
        CatalogError: If the directory cannot be listed or any file fails
    """
    directory = Path(directory)
    try:
        with os.scandir(directory) as it:
            names = sorted(entry.name for entry in it if entry.is_file())
    except OSError as e:
        raise CatalogError(f"Failed to read directory {directory}: {e}") from e

    files: List[FileEntry] = []
    for name in names:
        file_path = directory / name
        try:
            file_hash = compute_file_checksum(file_path)
            manifest = chunk_store.split(file_path, file_hash)
        except OSError as e:
            raise CatalogError(f"Failed to catalog file {name}: {e}") from e

        files.append(FileEntry(
            name=name,
            size=manifest.size,
            hash=file_hash,
            chunks=manifest.chunks,
        ))

    logger.debug(f"Built catalog of {len(files)} files from {directory}")
    return Catalog(files=files)


def find_entry(catalog: Catalog, file_hash: str) -> Optional[FileEntry]:
    """Return the entry with the given content hash, or None."""
    file_hash = file_hash.lower()
    for entry in catalog.files:
        if entry.hash == file_hash:
            return entry
    return None


def find_entry_by_name(catalog: Catalog, name: str) -> Optional[FileEntry]:
    """Return the first entry with the given file name, or None."""
    for entry in catalog.files:
        if entry.name == name:
            return entry
    return None
