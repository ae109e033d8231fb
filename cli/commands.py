"""Command handler functions for CLI operations."""

import asyncio
from pathlib import Path
from typing import Optional

from common.chunk_storage import ChunkStore
from common.exceptions import PeerShareError
from common.logging_config import get_logger
from common.protocol import Catalog, FileMetadataPayload
from client.downloader import DownloadOrchestrator
from client.peer_client import PeerClient
from cli.config import Config
from cli.models import (
    CatalogCommand,
    DownloadCommand,
    MetadataCommand,
    ServersCommand,
)

logger = get_logger(__name__)


_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get or create global Config instance.

    Returns:
        Config instance backed by ~/.peershare/config.json
    """
    global _config
    if _config is None:
        logger.debug("Loading CLI configuration")
        _config = Config(Path.home() / '.peershare' / 'config.json')
    return _config


async def fetch_catalog(address: str, timeout: Optional[float] = None) -> Catalog:
    async with PeerClient(address, timeout=timeout) as peer:
        return await peer.request_catalog()


async def fetch_file_metadata(address: str, file_name: str, timeout: Optional[float] = None) -> FileMetadataPayload:
    async with PeerClient(address, timeout=timeout) as peer:
        return await peer.request_file_metadata(file_name)


def format_catalog(address: str, catalog: Catalog) -> str:
    """Render a catalog as one line per file plus its hash."""
    if not catalog.files:
        return f"No files hosted on {address}"

    lines = [f"Files on {address}:"]
    for entry in catalog.files:
        lines.append(f"- {entry.name} (Size: {entry.size} bytes, Chunks: {len(entry.chunks)})")
        lines.append(f"  hash: {entry.hash}")
    return "\n".join(lines)


def handle_catalog(cmd: CatalogCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'catalog' command.

    Args:
        cmd: CatalogCommand with node address
        config: Optional Config for dependency injection (testing)

    Returns:
        Formatted catalog or error message
    """
    if config is None:
        config = get_config()
    logger.info(f"Requesting file catalog from {cmd.address}")
    try:
        catalog = asyncio.run(fetch_catalog(cmd.address, config.get_timeout()))
    except PeerShareError as e:
        logger.error(f"Catalog request to {cmd.address} failed: {e}")
        return f"Error: {e}"
    return format_catalog(cmd.address, catalog)


def handle_metadata(cmd: MetadataCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'metadata' command.

    Args:
        cmd: MetadataCommand with node address and file name
        config: Optional Config for dependency injection (testing)

    Returns:
        Chunk list or error message
    """
    if config is None:
        config = get_config()
    try:
        metadata = asyncio.run(fetch_file_metadata(cmd.address, cmd.file_name, config.get_timeout()))
    except PeerShareError as e:
        logger.error(f"Metadata request to {cmd.address} failed: {e}")
        return f"Error: {e}"

    if not metadata.chunks:
        return f"File {cmd.file_name} not found on {cmd.address}"
    return f"{metadata.file_name}: {len(metadata.chunks)} chunks\n  " + " ".join(metadata.chunks)


def handle_download(cmd: DownloadCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'download' command.

    Args:
        cmd: DownloadCommand with content hash, output name and optional servers
        config: Optional Config for dependency injection (testing)

    Returns:
        Success or error message
    """
    if config is None:
        config = get_config()

    servers = list(cmd.servers) or config.get_servers()
    if not servers:
        return "Error: no servers given and none configured (use 'servers <address> ...')"

    logger.info(f"Executing download command: hash={cmd.content_hash} name={cmd.file_name} servers={servers}")
    orchestrator = DownloadOrchestrator(
        chunk_store=ChunkStore(config.get_chunk_storage_path()),
        download_dir=config.get_download_dir(),
        worker_count=config.get_worker_count(),
        timeout=config.get_timeout(),
    )
    try:
        output_path = asyncio.run(orchestrator.download(cmd.content_hash, cmd.file_name, servers))
    except (PeerShareError, ValueError, OSError) as e:
        logger.error(f"Download of {cmd.content_hash} failed: {e}")
        return f"Error: {e}"

    return f"Successfully downloaded {cmd.file_name} to {output_path}"


def handle_servers(cmd: ServersCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'servers' command.

    Args:
        cmd: ServersCommand, empty to show the current list
        config: Optional Config for dependency injection (testing)

    Returns:
        Current or updated server list
    """
    if config is None:
        config = get_config()

    if cmd.servers:
        config.set_servers(list(cmd.servers))
        return "Servers set to: " + ", ".join(cmd.servers)

    servers = config.get_servers()
    if not servers:
        return "No servers configured"
    return "Configured servers: " + ", ".join(servers)
