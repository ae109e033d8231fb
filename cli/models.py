"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class CatalogCommand:
    """List the files hosted by a node."""

    address: str
    command: Literal["catalog"] = "catalog"


@dataclass(frozen=True)
class MetadataCommand:
    """Show the chunk list of a file hosted by a node."""

    address: str
    file_name: str
    command: Literal["metadata"] = "metadata"


@dataclass(frozen=True)
class DownloadCommand:
    """Download a file by content hash; empty servers means the configured ones."""

    content_hash: str
    file_name: str
    servers: tuple[str, ...] = ()
    command: Literal["download"] = "download"


@dataclass(frozen=True)
class ServersCommand:
    """Show (no addresses) or replace the configured servers."""

    servers: tuple[str, ...] = ()
    command: Literal["servers"] = "servers"


CommandRequest = (
    CatalogCommand
    | MetadataCommand
    | DownloadCommand
    | ServersCommand
)
