"""Command parser for CLI input."""

import re
import shlex

from client.peer_client import parse_address
from cli.models import (
    CatalogCommand,
    CommandRequest,
    DownloadCommand,
    MetadataCommand,
    ServersCommand,
)

_HASH_PATTERN = re.compile(r'^[0-9a-fA-F]{64}$')


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Catalog/Metadata/Download/Servers)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "catalog":
        return _parse_catalog(tokens[1:])
    elif command_name == "metadata":
        return _parse_metadata(tokens[1:])
    elif command_name == "download":
        return _parse_download(tokens[1:])
    elif command_name == "servers":
        return _parse_servers(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_catalog(args: list[str]) -> CatalogCommand:
    """Parse 'catalog <address>' command."""
    if len(args) != 1:
        raise ParseError("catalog requires exactly 1 argument: <address>")

    return CatalogCommand(address=_check_address(args[0]))


def _parse_metadata(args: list[str]) -> MetadataCommand:
    """Parse 'metadata <address> <file_name>' command."""
    if len(args) != 2:
        raise ParseError("metadata requires exactly 2 arguments: <address> <file_name>")

    address, file_name = args
    return MetadataCommand(address=_check_address(address), file_name=file_name)


def _parse_download(args: list[str]) -> DownloadCommand:
    """Parse 'download <hash> <file_name> [address ...]' command."""
    if len(args) < 2:
        raise ParseError("download requires at least 2 arguments: <hash> <file_name> [address ...]")

    content_hash, file_name = args[0], args[1]
    if not _HASH_PATTERN.match(content_hash):
        raise ParseError(f"Invalid content hash: {content_hash} (expected 64 hex characters)")

    servers = tuple(_check_address(address) for address in args[2:])
    return DownloadCommand(content_hash=content_hash.lower(), file_name=file_name, servers=servers)


def _parse_servers(args: list[str]) -> ServersCommand:
    """Parse 'servers [address ...]' command."""
    return ServersCommand(servers=tuple(_check_address(address) for address in args))


def _check_address(address: str) -> str:
    try:
        parse_address(address)
    except ValueError as e:
        raise ParseError(str(e))
    return address
