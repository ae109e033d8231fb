"""Client side of the wire protocol: one connection to one remote node."""

import asyncio
import logging
from typing import Optional, Tuple, Type, TypeVar

from common.checksum_validator import compute_checksum
from common.constants import MAX_MESSAGE_BYTES
from common.exceptions import (
    ConnectionFailureError,
    IntegrityFailureError,
    UnexpectedMessageError,
)
from common.protocol import (
    Catalog,
    CatalogResponse,
    ChunkResponse,
    FileMetadataPayload,
    FileMetadataResponse,
    Message,
    catalog_request,
    chunk_request,
    decode_message,
    file_metadata_request,
    frame,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar('ResponseT')


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a "host:port" address.

    IPv6 hosts may be written in brackets ("[::1]:8080").

    Raises:
        ValueError: If the address is empty or the port is invalid
    """
    if not address or ':' not in address:
        raise ValueError(f"Address must be in host:port format: {address!r}")

    host, _, port_str = address.rpartition(':')
    host = host.strip('[]')
    if not host:
        raise ValueError(f"Address has no host: {address!r}")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port number in {address!r}")

    if not 0 < port <= 65535:
        raise ValueError(f"Invalid port number in {address!r}")

    return host, port


class PeerClient:
    """
    A single connection to a remote node.

    Requests are sent one at a time and each waits for its reply; the
    connection stays open for further requests until closed.

    Usage:
        async with PeerClient("127.0.0.1:8080") as peer:
            catalog = await peer.request_catalog()
    """

    def __init__(self, address: str, timeout: Optional[float] = None):
        """
        Args:
            address: Remote node in "host:port" format
            timeout: Optional seconds to wait for each reply (None waits forever)
        """
        self.address = address
        self.host, self.port = parse_address(address)
        self.timeout = timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def connected(self) -> bool:
        return self._writer is not None

    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            ConnectionFailureError: If the node cannot be reached
        """
        if self.connected:
            return
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self.host, self.port, limit=MAX_MESSAGE_BYTES
            )
        except OSError as e:
            raise ConnectionFailureError(f"Failed to connect to {self.address}: {e}") from e
        logger.debug(f"Connected to {self.address}")

    async def close(self) -> None:
        if self._writer is None:
            return
        writer = self._writer
        self._reader = None
        self._writer = None
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection to {self.address}: {e}")

    async def __aenter__(self) -> 'PeerClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def request_catalog(self) -> Catalog:
        """Fetch the node's catalog."""
        response = await self._exchange(catalog_request(), CatalogResponse)
        logger.info(f"Received catalog with {len(response.payload.files)} files from {self.address}")
        return response.payload

    async def request_file_metadata(self, file_name: str) -> FileMetadataPayload:
        """Fetch the chunk list of a file by name; an empty list means not hosted."""
        response = await self._exchange(file_metadata_request(file_name), FileMetadataResponse)
        return response.payload

    async def request_chunk(self, file_hash: str, chunk_id: str) -> bytes:
        """
        Fetch one chunk and verify it against the hash sent with it.

        Returns:
            The verified chunk bytes

        Raises:
            IntegrityFailureError: If the data does not match its hash
            UnexpectedMessageError: If the reply is for a different chunk
        """
        response = await self._exchange(chunk_request(file_hash, chunk_id), ChunkResponse)
        payload = response.payload

        if payload.file_hash != file_hash or payload.chunk_id != chunk_id:
            raise UnexpectedMessageError(
                f"Requested chunk {chunk_id} of {file_hash}, got {payload.chunk_id} of {payload.file_hash}"
            )

        actual = compute_checksum(payload.data)
        if actual != payload.hash.lower():
            logger.error(f"Integrity check failed for chunk {chunk_id} from {self.address}")
            raise IntegrityFailureError(
                f"Integrity check failed for chunk {chunk_id}: expected {payload.hash}, got {actual}"
            )

        logger.debug(f"Received and verified chunk {chunk_id} ({len(payload.data)} bytes) from {self.address}")
        return payload.data

    async def _exchange(self, request: Message, response_type: Type[ResponseT]) -> ResponseT:
        """Send one request and read the single-line reply."""
        await self.connect()
        assert self._reader is not None and self._writer is not None

        try:
            self._writer.write(frame(request))
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise ConnectionFailureError(f"Failed to send {request.type} to {self.address}: {e}") from e

        try:
            line = await asyncio.wait_for(self._reader.readline(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionFailureError(
                f"Timed out after {self.timeout}s waiting for reply to {request.type} from {self.address}"
            ) from e
        except (ConnectionError, OSError, ValueError) as e:
            raise ConnectionFailureError(f"Failed to read reply from {self.address}: {e}") from e

        if not line:
            raise ConnectionFailureError(f"Connection closed by {self.address} before reply to {request.type}")

        response = decode_message(line)
        if not isinstance(response, response_type):
            raise UnexpectedMessageError(
                f"Unexpected response type from {self.address}: {response.type} (expected {response_type.__name__})"
            )
        return response
