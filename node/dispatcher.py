"""Per-connection request dispatcher for the serving side of a node."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Union

from common.checksum_validator import compute_checksum
from common.chunk_storage import ChunkStore
from common.constants import MESSAGE_TERMINATOR
from common.exceptions import CatalogError, MalformedMessageError, UnencodablePayloadError
from common.protocol import (
    ChunkRequest,
    FileMetadataRequest,
    Message,
    MessageType,
    catalog_response,
    chunk_response,
    decode_message,
    encode_message,
    file_metadata_response,
)
from node.catalog import build_catalog, find_entry, find_entry_by_name

Handler = Callable[[Message], Awaitable[Optional[Message]]]


class ConnectionDispatcher:
    """
    Reads framed requests from one connection and answers them.

    The dispatcher keeps no state between requests: every catalog-backed reply
    is computed from a fresh scan of the shared directory, so a single
    instance can serve any number of connections concurrently.
    """

    def __init__(
        self,
        shared_dir: Union[str, Path],
        chunk_store: ChunkStore,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            shared_dir: Directory whose regular files are served
            chunk_store: Store holding the chunks of served files
            logger: Logger receiving connection events (defaults to the module logger)
        """
        self.shared_dir = Path(shared_dir)
        self.chunk_store = chunk_store
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[MessageType, Handler] = {
            MessageType.CATALOG_REQUEST: self._handle_catalog_request,
            MessageType.FILE_METADATA_REQUEST: self._handle_file_metadata_request,
            MessageType.CHUNK_REQUEST: self._handle_chunk_request,
        }

    async def handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        """
        Serve one connection until the peer disconnects or a read fails.

        Malformed lines are logged and skipped; the connection stays open.
        """
        peer = _format_peer(writer.get_extra_info('peername'))
        self.logger.info(f"Peer connected: {peer}")

        try:
            while True:
                try:
                    line = await reader.readline()
                except (ConnectionError, asyncio.IncompleteReadError) as e:
                    self.logger.info(f"Connection to {peer} lost: {e}")
                    break
                except ValueError as e:
                    # StreamReader raises ValueError when a line exceeds its limit
                    self.logger.warning(f"Dropping {peer}: oversized message ({e})")
                    break

                if not line:
                    self.logger.info(f"Peer disconnected: {peer}")
                    break

                try:
                    message = decode_message(line)
                except MalformedMessageError as e:
                    self.logger.warning(f"Skipping malformed message from {peer}: {e}")
                    continue

                self.logger.debug(f"Received {message.type} from {peer}")

                try:
                    response = await self.handle_message(message)
                except CatalogError as e:
                    self.logger.error(f"Closing connection to {peer}: {e}")
                    break

                if response is None:
                    continue

                await self._send(writer, response, peer)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                self.logger.debug(f"Error while closing connection to {peer}: {e}")

    async def handle_message(self, message: Message) -> Optional[Message]:
        """
        Route a decoded request to its handler.

        Returns:
            The response to send, or None when the request is dropped

        Raises:
            CatalogError: If the shared directory cannot be cataloged
        """
        handler = self._handlers.get(MessageType(message.type))
        if handler is None:
            self.logger.warning(f"No handler for message type {message.type}, ignoring")
            return None
        return await handler(message)

    async def _send(self, writer: asyncio.StreamWriter, response: Message, peer: str) -> None:
        """Best-effort write of one framed response; failures are only logged."""
        try:
            data = encode_message(response)
        except UnencodablePayloadError as e:
            self.logger.error(f"Dropping {response.type} to {peer}: {e}")
            return

        try:
            writer.write(data + MESSAGE_TERMINATOR)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            self.logger.warning(f"Failed to send {response.type} to {peer}: {e}")
            return

        self.logger.debug(f"Sent {response.type} ({len(data)} bytes) to {peer}")

    async def _handle_catalog_request(self, message: Message) -> Optional[Message]:
        catalog = await asyncio.to_thread(build_catalog, self.shared_dir, self.chunk_store)
        self.logger.info(f"Serving catalog with {len(catalog.files)} files")
        return catalog_response(catalog)

    async def _handle_file_metadata_request(self, message: FileMetadataRequest) -> Optional[Message]:
        file_name = message.payload.file_name
        catalog = await asyncio.to_thread(build_catalog, self.shared_dir, self.chunk_store)
        entry = find_entry_by_name(catalog, file_name)
        if entry is None:
            self.logger.info(f"File {file_name} not hosted here, answering with empty chunk list")
            return file_metadata_response(file_name, [])
        return file_metadata_response(file_name, entry.chunks)

    async def _handle_chunk_request(self, message: ChunkRequest) -> Optional[Message]:
        file_hash = message.payload.file_hash
        chunk_id = message.payload.chunk_id

        catalog = await asyncio.to_thread(build_catalog, self.shared_dir, self.chunk_store)
        entry = find_entry(catalog, file_hash)
        if entry is None or chunk_id not in entry.chunks:
            self.logger.error(f"Chunk {chunk_id} of {file_hash} is not hosted here, dropping request")
            return None

        try:
            data = await asyncio.to_thread(self.chunk_store.read_chunk, entry.hash, chunk_id)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to read chunk {chunk_id} of {file_hash}: {e}")
            return None

        return chunk_response(file_hash, chunk_id, data, compute_checksum(data))


def _format_peer(peername) -> str:
    if isinstance(peername, tuple) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    return str(peername)
