"""TCP listener that hands every accepted connection to the dispatcher."""

import asyncio
import logging
from typing import Optional, Set, Tuple

from common.constants import DEFAULT_NODE_HOST, DEFAULT_NODE_PORT, MAX_MESSAGE_BYTES
from common.exceptions import ConnectionFailureError
from node.dispatcher import ConnectionDispatcher


class PeerServer:
    """
    Accepts peer connections and serves each one in its own task.

    The number of simultaneously open connections is not bounded.
    """

    def __init__(
        self,
        dispatcher: ConnectionDispatcher,
        host: str = DEFAULT_NODE_HOST,
        port: int = DEFAULT_NODE_PORT,
        logger: Optional[logging.Logger] = None
    ):
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self.logger = logger or logging.getLogger(__name__)
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: Set[asyncio.StreamWriter] = set()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); useful when started on port 0."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server is not started")
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def start(self) -> None:
        """
        Bind the listening socket and start accepting connections.

        Raises:
            ConnectionFailureError: If the address cannot be bound
        """
        try:
            self._server = await asyncio.start_server(
                self._on_connection,
                self.host,
                self.port,
                limit=MAX_MESSAGE_BYTES,
            )
        except OSError as e:
            raise ConnectionFailureError(f"Unable to listen on {self.host}:{self.port}: {e}") from e

        host, port = self.address
        self.logger.info(f"Server listening on {host}:{port}")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting connections and close the ones still open."""
        if self._server is None:
            return

        self._server.close()
        for writer in list(self._writers):
            writer.close()
        await self._server.wait_closed()
        self._server = None
        self.logger.info("Server stopped")

    async def _on_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        self._writers.add(writer)
        try:
            await self.dispatcher.handle_connection(reader, writer)
        except Exception as e:
            self.logger.error(f"Connection handler failed: {e}", exc_info=True)
        finally:
            self._writers.discard(writer)

    async def __aenter__(self) -> 'PeerServer':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
