"""Entry point for a serving node.
Catalogs the shared directory on demand and answers peer requests.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from common.chunk_storage import ChunkStore
from common.exceptions import ConnectionFailureError
from common.logging_config import setup_logging
from node import config
from node.dispatcher import ConnectionDispatcher
from node.server import PeerServer


async def serve(server: PeerServer) -> None:
    """
    Start the server and run it until SIGINT/SIGTERM.

    Args:
        server: Configured, not yet started server
    """
    logger = server.logger
    await server.start()

    stop_event = asyncio.Event()

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
        logger.info("Received shutdown signal")
    finally:
        await server.stop()


def main(argv: Optional[List[str]] = None) -> None:
    """Bootstrap a node. An optional first argument overrides the listen port."""
    argv = sys.argv[1:] if argv is None else argv
    logger = setup_logging('node', log_file=config.LOG_FILE)

    port = config.NODE_PORT
    if argv:
        try:
            port = int(argv[0])
        except ValueError:
            logger.error(f"Invalid port: {argv[0]}")
            sys.exit(2)

    shared_dir = Path(config.SHARED_DIR)
    if not shared_dir.is_dir():
        logger.error(f"Shared directory {shared_dir} does not exist")
        sys.exit(1)

    chunk_store = ChunkStore(config.CHUNK_STORAGE_PATH)
    dispatcher = ConnectionDispatcher(shared_dir, chunk_store, logger=logger.getChild('dispatcher'))
    server = PeerServer(dispatcher, host=config.NODE_HOST, port=port, logger=logger.getChild('server'))

    logger.info(f"Sharing {shared_dir.resolve()} (chunks in {chunk_store.root.resolve()})")
    try:
        asyncio.run(serve(server))
    except ConnectionFailureError as e:
        logger.error(f"Unable to start node: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    logger.info("Node stopped")


if __name__ == "__main__":
    main()
