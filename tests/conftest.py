"""Shared pytest fixtures for all tests."""

import itertools
import os
from pathlib import Path

import pytest

from cli.config import Config
from common.chunk_storage import ChunkStore
from node.dispatcher import ConnectionDispatcher
from node.server import PeerServer

SMALL_CHUNK_SIZE = 4096


@pytest.fixture
def node_address():
    """Return a function giving the "host:port" a started test server listens on."""
    def _address(server: PeerServer) -> str:
        host, port = server.address
        return f"{host}:{port}"

    return _address


@pytest.fixture
def temp_config(tmp_path):
    """
    Create temporary config instance.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Config instance with temp config file
    """
    config_dir = tmp_path / '.peershare'
    config_dir.mkdir()
    config = Config(config_dir / 'config.json')
    config.data['download_dir'] = str(tmp_path / 'downloads')
    config.data['chunk_storage_path'] = str(tmp_path / 'client_chunks')
    return config


@pytest.fixture
def write_random_file():
    """
    Factory writing a file of random bytes.

    Returns:
        Callable (directory, name, size) -> Path
    """
    def _write(directory: Path, name: str, size: int) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(os.urandom(size))
        return path

    return _write


@pytest.fixture
def shared_dir(tmp_path):
    """Empty directory served by a test node."""
    path = tmp_path / 'shared'
    path.mkdir()
    return path


@pytest.fixture
def chunk_store(tmp_path):
    """Chunk store with small chunks so multi-chunk files stay small."""
    return ChunkStore(tmp_path / 'chunks', chunk_size=SMALL_CHUNK_SIZE)


@pytest.fixture
def make_node(tmp_path):
    """
    Factory building a not-yet-started node on 127.0.0.1 with an ephemeral port.

    Each node gets its own chunk storage root. Use as ``async with make_node(dir) as server``.
    """
    counter = itertools.count()

    def _make(
        directory: Path,
        chunk_size: int = SMALL_CHUNK_SIZE,
        dispatcher_cls=ConnectionDispatcher
    ) -> PeerServer:
        store = ChunkStore(tmp_path / f'node{next(counter)}_chunks', chunk_size=chunk_size)
        dispatcher = dispatcher_cls(directory, store)
        return PeerServer(dispatcher, host='127.0.0.1', port=0)

    return _make
