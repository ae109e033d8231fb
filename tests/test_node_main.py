"""Tests for the node entry point."""

import asyncio
import os
import signal
import sys

import pytest

from node import config
from node.main import main, serve


def test_missing_shared_dir_exits(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'SHARED_DIR', str(tmp_path / 'missing'))

    with pytest.raises(SystemExit) as exc_info:
        main([])

    assert exc_info.value.code == 1


def test_invalid_port_argument_exits(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'SHARED_DIR', str(tmp_path))

    with pytest.raises(SystemExit) as exc_info:
        main(['not-a-port'])

    assert exc_info.value.code == 2


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == 'win32', reason="signal handlers need a Unix event loop")
async def test_serve_stops_on_sigterm(shared_dir, make_node):
    server = make_node(shared_dir)
    task = asyncio.create_task(serve(server))

    for _ in range(100):
        if server._server is not None:
            break
        await asyncio.sleep(0.01)
    os.kill(os.getpid(), signal.SIGTERM)

    await asyncio.wait_for(task, timeout=5)
    assert server._server is None
