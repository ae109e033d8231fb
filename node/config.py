"""Configuration settings for a serving node."""

import os

from common.constants import (
    DEFAULT_CHUNK_STORAGE_PATH,
    DEFAULT_NODE_HOST,
    DEFAULT_NODE_PORT,
    DEFAULT_SHARED_DIR,
)


NODE_HOST = os.environ.get("PEERSHARE_HOST", DEFAULT_NODE_HOST)

NODE_PORT = int(os.environ.get("PEERSHARE_PORT", str(DEFAULT_NODE_PORT)))

SHARED_DIR = os.environ.get("PEERSHARE_SHARED_DIR", DEFAULT_SHARED_DIR)

CHUNK_STORAGE_PATH = os.environ.get("PEERSHARE_CHUNK_STORAGE_PATH", DEFAULT_CHUNK_STORAGE_PATH)

LOG_FILE = os.environ.get("PEERSHARE_LOG_FILE") or None
