"""Project-wide constants (chunk size, framing, default ports)."""

CHUNK_SIZE_BYTES: int = 1 * 1024 * 1024  # 1 MiB fixed chunk size

CHUNK_ID_PREFIX: str = "chunk_"
MANIFEST_FILENAME: str = "manifest.json"

MESSAGE_TERMINATOR: bytes = b"\n"
# Upper bound for one framed line; a base64 chunk of 1 MiB is ~1.4 MB of JSON.
MAX_MESSAGE_BYTES: int = 8 * 1024 * 1024

DEFAULT_NODE_HOST: str = "0.0.0.0"
DEFAULT_NODE_PORT: int = 8080

DEFAULT_WORKER_COUNT: int = 4
FILE_READ_PIECE_BYTES: int = 64 * 1024

DEFAULT_SHARED_DIR: str = "shared"
DEFAULT_CHUNK_STORAGE_PATH: str = "chunks"
DEFAULT_DOWNLOAD_DIR: str = "downloads"
