"""Configuration management for PeerShare CLI."""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from common.constants import (
    DEFAULT_CHUNK_STORAGE_PATH,
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_WORKER_COUNT,
)

logger = logging.getLogger(__name__)


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "download_dir": os.environ.get("PEERSHARE_DOWNLOAD_DIR", DEFAULT_DOWNLOAD_DIR),
        "chunk_storage_path": os.environ.get("PEERSHARE_CHUNK_STORAGE_PATH", DEFAULT_CHUNK_STORAGE_PATH),
        "worker_count": DEFAULT_WORKER_COUNT,
        "request_timeout": None,
        "servers": [],
    }

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.peershare/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.peershare' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        config = json.loads(json.dumps(self.DEFAULT_CONFIG))

        if not self.config_path.exists():
            self._write(config)
            return config

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
        except (json.JSONDecodeError, ValueError, OSError) as e:
            backup_path = self.config_path.with_suffix('.json.bak')
            logger.warning(f"Corrupted config {self.config_path} ({e}), backing up to {backup_path}")
            try:
                shutil.copy(self.config_path, backup_path)
            except OSError as copy_error:
                logger.warning(f"Failed to back up config: {copy_error}")
            return config

        config.update(data)
        return config

    def _write(self, data: dict) -> None:
        try:
            with open(self.config_path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to write config {self.config_path}: {e}")

    def save(self) -> None:
        """Save current configuration to file."""
        self._write(self.data)

    def get_download_dir(self) -> Path:
        return Path(self.data.get('download_dir', DEFAULT_DOWNLOAD_DIR))

    def get_chunk_storage_path(self) -> Path:
        return Path(self.data.get('chunk_storage_path', DEFAULT_CHUNK_STORAGE_PATH))

    def get_worker_count(self) -> int:
        """
        Get download worker pool size.

        Returns:
            Configured count, at least 1
        """
        try:
            return max(1, int(self.data.get('worker_count', DEFAULT_WORKER_COUNT)))
        except (TypeError, ValueError):
            return DEFAULT_WORKER_COUNT

    def get_timeout(self) -> Optional[float]:
        """
        Get per-reply timeout in seconds.

        Returns:
            Timeout value in seconds, or None to wait without limit
        """
        timeout = self.data.get('request_timeout')
        return float(timeout) if timeout is not None else None

    def get_servers(self) -> List[str]:
        """
        Get default node addresses used when a download names none.

        Returns:
            List of "host:port" strings
        """
        return list(self.data.get('servers') or [])

    def set_servers(self, servers: List[str]) -> None:
        """
        Replace default node addresses and save to file.

        Args:
            servers: List of "host:port" strings
        """
        self.data['servers'] = list(servers)
        self.save()
