"""Provides SHA-256 checksum calculation and verification helpers."""

import hashlib
from pathlib import Path
from typing import Union

from common.constants import FILE_READ_PIECE_BYTES


def compute_checksum(data: bytes) -> str:
    """
    Compute SHA-256 checksum for given data.

    Args:
        data: Bytes to compute checksum for

    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def verify_checksum(data: bytes, expected: str) -> bool:
    """
    Verify that data matches expected checksum.

    Args:
        data: Bytes to verify
        expected: Expected SHA-256 checksum (hex string)

    Returns:
        True if checksum matches, False otherwise
    """
    return compute_checksum(data) == expected.lower()


def compute_file_checksum(path: Union[str, Path], piece_size: int = FILE_READ_PIECE_BYTES) -> str:
    """
    Compute SHA-256 checksum of a whole file without loading it in memory.

    Args:
        path: File to hash
        piece_size: Read size in bytes

    Returns:
        Hexadecimal string representation of SHA-256 hash

    Raises:
        OSError: If the file cannot be read
    """
    calculator = IncrementalChecksumCalculator()
    with open(path, 'rb') as f:
        while True:
            piece = f.read(piece_size)
            if not piece:
                break
            calculator.update(piece)
    return calculator.finalize()


class IncrementalChecksumCalculator:
    """
    Calculate SHA-256 checksum incrementally for streaming data.

    Usage:
        calculator = IncrementalChecksumCalculator()
        calculator.update(piece1)
        calculator.update(piece2)
        final_checksum = calculator.finalize()
    """

    def __init__(self):
        self._hasher = hashlib.sha256()
        self._finalized = False

    def update(self, data: bytes) -> None:
        """
        Update checksum with new data.

        Args:
            data: Bytes to add to checksum calculation
        """
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)

    def finalize(self) -> str:
        """
        Finalize checksum calculation and return result.

        Returns:
            Hexadecimal string representation of SHA-256 hash
        """
        self._finalized = True
        return self._hasher.hexdigest()
