"""Digest engine — streaming content fingerprints for local files.

Files are read in fixed-size chunks so memory use does not depend on file
size.  Any read failure surfaces as :class:`FileAccessError` so that the
coordinator can classify the file as ``read_error`` instead of aborting the
pass.
"""
from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Union

import structlog

from shieldops.domain.hashing import HashAlgorithm
from shieldops.shared.exceptions import FileAccessError

logger = structlog.get_logger(__name__)

_CHUNK_SIZE: int = 65536


def hash_bytes(content: bytes, algorithm: HashAlgorithm | str = HashAlgorithm.SHA256) -> str:
    """Hex digest of an in-memory payload."""
    return hashlib.new(HashAlgorithm(algorithm).value, content).hexdigest()


def hash_file(
    path: Union[str, Path],
    algorithm: HashAlgorithm | str = HashAlgorithm.SHA256,
    chunk_size: int = _CHUNK_SIZE,
) -> str:
    """Stream-hash *path* and return the lowercase hex digest.

    Raises:
        FileAccessError: the path is missing, is a directory, or cannot be read.
    """
    file_path = Path(path)
    digest = hashlib.new(HashAlgorithm(algorithm).value)
    try:
        with file_path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as exc:
        raise FileAccessError(
            f"Cannot read {file_path}: {exc.strerror or exc}",
            context={"path": str(file_path), "errno": exc.errno},
        ) from exc
    return digest.hexdigest()


class DigestEngine:
    """Computes file fingerprints off the event loop.

    Stateless apart from its configured algorithm; safe to share between
    concurrent workers.
    """

    def __init__(
        self,
        algorithm: HashAlgorithm | str = HashAlgorithm.SHA256,
        chunk_size: int = _CHUNK_SIZE,
    ) -> None:
        self.algorithm = HashAlgorithm(algorithm)
        self._chunk_size = chunk_size

    def digest_sync(self, path: Union[str, Path]) -> str:
        return hash_file(path, self.algorithm, self._chunk_size)

    async def digest(self, path: Union[str, Path]) -> str:
        """Fingerprint *path* in a worker thread."""
        return await asyncio.to_thread(self.digest_sync, path)

    def digest_bytes(self, content: bytes) -> str:
        return hash_bytes(content, self.algorithm)
