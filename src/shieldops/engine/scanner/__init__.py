"""Local-tree sensing: file enumeration and content digests."""
from __future__ import annotations

from shieldops.engine.scanner.digest import DigestEngine, HashAlgorithm, hash_bytes, hash_file
from shieldops.engine.scanner.tree_walker import walk_files

__all__ = ["DigestEngine", "HashAlgorithm", "hash_bytes", "hash_file", "walk_files"]
