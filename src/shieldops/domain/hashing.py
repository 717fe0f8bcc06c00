"""Digest algorithms a manifest may be expressed in."""
from __future__ import annotations

import enum


class HashAlgorithm(str, enum.Enum):
    """Supported digest algorithms."""

    SHA256 = "sha256"
    SHA512 = "sha512"
    BLAKE2B = "blake2b"
