"""Test the streaming digest engine."""
import hashlib
import os
import sys

import pytest

from shieldops.engine.scanner.digest import DigestEngine, HashAlgorithm, hash_bytes, hash_file
from shieldops.shared.exceptions import FileAccessError


def test_hash_file_matches_hashlib(tmp_path):
    p = tmp_path / "a.txt"
    p.write_bytes(b"hello")
    assert hash_file(p) == hashlib.sha256(b"hello").hexdigest()


def test_empty_file_is_digest_of_empty_input(tmp_path):
    p = tmp_path / "empty"
    p.write_bytes(b"")
    assert hash_file(p) == hashlib.sha256(b"").hexdigest()


def test_chunking_does_not_change_digest(tmp_path):
    data = os.urandom(200_000)
    p = tmp_path / "big.bin"
    p.write_bytes(data)
    expected = hashlib.sha256(data).hexdigest()
    assert hash_file(p, chunk_size=7) == expected
    assert hash_file(p, chunk_size=1 << 20) == expected


@pytest.mark.parametrize("algorithm", list(HashAlgorithm))
def test_supported_algorithms(tmp_path, algorithm):
    p = tmp_path / "a.txt"
    p.write_bytes(b"payload")
    assert hash_file(p, algorithm) == hashlib.new(algorithm.value, b"payload").hexdigest()
    assert hash_bytes(b"payload", algorithm) == hash_file(p, algorithm)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileAccessError) as exc_info:
        hash_file(tmp_path / "nope")
    assert exc_info.value.context["path"].endswith("nope")


def test_directory_raises(tmp_path):
    with pytest.raises(FileAccessError):
        hash_file(tmp_path)


@pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0, reason="root bypasses file modes")
def test_permission_denied_raises(tmp_path):
    p = tmp_path / "secret"
    p.write_bytes(b"x")
    p.chmod(0)
    try:
        with pytest.raises(FileAccessError):
            hash_file(p)
    finally:
        p.chmod(0o600)


def test_unknown_algorithm_rejected(tmp_path):
    with pytest.raises(ValueError):
        DigestEngine("md4-ish")


@pytest.mark.asyncio
async def test_engine_digest_async(tmp_path):
    p = tmp_path / "a.txt"
    p.write_bytes(b"hello")
    engine = DigestEngine()
    assert await engine.digest(p) == hashlib.sha256(b"hello").hexdigest()
    assert engine.digest_bytes(b"hello") == await engine.digest(p)


@pytest.mark.asyncio
async def test_engine_digest_async_propagates_typed_error(tmp_path):
    with pytest.raises(FileAccessError):
        await DigestEngine().digest(tmp_path / "missing")
