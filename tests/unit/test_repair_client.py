"""Tests for the fetch-backup-overwrite repair primitive."""
from __future__ import annotations

import asyncio
import hashlib
import os
import stat
import sys

import pytest

from shieldops.domain.manifest import Manifest
from shieldops.engine.repair_client import RepairClient, atomic_write_bytes, backup_path_for
from shieldops.engine.verification import ManifestDigestVerifier

pytestmark = pytest.mark.asyncio


class TestRepair:

    async def test_overwrites_and_backs_up(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        client = RepairClient(make_provider(files={"a.txt": b"hello"}))

        result = await client.repair("a.txt", dest)

        assert result.success is True
        assert result.bytes_written == 5
        assert dest.read_bytes() == b"hello"
        backup = tmp_path / "a.txt.bak"
        assert result.backup_path == str(backup)
        assert backup.read_bytes() == b"tampered"

    async def test_exactly_one_backup_artifact(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        await RepairClient(make_provider(files={"a.txt": b"hello"})).repair("a.txt", dest)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt", "a.txt.bak"]

    async def test_backup_disabled(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        client = RepairClient(make_provider(files={"a.txt": b"hello"}), backup_enabled=False)

        result = await client.repair("a.txt", dest)

        assert result.success is True
        assert result.backup_path is None
        assert not (tmp_path / "a.txt.bak").exists()

    async def test_custom_backup_suffix(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"old")
        client = RepairClient(make_provider(files={"a.txt": b"new"}), backup_suffix=".orig")
        result = await client.repair("a.txt", dest)
        assert result.backup_path == str(tmp_path / "a.txt.orig")

    async def test_missing_destination_created_without_backup(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "new.txt"
        result = await RepairClient(make_provider(files={"new.txt": b"fresh"})).repair("new.txt", dest)
        assert result.success is True
        assert result.backup_path is None
        assert dest.read_bytes() == b"fresh"

    async def test_fetch_failure_leaves_destination_untouched(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        client = RepairClient(make_provider(files={}))

        result = await client.repair("a.txt", dest)

        assert result.success is False
        assert result.error_code == "SHIELD_REPAIR_ERROR"
        assert "a.txt" in result.error
        assert dest.read_bytes() == b"tampered"
        assert not (tmp_path / "a.txt.bak").exists()

    async def test_verifier_rejection_leaves_destination_untouched(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        manifest = Manifest({"a.txt": hashlib.sha256(b"hello").hexdigest()})
        client = RepairClient(make_provider(files={"a.txt": b"evil"}))

        result = await client.repair("a.txt", dest, verifier=ManifestDigestVerifier(manifest))

        assert result.success is False
        assert result.error_code == "SHIELD_CONTENT_VERIFICATION_ERROR"
        assert dest.read_bytes() == b"tampered"

    async def test_verifier_accepts_matching_content(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        manifest = Manifest({"a.txt": hashlib.sha256(b"hello").hexdigest()})
        client = RepairClient(make_provider(files={"a.txt": b"hello"}), verifier=ManifestDigestVerifier(manifest))
        assert (await client.repair("a.txt", dest)).success is True

    async def test_unexpected_fetch_failure_reported_not_raised(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        provider = make_provider(files={"a.txt": b"hello"})

        async def broken_fetch(relative_path: str) -> bytes:
            raise RuntimeError("provider bug")

        provider.fetch_file = broken_fetch

        result = await RepairClient(provider).repair("a.txt", dest)

        assert result.success is False
        assert result.error_code == "SHIELD_REPAIR_ERROR"
        assert "provider bug" in result.error
        assert dest.read_bytes() == b"tampered"

    async def test_write_failure_reported_not_raised(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "no_such_dir" / "a.txt"
        result = await RepairClient(make_provider(files={"a.txt": b"hello"})).repair("a.txt", dest)
        assert result.success is False
        assert result.error_code == "SHIELD_REPAIR_ERROR"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    async def test_permission_bits_preserved(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "run.sh"
        dest.write_bytes(b"echo tampered")
        dest.chmod(0o750)
        await RepairClient(make_provider(files={"run.sh": b"echo ok"})).repair("run.sh", dest)
        assert stat.S_IMODE(os.stat(dest).st_mode) == 0o750

    async def test_concurrent_repairs_of_same_path_do_not_interleave(self, tmp_path, make_provider) -> None:
        dest = tmp_path / "a.txt"
        dest.write_bytes(b"tampered")
        client = RepairClient(make_provider(files={"a.txt": b"hello"}))

        results = await asyncio.gather(*(client.repair("a.txt", dest) for _ in range(5)))

        assert all(r.success for r in results)
        assert dest.read_bytes() == b"hello"
        # Later repairs back up the already-restored bytes.
        assert (tmp_path / "a.txt.bak").read_bytes() in (b"tampered", b"hello")
        assert not [p for p in tmp_path.iterdir() if p.name.endswith(".shieldtmp")]
        assert len(client._path_locks) == 0


class TestAtomicWrite:

    async def test_replaces_content_without_temp_leftovers(self, tmp_path) -> None:
        dest = tmp_path / "f.bin"
        dest.write_bytes(b"old")
        atomic_write_bytes(dest, b"new")
        assert dest.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["f.bin"]

    async def test_backup_path_for(self, tmp_path) -> None:
        assert backup_path_for(tmp_path / "x.py", ".bak") == tmp_path / "x.py.bak"
