"""Root conftest — shared fixtures for all test suites."""
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import pytest

from shieldops.domain.coordinates import ProviderCoordinates
from shieldops.shared.exceptions import NetworkError


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeContentProvider:
    """In-memory content provider recording every fetch."""

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        manifest: dict[str, Any] | bytes | None = None,
        manifest_status: int | None = None,
    ) -> None:
        self.coordinates = ProviderCoordinates(owner="acme", repo="canonical")
        self.files = dict(files or {})
        self.manifest = manifest
        self.manifest_status = manifest_status
        self.manifest_calls = 0
        self.file_calls: list[str] = []

    async def fetch_manifest(self, manifest_path: str) -> bytes:
        self.manifest_calls += 1
        if self.manifest_status is not None:
            raise NetworkError("manifest unavailable", status_code=self.manifest_status)
        if isinstance(self.manifest, bytes):
            return self.manifest
        return json.dumps(self.manifest or {}).encode("utf-8")

    async def fetch_file(self, relative_path: str) -> bytes:
        self.file_calls.append(relative_path)
        if relative_path not in self.files:
            raise NetworkError(f"{relative_path} not found", status_code=404)
        return self.files[relative_path]


@pytest.fixture
def coordinates() -> ProviderCoordinates:
    return ProviderCoordinates(owner="acme", repo="canonical", ref="main")


@pytest.fixture
def scan_root(tmp_path: Path) -> Path:
    """A small tree with a tracked file, a nested file, and VCS metadata."""
    root = tmp_path / "root"
    (root / "pkg").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / "a.txt").write_bytes(b"hello")
    (root / "pkg" / "mod.py").write_bytes(b"print('hi')\n")
    (root / ".git" / "HEAD").write_bytes(b"ref: refs/heads/main\n")
    return root


@pytest.fixture
def make_provider() -> type[FakeContentProvider]:
    return FakeContentProvider
