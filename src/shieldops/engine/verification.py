"""Content verification hook run on fetched bytes before any overwrite."""
from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from shieldops.domain.manifest import Manifest
from shieldops.engine.scanner.digest import HashAlgorithm, hash_bytes
from shieldops.shared.exceptions import ContentVerificationError

logger = structlog.get_logger(__name__)


@runtime_checkable
class ContentVerifier(Protocol):
    """Accepts or rejects canonical content for a path.

    Implementations raise :class:`ContentVerificationError` to reject.
    """

    def verify(self, relative_path: str, content: bytes) -> None: ...


class AcceptAllVerifier:
    """Trusts transport-level success alone."""

    def verify(self, relative_path: str, content: bytes) -> None:
        return None


class ManifestDigestVerifier:
    """Requires fetched bytes to hash to the manifest's trusted digest."""

    def __init__(self, manifest: Manifest, algorithm: HashAlgorithm | str = HashAlgorithm.SHA256) -> None:
        self._manifest = manifest
        self._algorithm = HashAlgorithm(algorithm)

    def verify(self, relative_path: str, content: bytes) -> None:
        expected = self._manifest.expected_digest(relative_path)
        if expected is None:
            raise ContentVerificationError(
                f"No trusted digest for {relative_path}",
                context={"relative_path": relative_path},
            )
        actual = hash_bytes(content, self._algorithm)
        if actual != expected:
            logger.error(
                "content_verification_failed",
                relative_path=relative_path,
                expected=expected,
                actual=actual,
            )
            raise ContentVerificationError(
                f"Fetched content for {relative_path} does not match the trusted digest",
                context={"relative_path": relative_path, "expected": expected, "actual": actual},
            )
