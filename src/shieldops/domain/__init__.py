"""Domain model: manifest, file records, classifications, and pass reports."""
from __future__ import annotations

from shieldops.domain.coordinates import ProviderCoordinates
from shieldops.domain.hashing import HashAlgorithm
from shieldops.domain.manifest import Manifest, normalize_relative_path
from shieldops.domain.records import (
    Classification,
    FileOutcome,
    FileRecord,
    PassState,
    ReconciliationReport,
    RepairResult,
)

__all__ = [
    "Classification",
    "FileOutcome",
    "FileRecord",
    "HashAlgorithm",
    "Manifest",
    "PassState",
    "ProviderCoordinates",
    "ReconciliationReport",
    "RepairResult",
    "normalize_relative_path",
]
