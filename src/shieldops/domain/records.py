"""Per-pass records: discovered files, classifications, and the pass report.

A reconciliation pass walks through these states::

    START → MANIFEST_LOADED → SCANNING → DONE

with ``FAILED`` (critical, infrastructure-level failure) and ``CANCELLED``
(external cancellation signal) as the other terminal states.
"""
from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from shieldops.domain.manifest import normalize_relative_path


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Classification(StrEnum):
    """Outcome of comparing one file against the manifest."""

    CLEAN = "clean"
    MODIFIED = "modified"
    UNREGISTERED = "unregistered"
    READ_ERROR = "read_error"


class PassState(StrEnum):
    """Lifecycle states for a reconciliation pass."""

    START = "start"
    MANIFEST_LOADED = "manifest_loaded"
    SCANNING = "scanning"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[PassState, frozenset[PassState]] = {
    PassState.START: frozenset({PassState.MANIFEST_LOADED, PassState.FAILED, PassState.CANCELLED}),
    PassState.MANIFEST_LOADED: frozenset({PassState.SCANNING, PassState.FAILED, PassState.CANCELLED}),
    PassState.SCANNING: frozenset({PassState.DONE, PassState.FAILED, PassState.CANCELLED}),
    PassState.DONE: frozenset(),
    PassState.FAILED: frozenset(),
    PassState.CANCELLED: frozenset(),
}


# ---------------------------------------------------------------------------
# File-level records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """A regular file discovered under the scan root."""

    absolute_path: Path
    relative_path: str
    basename: str

    @classmethod
    def from_path(cls, root: Path, path: Path) -> FileRecord:
        rel = normalize_relative_path(str(path.relative_to(root)))
        return cls(absolute_path=path, relative_path=rel, basename=path.name)


class RepairResult(BaseModel):
    """Outcome of a single repair attempt.

    Attributes:
        relative_path: Path requested from the content provider.
        destination: Local path that was (or would have been) overwritten.
        success: Whether the destination now holds the canonical bytes.
        bytes_written: Size of the canonical content written.
        backup_path: Backup artifact created before the overwrite, if any.
        backup_error: Why a requested backup could not be made.
        error: Failure description when ``success`` is false.
    """

    relative_path: str
    destination: str
    success: bool = False
    bytes_written: int = 0
    backup_path: str | None = None
    backup_error: str | None = None
    error: str | None = None
    error_code: str | None = None


class FileOutcome(BaseModel):
    """Classification and repair outcome for one file in one pass."""

    relative_path: str
    classification: Classification
    actual_digest: str | None = None
    expected_digest: str | None = None
    repair_attempted: bool = False
    repair_skipped: bool = False
    repair: RepairResult | None = None
    error: str | None = None

    @property
    def unrepaired(self) -> bool:
        """Modified, not exempt, and still not matching the manifest after this pass."""
        if self.classification != Classification.MODIFIED or self.repair_skipped:
            return False
        return self.repair is None or not self.repair.success


# ---------------------------------------------------------------------------
# Pass report
# ---------------------------------------------------------------------------


class ReconciliationReport(BaseModel):
    """Aggregated result of one reconciliation pass.

    Attributes:
        pass_id: Unique identifier of the pass.
        root: Absolute scan root.
        state: Current lifecycle state.
        started_at: UTC start time.
        completed_at: UTC completion time (``None`` while running).
        manifest_entries: Number of trusted entries loaded.
        files_discovered: Regular files enumerated by the walker.
        outcomes: One entry per processed file.
        cancelled: Whether the pass stopped early on a cancellation signal.
        critical_error: Infrastructure failure that ended the pass.
    """

    pass_id: str = Field(default_factory=lambda: f"PASS-{uuid.uuid4().hex[:12]}")
    root: str
    state: PassState = PassState.START
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    manifest_entries: int = 0
    files_discovered: int = 0
    outcomes: list[FileOutcome] = Field(default_factory=list)
    cancelled: bool = False
    critical_error: str | None = None

    # -- aggregation ----------------------------------------------------------

    def counts(self) -> dict[Classification, int]:
        counter = Counter(o.classification for o in self.outcomes)
        return {c: counter.get(c, 0) for c in Classification}

    def classifications(self) -> dict[str, Classification]:
        return {o.relative_path: o.classification for o in self.outcomes}

    @property
    def repairs_attempted(self) -> int:
        return sum(1 for o in self.outcomes if o.repair_attempted)

    @property
    def repairs_succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.repair is not None and o.repair.success)

    @property
    def repairs_failed(self) -> int:
        return self.repairs_attempted - self.repairs_succeeded

    @property
    def repairs_skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.repair_skipped)

    def unrepaired(self) -> list[FileOutcome]:
        """Modified files the pass did not bring back to the trusted state."""
        return [o for o in self.outcomes if o.unrepaired]

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return round((self.completed_at - self.started_at).total_seconds(), 3)

    def summary(self) -> dict[str, Any]:
        """Return a concise summary for logging and CLI output."""
        return {
            "pass_id": self.pass_id,
            "root": self.root,
            "state": self.state.value,
            "duration_seconds": self.duration_seconds,
            "manifest_entries": self.manifest_entries,
            "files_discovered": self.files_discovered,
            "files_processed": len(self.outcomes),
            **{f"{c.value}_count": n for c, n in self.counts().items()},
            "repairs_attempted": self.repairs_attempted,
            "repairs_succeeded": self.repairs_succeeded,
            "repairs_failed": self.repairs_failed,
            "repairs_skipped": self.repairs_skipped,
            "cancelled": self.cancelled,
            "critical_error": self.critical_error,
        }
