"""Reconciliation coordinator — one walk-classify-repair pass over a scan root.

Lifecycle of a pass::

    START → MANIFEST_LOADED → SCANNING → DONE
                                 ↘ CANCELLED (cancel signal, file granularity)
    any non-terminal state → FAILED (walker or manifest infrastructure blew up)

Each discovered file is classified exactly once per pass:

* ``read_error``: digesting failed; logged, pass continues
* ``unregistered``: no manifest entry; logged, never repaired
* ``clean``: digest matches; nothing to do
* ``modified``: digest differs; repaired once unless its basename is in
  the skip set

Per-file work runs on a bounded pool of workers.  Passes against the same
root are serialised.
"""
from __future__ import annotations

import asyncio
import weakref
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncContextManager, ClassVar, TypeVar, Union

import structlog

from shieldops.config import DEFAULT_EXCLUDED_DIRS, DEFAULT_SKIP_FILES, Settings
from shieldops.domain.manifest import Manifest
from shieldops.domain.records import (
    TRANSITIONS,
    Classification,
    FileOutcome,
    FileRecord,
    PassState,
    ReconciliationReport,
)
from shieldops.engine.manifest_client import ManifestClient
from shieldops.engine.repair_client import RepairClient
from shieldops.engine.scanner.digest import DigestEngine
from shieldops.engine.scanner.tree_walker import walk_files
from shieldops.engine.verification import ContentVerifier, ManifestDigestVerifier
from shieldops.infrastructure.external import ContentProvider
from shieldops.infrastructure.logging import bind_pass_context
from shieldops.shared.exceptions import FileAccessError
from shieldops.shared.locks import KeyedLock

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _passthrough(func: F) -> F:
    return func


class ReconciliationCoordinator:
    """Drives reconciliation passes for one scan root.

    Usage::

        coordinator = ReconciliationCoordinator(
            root, manifest_client=ManifestClient(provider),
            repair_client=RepairClient(provider),
        )
        report = await coordinator.run_pass()

    ``middleware`` is applied to each core operation (manifest load, tree
    walk, digest, repair); :func:`shieldops.engine.resilience.self_healing`
    is the intended layer.
    """

    _root_locks: ClassVar[weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, KeyedLock]] = (
        weakref.WeakKeyDictionary()
    )

    def __init__(
        self,
        root: Union[str, Path],
        *,
        manifest_client: ManifestClient,
        repair_client: RepairClient,
        digest_engine: DigestEngine | None = None,
        skip_files: Iterable[str] = DEFAULT_SKIP_FILES,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
        max_workers: int = 8,
        verify_fetched_content: bool = False,
        middleware: Callable[[Any], Any] | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.root = Path(root).resolve()
        self.skip_files = frozenset(skip_files)
        self.exclude_dirs = frozenset(exclude_dirs)
        self.max_workers = max_workers
        self.verify_fetched_content = verify_fetched_content

        self._manifest_client = manifest_client
        self._repair_client = repair_client
        self._digest_engine = digest_engine or DigestEngine()

        wrap = middleware or _passthrough
        self._load_manifest = wrap(manifest_client.load)
        self._walk = wrap(walk_files)
        self._digest = wrap(self._digest_engine.digest)
        self._repair = wrap(repair_client.repair)

    @classmethod
    def from_settings(
        cls,
        root: Union[str, Path],
        settings: Settings,
        provider: ContentProvider,
        middleware: Callable[[Any], Any] | None = None,
    ) -> ReconciliationCoordinator:
        return cls(
            root,
            manifest_client=ManifestClient(provider, settings.manifest_path),
            repair_client=RepairClient(
                provider,
                backup_enabled=settings.backup_enabled,
                backup_suffix=settings.backup_suffix,
            ),
            digest_engine=DigestEngine(settings.hash_algorithm),
            skip_files=settings.skip_files,
            exclude_dirs=settings.exclude_dirs,
            max_workers=settings.max_workers,
            verify_fetched_content=settings.verify_fetched_content,
            middleware=middleware,
        )

    # -- public API ---------------------------------------------------------

    async def run_pass(self, cancel_event: asyncio.Event | None = None) -> ReconciliationReport:
        """Execute one reconciliation pass.

        Never raises for file-level or infrastructure failures; those are
        recorded on the returned report.
        """
        report = ReconciliationReport(root=str(self.root))
        async with self._root_lock():
            with bind_pass_context(pass_id=report.pass_id):
                logger.info("reconciliation_pass_start", root=str(self.root))
                try:
                    await self._execute(report, cancel_event)
                except Exception as exc:
                    report.critical_error = f"{type(exc).__name__}: {exc}"
                    if PassState.FAILED in TRANSITIONS[report.state]:
                        self._transition(report, PassState.FAILED)
                    logger.critical(
                        "reconciliation_critical_failure",
                        root=str(self.root),
                        error=report.critical_error,
                        exc_info=not isinstance(exc, FileAccessError),
                    )
                report.completed_at = datetime.now(timezone.utc)
                logger.info("reconciliation_pass_complete", **report.summary())
        return report

    # -- pass phases --------------------------------------------------------

    async def _execute(self, report: ReconciliationReport, cancel_event: asyncio.Event | None) -> None:
        if self._cancelled(cancel_event):
            report.cancelled = True
            self._transition(report, PassState.CANCELLED)
            logger.warning("reconciliation_cancelled_before_start")
            return

        manifest: Manifest = await self._load_manifest()
        report.manifest_entries = len(manifest)
        self._transition(report, PassState.MANIFEST_LOADED)
        if not manifest:
            logger.warning("manifest_empty_all_files_unregistered")

        paths = await asyncio.to_thread(self._walk, self.root, self.exclude_dirs)
        report.files_discovered = len(paths)
        self._transition(report, PassState.SCANNING)

        verifier: ContentVerifier | None = None
        if self.verify_fetched_content:
            verifier = ManifestDigestVerifier(manifest, self._digest_engine.algorithm)

        records: Iterator[FileRecord] = (FileRecord.from_path(self.root, p) for p in paths)
        outcomes: list[FileOutcome] = []

        async def worker() -> None:
            for record in records:
                if self._cancelled(cancel_event):
                    return
                outcomes.append(await self._process_file(record, manifest, verifier))

        await asyncio.gather(*(worker() for _ in range(min(self.max_workers, max(len(paths), 1)))))
        report.outcomes = outcomes

        if len(outcomes) < len(paths):
            report.cancelled = True
            self._transition(report, PassState.CANCELLED)
            logger.warning(
                "reconciliation_cancelled",
                processed=len(outcomes),
                remaining=len(paths) - len(outcomes),
            )
        else:
            self._transition(report, PassState.DONE)

    async def _process_file(
        self,
        record: FileRecord,
        manifest: Manifest,
        verifier: ContentVerifier | None,
    ) -> FileOutcome:
        log = logger.bind(relative_path=record.relative_path)
        outcome: FileOutcome | None = None
        try:
            try:
                actual = await self._digest(record.absolute_path)
            except FileAccessError as exc:
                log.warning("file_read_error", error=exc.message)
                return FileOutcome(
                    relative_path=record.relative_path,
                    classification=Classification.READ_ERROR,
                    error=exc.message,
                )

            expected = manifest.expected_digest(record.relative_path)
            if expected is None:
                log.warning("file_unregistered", digest=actual)
                return FileOutcome(
                    relative_path=record.relative_path,
                    classification=Classification.UNREGISTERED,
                    actual_digest=actual,
                )

            if actual == expected:
                log.info("file_clean")
                return FileOutcome(
                    relative_path=record.relative_path,
                    classification=Classification.CLEAN,
                    actual_digest=actual,
                    expected_digest=expected,
                )

            outcome = FileOutcome(
                relative_path=record.relative_path,
                classification=Classification.MODIFIED,
                actual_digest=actual,
                expected_digest=expected,
            )
            log.error("file_modified", expected=expected, actual=actual)

            if record.basename in self.skip_files:
                outcome.repair_skipped = True
                log.info("repair_skipped", reason="skip_list")
                return outcome

            outcome.repair_attempted = True
            result = await self._repair(record.relative_path, record.absolute_path, verifier=verifier)
            outcome.repair = result
            if result.success:
                log.info("repair_succeeded", backup_path=result.backup_path)
            else:
                log.error("repair_failed", error=result.error, error_code=result.error_code)
            return outcome

        except Exception as exc:
            log.error("file_processing_error", error=str(exc), exc_info=True)
            if outcome is None:
                return FileOutcome(
                    relative_path=record.relative_path,
                    classification=Classification.READ_ERROR,
                    error=str(exc),
                )
            outcome.error = str(exc)
            return outcome

    # -- helpers ------------------------------------------------------------

    def _root_lock(self) -> AsyncContextManager[None]:
        locks = self._root_locks.setdefault(asyncio.get_running_loop(), KeyedLock())
        return locks.hold(str(self.root))

    @staticmethod
    def _cancelled(cancel_event: asyncio.Event | None) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _transition(report: ReconciliationReport, target: PassState) -> None:
        if target not in TRANSITIONS[report.state]:
            raise RuntimeError(f"Invalid pass transition {report.state.value} -> {target.value}")
        logger.debug("pass_transition", from_state=report.state.value, to_state=target.value)
        report.state = target
