"""Repair client — replace a local file with canonical bytes from the provider.

Sequence for one repair:

1. fetch canonical bytes (failure leaves the destination untouched)
2. run the content verifier (rejection leaves the destination untouched)
3. best-effort backup of the current file to ``<path><suffix>``
4. atomic write: temp file in the same directory, fsync, ``os.replace``

Steps 3–4 hold a per-path lock so two repairs of the same path never
interleave their backup and overwrite.
"""
from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

import structlog

from shieldops.domain.records import RepairResult
from shieldops.engine.verification import AcceptAllVerifier, ContentVerifier
from shieldops.infrastructure.external import ContentProvider
from shieldops.shared.exceptions import NetworkError, RepairError, ShieldError
from shieldops.shared.locks import KeyedLock

logger = structlog.get_logger(__name__)

_NEW_FILE_MODE = 0o644


def backup_path_for(destination: Path, suffix: str) -> Path:
    return destination.with_name(destination.name + suffix)


def atomic_write_bytes(destination: Path, content: bytes) -> None:
    """Write *content* to *destination* so readers see old or new bytes, never a mix.

    Permission bits of an existing destination are carried over.
    """
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.",
        suffix=".shieldtmp",
        dir=destination.parent,
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        if destination.exists():
            shutil.copymode(destination, tmp_path)
        else:
            os.chmod(tmp_path, _NEW_FILE_MODE)
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class RepairClient:
    """Fetch-backup-overwrite primitive shared by file repair and self-update."""

    def __init__(
        self,
        provider: ContentProvider,
        *,
        backup_enabled: bool = True,
        backup_suffix: str = ".bak",
        verifier: ContentVerifier | None = None,
    ) -> None:
        self._provider = provider
        self.backup_enabled = backup_enabled
        self.backup_suffix = backup_suffix
        self._verifier: ContentVerifier = verifier or AcceptAllVerifier()
        self._path_locks = KeyedLock()

    async def repair(
        self,
        relative_path: str,
        destination: Union[str, Path],
        *,
        verifier: ContentVerifier | None = None,
    ) -> RepairResult:
        """Replace *destination* with the canonical bytes of *relative_path*.

        Expected failures (fetch, verification, filesystem) are reported in
        the returned :class:`RepairResult` rather than raised.
        """
        dest = Path(destination).absolute()
        result = RepairResult(relative_path=relative_path, destination=str(dest))
        log = logger.bind(relative_path=relative_path, destination=str(dest))

        try:
            content = await self._provider.fetch_file(relative_path)
        except NetworkError as exc:
            error = RepairError(
                f"Failed to fetch {relative_path}: {exc.message}",
                context={"relative_path": relative_path, "status_code": exc.status_code},
            )
            log.error("repair_fetch_failed", status_code=exc.status_code, error=exc.message)
            return self._failed(result, error)
        except Exception as exc:
            error = RepairError(
                f"Failed to fetch {relative_path}: {exc}",
                context={"relative_path": relative_path, "error_type": type(exc).__name__},
            )
            log.error("repair_fetch_failed", error=str(exc), exc_info=True)
            return self._failed(result, error)

        try:
            (verifier or self._verifier).verify(relative_path, content)
        except ShieldError as exc:
            log.error("repair_content_rejected", error=exc.message)
            return self._failed(result, exc)

        async with self._path_locks.hold(str(dest)):
            if self.backup_enabled and dest.exists():
                backup = backup_path_for(dest, self.backup_suffix)
                try:
                    await asyncio.to_thread(shutil.copy2, dest, backup)
                    result.backup_path = str(backup)
                    log.info("repair_backup_created", backup_path=str(backup))
                except OSError as exc:
                    result.backup_error = str(exc)
                    log.warning("repair_backup_failed", backup_path=str(backup), error=str(exc))

            try:
                await asyncio.to_thread(atomic_write_bytes, dest, content)
            except OSError as exc:
                error = RepairError(
                    f"Failed to write {dest}: {exc.strerror or exc}",
                    context={"destination": str(dest), "errno": exc.errno},
                )
                log.error("repair_write_failed", error=error.message)
                return self._failed(result, error)

        result.success = True
        result.bytes_written = len(content)
        log.info("repair_written", bytes_written=len(content))
        return result

    @staticmethod
    def _failed(result: RepairResult, error: ShieldError) -> RepairResult:
        result.success = False
        result.error = error.message
        result.error_code = error.error_code
        return result
