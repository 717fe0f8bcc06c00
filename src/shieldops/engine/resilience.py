"""Resilience layer — self-update, self-healing middleware, last-resort hooks.

Self-update re-fetches the engine's own source from the content provider and
overwrites the local copy through the same :class:`RepairClient` primitive
used for ordinary files.  It is opt-in (``self_update_enabled``) and runs:

* explicitly, via :meth:`SelfUpdater.self_update`;
* at most once per process after an unexpected failure, via
  :func:`self_healing` or the hooks installed by
  :func:`install_last_resort_handler`.

The original failure is always re-raised (or handed to the previous hook);
self-repair is a side effect, never a replacement for error reporting.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from contextvars import ContextVar
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, TypeVar

import structlog
from pydantic import BaseModel

import shieldops
from shieldops.config import Settings
from shieldops.domain.records import RepairResult
from shieldops.engine.repair_client import RepairClient
from shieldops.shared.exceptions import ShieldError

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_in_self_repair: ContextVar[bool] = ContextVar("shieldops_in_self_repair", default=False)


class SelfUpdateResult(BaseModel):
    """Outcome of a self-update request."""

    attempted: bool = False
    success: bool = False
    skipped_reason: str | None = None
    repair: RepairResult | None = None
    error: str | None = None


def default_engine_source() -> Path:
    """Source file of the engine's entry module inside the installed package.

    Resolved from the package rather than the running ``__main__``, which
    under a console script is the launcher in ``bin/``.
    """
    return Path(shieldops.__file__).resolve().with_name("__main__.py")


class SelfUpdater:
    """Replaces the running engine's source file with the canonical copy."""

    def __init__(
        self,
        repair_client: RepairClient,
        *,
        remote_path: str | None,
        local_path: Path | None = None,
        enabled: bool = False,
    ) -> None:
        self._repair_client = repair_client
        self.remote_path = remote_path
        self.local_path = local_path or default_engine_source()
        self.enabled = enabled
        self._attempt_lock = threading.Lock()
        self._attempt_started = False

    @classmethod
    def from_settings(cls, settings: Settings, repair_client: RepairClient) -> SelfUpdater:
        return cls(
            repair_client,
            remote_path=settings.self_update_path,
            local_path=settings.self_update_local_path,
            enabled=settings.self_update_enabled,
        )

    async def self_update(self) -> SelfUpdateResult:
        """Fetch and install the engine's canonical source.

        Failures are logged and reported in the result, never raised.
        """
        if not self.enabled:
            logger.info("self_update_skipped", reason="disabled")
            return SelfUpdateResult(skipped_reason="disabled")
        if not self.remote_path or self.local_path is None:
            logger.warning(
                "self_update_skipped",
                reason="unconfigured",
                remote_path=self.remote_path,
                local_path=str(self.local_path) if self.local_path else None,
            )
            return SelfUpdateResult(skipped_reason="unconfigured")

        token = _in_self_repair.set(True)
        try:
            repair = await self._repair_client.repair(self.remote_path, self.local_path)
        except Exception as exc:
            logger.error("self_update_error", error=str(exc), exc_info=True)
            return SelfUpdateResult(attempted=True, error=str(exc))
        finally:
            _in_self_repair.reset(token)

        if repair.success:
            logger.warning(
                "self_update_applied",
                local_path=str(self.local_path),
                backup_path=repair.backup_path,
            )
        else:
            logger.error("self_update_failed", local_path=str(self.local_path), error=repair.error)
        return SelfUpdateResult(attempted=True, success=repair.success, repair=repair, error=repair.error)

    async def attempt(self, reason: BaseException | None = None) -> SelfUpdateResult:
        """One-shot self-repair triggered by a failure."""
        if _in_self_repair.get():
            logger.warning("self_repair_reentry_blocked")
            return SelfUpdateResult(skipped_reason="reentrant")
        with self._attempt_lock:
            if self._attempt_started:
                logger.info("self_repair_already_attempted")
                return SelfUpdateResult(skipped_reason="already_attempted")
            self._attempt_started = True

        logger.warning(
            "self_repair_triggered",
            error_type=type(reason).__name__ if reason else None,
            error=str(reason) if reason else None,
        )
        return await self.self_update()

    def attempt_blocking(self, reason: BaseException | None = None) -> SelfUpdateResult:
        """Run :meth:`attempt` from synchronous code."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.attempt(reason))
        # A loop already runs in this thread; do the work on a fresh one.
        with ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, self.attempt(reason)).result()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def self_healing(
    updater: SelfUpdater,
    *,
    expected: tuple[type[BaseException], ...] = (ShieldError,),
) -> Callable[[F], F]:
    """Wrap an operation so unexpected failures trigger one self-repair.

    Exceptions listed in *expected* are part of the operation's contract
    (e.g. an unreadable file) and pass through untouched.
    """

    def decorator(func: F) -> F:
        name = getattr(func, "__qualname__", repr(func))

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(*args, **kwargs)
                except expected:
                    raise
                except Exception as exc:
                    logger.error("operation_failed", operation=name, error=str(exc), exc_info=True)
                    await updater.attempt(exc)
                    raise

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except expected:
                raise
            except Exception as exc:
                logger.error("operation_failed", operation=name, error=str(exc), exc_info=True)
                updater.attempt_blocking(exc)
                raise

        return sync_wrapper  # type: ignore[return-value]

    return decorator


# ---------------------------------------------------------------------------
# Process-wide last-resort handler
# ---------------------------------------------------------------------------


class LastResortHandler:
    """``sys.excepthook`` / ``threading.excepthook`` pair that self-repairs once."""

    def __init__(self, updater: SelfUpdater) -> None:
        self._updater = updater
        self._lock = threading.Lock()
        self._fired = False
        self._previous_sys_hook: Callable[..., Any] | None = None
        self._previous_thread_hook: Callable[..., Any] | None = None

    @property
    def fired(self) -> bool:
        return self._fired

    def install(self) -> LastResortHandler:
        self._previous_sys_hook = sys.excepthook
        self._previous_thread_hook = threading.excepthook
        sys.excepthook = self._sys_hook
        threading.excepthook = self._thread_hook
        logger.debug("last_resort_handler_installed")
        return self

    def uninstall(self) -> None:
        if self._previous_sys_hook is not None:
            sys.excepthook = self._previous_sys_hook
        if self._previous_thread_hook is not None:
            threading.excepthook = self._previous_thread_hook
        self._previous_sys_hook = None
        self._previous_thread_hook = None

    def _sys_hook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            self.handle(exc)
        (self._previous_sys_hook or sys.__excepthook__)(exc_type, exc, tb)

    def _thread_hook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None and not isinstance(args.exc_value, SystemExit):
            self.handle(args.exc_value)
        (self._previous_thread_hook or threading.__excepthook__)(args)

    def handle(self, exc: BaseException) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
        logger.critical("unhandled_failure", error_type=type(exc).__name__, error=str(exc))
        try:
            self._updater.attempt_blocking(exc)
        except Exception as repair_exc:
            logger.error("self_repair_handler_error", error=str(repair_exc))


def install_last_resort_handler(updater: SelfUpdater) -> LastResortHandler:
    """Install and return the process-wide last-resort handler."""
    return LastResortHandler(updater).install()


__all__ = [
    "LastResortHandler",
    "SelfUpdateResult",
    "SelfUpdater",
    "install_last_resort_handler",
    "self_healing",
]
