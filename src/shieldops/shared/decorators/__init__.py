"""Shared decorators — bounded retry for async provider calls."""
from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    retry_if: Callable[[BaseException], bool] | None = None,
    max_delay: float = 30.0,
):
    """Retry an async callable with exponential backoff.

    Only exceptions matching *exceptions* are caught.  ``retry_if`` narrows
    that further: a caught exception it rejects is re-raised at once.  The
    wait before attempt ``n + 1`` is ``delay * backoff ** (n - 1)`` capped at
    *max_delay*.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(func: F) -> F:
        name = getattr(func, "__qualname__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            wait = delay
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    if retry_if is not None and not retry_if(exc):
                        raise
                    if attempt >= max_attempts:
                        logger.warning("retry_exhausted", func=name, attempts=attempt, error=str(exc))
                        raise
                    logger.info(
                        "retry_scheduled",
                        func=name,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        wait_seconds=wait,
                        error=str(exc),
                    )
                await asyncio.sleep(wait)
                wait = min(wait * backoff, max_delay)
                attempt += 1

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["retry"]
