"""Tests for shared decorators."""
from __future__ import annotations

import pytest

from shieldops.shared.decorators import retry
from shieldops.shared.exceptions import NetworkError

pytestmark = pytest.mark.asyncio


class TestRetry:

    async def test_succeeds_after_transient_failures(self) -> None:
        calls = 0

        @retry(max_attempts=3, delay=0, exceptions=(NetworkError,))
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise NetworkError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert calls == 3

    async def test_raises_last_error_when_exhausted(self) -> None:
        calls = 0

        @retry(max_attempts=2, delay=0, exceptions=(NetworkError,))
        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise NetworkError(f"attempt {calls}")

        with pytest.raises(NetworkError, match="attempt 2"):
            await broken()
        assert calls == 2

    async def test_retry_if_rejection_raises_immediately(self) -> None:
        calls = 0

        @retry(max_attempts=5, delay=0, exceptions=(NetworkError,), retry_if=lambda e: e.transient)
        async def not_found() -> None:
            nonlocal calls
            calls += 1
            raise NetworkError("gone", status_code=404)

        with pytest.raises(NetworkError):
            await not_found()
        assert calls == 1

    async def test_unlisted_exceptions_are_not_retried(self) -> None:
        calls = 0

        @retry(max_attempts=3, delay=0, exceptions=(NetworkError,))
        async def bug() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bug")

        with pytest.raises(ValueError):
            await bug()
        assert calls == 1

    async def test_rejects_non_positive_attempts(self) -> None:
        with pytest.raises(ValueError):
            retry(max_attempts=0)
