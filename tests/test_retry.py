from __future__ import annotations

import logging

import pytest

from shortest_driver.retry import retry

pytestmark = pytest.mark.anyio


class Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return "ok"


async def test_retry_returns_first_success(caplog) -> None:
    func = Flaky(failures=2)

    with caplog.at_level(logging.WARNING):
        assert await retry(func, attempts=3, description="connect") == "ok"

    assert func.calls == 3
    assert "Retry 1/3: connect failed" in caplog.text
    assert "Retry 2/3: connect failed" in caplog.text


async def test_retry_raises_last_failure() -> None:
    func = Flaky(failures=5)

    with pytest.raises(ConnectionError, match="attempt 3 failed"):
        await retry(func, attempts=3)

    assert func.calls == 3


async def test_single_attempt_is_not_retried() -> None:
    func = Flaky(failures=1)

    with pytest.raises(ConnectionError):
        await retry(func, attempts=1)

    assert func.calls == 1


async def test_retry_requires_an_attempt() -> None:
    with pytest.raises(ValueError):
        await retry(Flaky(failures=0), attempts=0)
