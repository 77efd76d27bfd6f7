from __future__ import annotations

import asyncio
import logging

import pytest

from shortest_driver.config import StabilityConfig
from shortest_driver.errors import StabilityTimeoutError
from shortest_driver.stability import (
    MobileStabilityDetector,
    QuietPeriod,
    StabilityDetector,
    WebStabilityDetector,
)

pytestmark = pytest.mark.anyio


class ScriptedDetector(StabilityDetector):
    def __init__(self, signals, quiet_result: bool = True, **kwargs) -> None:
        super().__init__(**kwargs)
        self._signals = signals
        self._quiet_result = quiet_result

    def _load_signals(self):
        return self._signals

    async def _wait_for_quiet(self, quiet, ceiling):
        return self._quiet_result


async def _never() -> None:
    await asyncio.sleep(3600)


async def _fail() -> None:
    raise RuntimeError("signal broke")


async def _succeed() -> None:
    await asyncio.sleep(0.01)


async def test_quiet_period_waits_for_last_mutation() -> None:
    loop = asyncio.get_running_loop()
    period = QuietPeriod(0.1)
    waiter = asyncio.ensure_future(period.wait())

    for _ in range(5):
        await asyncio.sleep(0.04)
        assert not waiter.done()
        period.notify()
    last_mutation = loop.time()

    assert await waiter is True
    elapsed = loop.time() - last_mutation
    assert elapsed >= 0.09
    assert period.mutations == 5


async def test_quiet_period_stops_at_ceiling() -> None:
    period = QuietPeriod(0.1, ceiling=0.2)

    async def churn() -> None:
        while True:
            period.notify()
            await asyncio.sleep(0.02)

    churner = asyncio.ensure_future(churn())
    try:
        assert await asyncio.wait_for(period.wait(), 1) is False
    finally:
        churner.cancel()
        await asyncio.gather(churner, return_exceptions=True)


async def test_load_phase_times_out() -> None:
    detector = ScriptedDetector(
        [_never, _never],
        config=StabilityConfig(load_timeout_ms=50),
    )

    with pytest.raises(StabilityTimeoutError) as excinfo:
        await detector.wait_for_load()

    assert excinfo.value.context == {"timeout_ms": 50}


async def test_load_phase_first_success_wins() -> None:
    detector = ScriptedDetector([_fail, _succeed], config=StabilityConfig(load_timeout_ms=500))

    await detector.wait_for_load()


async def test_load_phase_fails_when_every_signal_fails() -> None:
    detector = ScriptedDetector([_fail, _fail], config=StabilityConfig(load_timeout_ms=500))

    with pytest.raises(StabilityTimeoutError) as excinfo:
        await detector.wait_for_load()

    assert isinstance(excinfo.value.cause, RuntimeError)


async def test_ceiling_is_logged_not_raised(caplog) -> None:
    detector = ScriptedDetector([_succeed], quiet_result=False)

    with caplog.at_level(logging.WARNING):
        assert await detector.wait_until_stable() is False

    assert "kept changing" in caplog.text


async def test_web_detector_times_out_on_unloaded_page(fake_context) -> None:
    page = await fake_context.new_page()
    page.loaded = False
    detector = WebStabilityDetector(page, StabilityConfig(load_timeout_ms=50))

    with pytest.raises(StabilityTimeoutError):
        await detector.wait_until_stable()


async def test_web_detector_passes_timings_to_page(fake_context) -> None:
    page = await fake_context.new_page()
    detector = WebStabilityDetector(
        page, StabilityConfig(quiet_period_ms=250, max_quiet_wait_ms=4000)
    )

    assert await detector.wait_until_stable() is True
    index = next(i for i, script in enumerate(page.evaluated) if "MutationObserver" in script)
    assert page.evaluate_args[index] == {"quietMs": 250, "maxMs": 4000}


async def test_web_detector_passes_no_ceiling(fake_context) -> None:
    page = await fake_context.new_page()
    detector = WebStabilityDetector(page, StabilityConfig(quiet_period_ms=100, max_quiet_wait_ms=None))

    await detector.wait_for_quiet()

    assert page.evaluate_args[-1] == {"quietMs": 100, "maxMs": None}


async def test_mobile_detector_settles_on_static_source(fake_session, stability) -> None:
    detector = MobileStabilityDetector(fake_session, stability)

    assert await detector.wait_until_stable() is True


async def test_mobile_detector_hits_ceiling_on_changing_source(fake_session) -> None:
    counter = iter(range(100000))

    class ChangingSession(type(fake_session)):
        @property
        def page_source(self) -> str:
            return f"<hierarchy rev='{next(counter)}'/>"

        @page_source.setter
        def page_source(self, value: str) -> None:
            pass

    detector = MobileStabilityDetector(
        ChangingSession(),
        StabilityConfig(quiet_period_ms=50, max_quiet_wait_ms=150, poll_interval_ms=5),
    )

    assert await detector.wait_for_quiet() is False
