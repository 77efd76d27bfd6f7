"""Waiting for the UI to settle before the next action.

Stability is reached in two phases:

1. *Load complete*: a "content loaded" signal races an "element present"
   signal. If neither fires within the load timeout the wait fails with
   :class:`~shortest_driver.errors.StabilityTimeoutError`.
2. *Quiescence*: every UI mutation restarts a quiet timer; the wait ends once
   the quiet period elapses with no mutation. A ceiling stops the wait for
   UIs that never stop changing (animations, tickers); hitting it is logged
   and does not fail.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from appium.webdriver.common.appiumby import AppiumBy

from .config import StabilityConfig
from .errors import StabilityTimeoutError

LOGGER = logging.getLogger(__name__)

QUIESCENCE_SCRIPT = """
({ quietMs, maxMs }) => new Promise((resolve) => {
  let quietTimer;
  let ceilingTimer;
  const finish = (quiet) => {
    clearTimeout(quietTimer);
    clearTimeout(ceilingTimer);
    observer.disconnect();
    resolve(quiet);
  };
  const observer = new MutationObserver(() => {
    clearTimeout(quietTimer);
    quietTimer = setTimeout(() => finish(true), quietMs);
  });
  observer.observe(document.body || document.documentElement, {
    childList: true,
    subtree: true,
  });
  quietTimer = setTimeout(() => finish(true), quietMs);
  if (maxMs !== null) {
    ceilingTimer = setTimeout(() => finish(false), maxMs);
  }
})
"""


class QuietPeriod:
    """Resolve once ``quiet`` seconds pass without a call to :meth:`notify`."""

    def __init__(self, quiet: float, ceiling: Optional[float] = None) -> None:
        self._quiet = quiet
        self._ceiling = ceiling
        self._mutated = asyncio.Event()
        self.mutations = 0

    def notify(self) -> None:
        """Record a mutation, restarting the quiet timer."""

        self.mutations += 1
        self._mutated.set()

    async def wait(self) -> bool:
        """Return ``True`` once quiet, ``False`` if the ceiling was reached first."""

        loop = asyncio.get_running_loop()
        deadline = None if self._ceiling is None else loop.time() + self._ceiling
        while True:
            self._mutated.clear()
            timeout = self._quiet
            capped = False
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
                if remaining < timeout:
                    timeout = remaining
                    capped = True
            try:
                await asyncio.wait_for(self._mutated.wait(), timeout)
            except asyncio.TimeoutError:
                return not capped


class StabilityDetector(ABC):
    """Two-phase wait for a page or app screen to stop changing."""

    def __init__(
        self,
        config: Optional[StabilityConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or StabilityConfig()
        self._logger = logger or LOGGER

    async def wait_until_stable(self) -> bool:
        """Wait for load completion, then quiescence.

        Returns ``False`` when the quiescence ceiling cut the wait short.
        """

        await self.wait_for_load()
        return await self.wait_for_quiet()

    async def wait_for_load(self) -> None:
        timeout_ms = self._config.load_timeout_ms
        tasks = [asyncio.ensure_future(signal()) for signal in self._load_signals()]
        failures: list[BaseException] = []
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        pending = set(tasks)
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending,
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done:
                    error = task.exception()
                    if error is None:
                        return
                    failures.append(error)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        raise StabilityTimeoutError(
            f"Timed out after {timeout_ms}ms waiting for the UI to load.",
            cause=failures[-1] if failures else None,
            context={"timeout_ms": timeout_ms},
        )

    async def wait_for_quiet(self) -> bool:
        quiet = await self._wait_for_quiet(
            self._config.quiet_period_ms / 1000,
            None if self._config.max_quiet_wait_ms is None else self._config.max_quiet_wait_ms / 1000,
        )
        if not quiet:
            self._logger.warning(
                "UI kept changing for %sms; continuing without a quiet period",
                self._config.max_quiet_wait_ms,
            )
        return quiet

    @abstractmethod
    def _load_signals(self) -> list[Callable[[], Awaitable[Any]]]:
        """Return the signals raced in the load-complete phase."""

    @abstractmethod
    async def _wait_for_quiet(self, quiet: float, ceiling: Optional[float]) -> bool:
        """Wait for the quiescence phase."""


class WebStabilityDetector(StabilityDetector):
    """Stability detection for a Playwright page using a MutationObserver."""

    def __init__(self, page: Any, config: Optional[StabilityConfig] = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self._page = page

    def _load_signals(self) -> list[Callable[[], Awaitable[Any]]]:
        timeout = self._config.load_timeout_ms
        return [
            lambda: self._page.wait_for_load_state("domcontentloaded", timeout=timeout),
            lambda: self._page.wait_for_selector("body", timeout=timeout),
        ]

    async def _wait_for_quiet(self, quiet: float, ceiling: Optional[float]) -> bool:
        result = await self._page.evaluate(
            QUIESCENCE_SCRIPT,
            {
                "quietMs": int(quiet * 1000),
                "maxMs": None if ceiling is None else int(ceiling * 1000),
            },
        )
        return bool(result)


class MobileStabilityDetector(StabilityDetector):
    """Stability detection for an Appium session.

    Native UIs expose no mutation events, so the page source is polled and
    every change is treated as a mutation.
    """

    def __init__(self, session: Any, config: Optional[StabilityConfig] = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self._session = session

    @property
    def _poll_interval(self) -> float:
        return self._config.poll_interval_ms / 1000

    async def _page_source(self) -> str:
        return await asyncio.to_thread(lambda: self._session.page_source)

    async def _content_loaded(self) -> None:
        while not await self._page_source():
            await asyncio.sleep(self._poll_interval)

    async def _element_present(self) -> None:
        while not await asyncio.to_thread(self._session.find_elements, AppiumBy.XPATH, "//*"):
            await asyncio.sleep(self._poll_interval)

    def _load_signals(self) -> list[Callable[[], Awaitable[Any]]]:
        return [self._content_loaded, self._element_present]

    async def _wait_for_quiet(self, quiet: float, ceiling: Optional[float]) -> bool:
        period = QuietPeriod(quiet, ceiling)

        async def watch() -> None:
            previous = await self._page_source()
            while True:
                await asyncio.sleep(self._poll_interval)
                current = await self._page_source()
                if current != previous:
                    period.notify()
                    previous = current

        watcher = asyncio.ensure_future(watch())
        try:
            return await period.wait()
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
