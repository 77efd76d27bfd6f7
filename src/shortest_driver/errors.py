"""Exception hierarchy for the shortest driver."""

from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar


class ShortestError(RuntimeError):
    """Base exception carrying an optional cause and execution context.

    Attributes:
        message: Human-readable summary of the failure.
        cause: Underlying exception, also chained as ``__cause__``.
        context: Inputs of the failed operation (coordinates, text, keys...).
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = self.message
        if self.cause is not None:
            text = f"{text} Caused by: {type(self.cause).__name__}: {self.cause}"
        return text

    def describe(self) -> str:
        """Render the message, cause chain and context on separate lines."""

        lines = [f"[{type(self).__name__}] {self.message}"]
        cause = self.cause
        depth = 1
        while cause is not None:
            lines.append(f"{'  ' * depth}caused by {type(cause).__name__}: {cause}")
            cause = cause.__cause__
            depth += 1
        if self.context:
            lines.append(f"context: {self.context}")
        return "\n".join(lines)


class SessionNotInitializedError(ShortestError):
    """A driver or browser was used before it was ready or after teardown."""


class ActionFailedError(ShortestError):
    """A browser action failed."""


class StabilityTimeoutError(ShortestError):
    """The UI did not report load completion within the allowed time."""


class UnsupportedPlatformActionError(ShortestError):
    """An action is meaningless on the platform of the browser."""

    def __init__(self, action: str, platform: str) -> None:
        super().__init__(
            f"Action '{action}' is not supported on the {platform} platform.",
            context={"action": action, "platform": platform},
        )
        self.action = action
        self.platform = platform


class DriverInitializationError(ShortestError):
    """The driver could not connect to its automation session."""


class SessionNotFoundError(ShortestError):
    """No browser is registered under the requested id."""

    def __init__(self, browser_id: str) -> None:
        super().__init__(
            f"Browser session with ID {browser_id} not found.",
            context={"id": browser_id},
        )
        self.browser_id = browser_id


class UnsupportedPlatformError(ShortestError):
    """The driver factory has no driver for the requested platform."""


E = TypeVar("E", bound=ShortestError)


def log_failure(logger: logging.Logger, error: E) -> E:
    """Log ``error`` with its cause chain and context and return it for raising."""

    logger.error("%s", error.describe(), exc_info=error.cause)
    return error
