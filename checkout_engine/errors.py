"""
Engine exception taxonomy and user-safe summaries.

Stage-local failures are raised as EngineError subclasses, annotated with the
stage they happened in, and converted into a terminal OrderResult (or a probe
note) at the top of the run. BrowserLaunchError is the exception: the browser
could not start at all, so it propagates to the caller.

Summaries for operators come from get_user_safe_error_summary; the raw
exception text stays in logs and diagnostics only.
"""

from __future__ import annotations

from typing import Any, Optional

from checkout_engine.models import BotBlockSignal, RunStage


class EngineError(Exception):
    """Base class for classified run failures."""

    default_stage: Optional[RunStage] = None
    summary = "Run failed"

    def __init__(self, message: str, *, stage: Optional[RunStage] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage


class NavigationFailure(EngineError):
    """Page load failed after every retry."""

    default_stage = RunStage.PAGE_LOAD
    summary = "Navigation failed"

    def __init__(self, url: str, attempts: int, last_error: str) -> None:
        super().__init__(f"Failed to load {url} after {attempts} attempts: {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class BotBlockDetected(EngineError):
    """A challenge or block page prevented forward progress."""

    default_stage = RunStage.PAGE_LOAD
    summary = "Bot protection detected"

    def __init__(self, signal: BotBlockSignal, *, stage: Optional[RunStage] = None) -> None:
        super().__init__(f"Bot protection detected ({signal.type})", stage=stage)
        self.signal = signal


class ResolutionFailure(EngineError):
    """An item, modifier or control could not be found after the full cascade."""

    summary = "Page element not found"

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[RunStage] = None,
        attempted: Optional[list[str]] = None,
        diagnostics: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.attempted = list(attempted or [])
        self.diagnostics = dict(diagnostics or {})


class LoginWallDetected(EngineError):
    """Checkout requires signing in and no guest path was found."""

    default_stage = RunStage.CHECKOUT
    summary = "Login required"

    def __init__(self, method: str) -> None:
        super().__init__(f"Checkout requires login ({method}) and no guest checkout was found")
        self.method = method


class PaymentDeclined(EngineError):
    default_stage = RunStage.PAYMENT
    summary = "Payment declined"

    def __init__(self, detail: str = "Payment was declined") -> None:
        super().__init__(detail)


class RunCancelled(EngineError):
    summary = "Run cancelled"

    def __init__(self) -> None:
        super().__init__("Run cancelled by caller")


class BrowserLaunchError(RuntimeError):
    """The browser process could not be started."""


# Canonical user-safe strings (no raw exception content in API responses).
USER_SAFE_ERROR_SUMMARIES = frozenset(
    {
        "Bot protection detected",
        "Browser unavailable",
        "Login required",
        "Navigation failed",
        "Page element not found",
        "Payment declined",
        "Probe failed",
        "Run cancelled",
        "Run failed",
    }
)


def get_user_safe_error_summary(exc: BaseException, fallback: str = "Run failed") -> str:
    """Return a short, user-safe summary for an exception."""
    if isinstance(exc, EngineError):
        return exc.summary
    if isinstance(exc, BrowserLaunchError):
        return "Browser unavailable"
    if isinstance(exc, RuntimeError):
        msg = str(exc).strip()
        if msg in USER_SAFE_ERROR_SUMMARIES:
            return msg
    return fallback
