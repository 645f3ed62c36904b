import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Type

from .errors import PollTimeoutError


DEFAULT_POLL_INTERVAL_SECONDS = 0.1


class PollOutcome(Enum):
    OK = "OK"
    TIMED_OUT = "TIMED_OUT"
    MISMATCH = "MISMATCH"


@dataclass
class Mismatch:
    """Returned by a poll checker to stop polling early with a definite failure"""
    detail: str


@dataclass
class PollResult:
    condition: str
    outcome: PollOutcome
    timeout_seconds: float
    elapsed_seconds: float
    value: Any = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is PollOutcome.OK

    @property
    def timed_out(self) -> bool:
        return self.outcome is PollOutcome.TIMED_OUT

    def unwrap(self, error_cls: Type[PollTimeoutError] = PollTimeoutError) -> Any:
        """Return the observed value or raise error_cls carrying the poll condition"""
        if self.ok:
            return self.value
        raise error_cls(self.condition, self.timeout_seconds, self.elapsed_seconds, self.detail)


def poll_until(
    condition: str,
    timeout_seconds: float,
    checker: Callable[[], Any],
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    log_callback: Optional[Callable[[str], None]] = None,
) -> PollResult:
    """Call checker every poll interval until it returns a non-None value or the ceiling is reached.

    The checker is always invoked at least once, and once more after the
    ceiling so that an event arriving during the final sleep is not lost.
    A Mismatch return value ends the loop immediately.
    """
    log = log_callback or (lambda _msg: None)
    log(f"[DEBUG] Waiting for event \"{condition}\" with timeout {timeout_seconds}s, poll interval {poll_interval_seconds}s")

    start = time.monotonic()
    deadline = start + max(0.0, timeout_seconds)
    while True:
        value = checker()
        elapsed = time.monotonic() - start
        if isinstance(value, Mismatch):
            log(f"[INFO] Event \"{condition}\" mismatched after {elapsed:.1f}s: {value.detail}")
            return PollResult(condition, PollOutcome.MISMATCH, timeout_seconds, elapsed, detail=value.detail)
        if value is not None:
            log(f"[INFO] Event \"{condition}\" occurred after {elapsed:.1f}s")
            return PollResult(condition, PollOutcome.OK, timeout_seconds, elapsed, value=value)
        if time.monotonic() >= deadline:
            log(f"[ERROR] Timeout for event \"{condition}\" after {elapsed:.1f}s")
            return PollResult(condition, PollOutcome.TIMED_OUT, timeout_seconds, elapsed)
        time.sleep(min(poll_interval_seconds, max(0.0, deadline - time.monotonic())))


def observe_for(
    condition: str,
    window_seconds: float,
    checker: Callable[[], Any],
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    log_callback: Optional[Callable[[str], None]] = None,
) -> PollResult:
    """Poll for the whole window; OK means the checker never reported anything.

    Used for absence checks: a non-None checker value is returned as a MISMATCH
    carrying the observed value.
    """
    log = log_callback or (lambda _msg: None)
    log(f"[DEBUG] Observing \"{condition}\" for {window_seconds}s")

    start = time.monotonic()
    deadline = start + max(0.0, window_seconds)
    while True:
        value = checker()
        elapsed = time.monotonic() - start
        if value is not None:
            log(f"[INFO] \"{condition}\" observed after {elapsed:.1f}s")
            return PollResult(condition, PollOutcome.MISMATCH, window_seconds, elapsed, value=value,
                              detail=f"observed {value!r}")
        if time.monotonic() >= deadline:
            return PollResult(condition, PollOutcome.OK, window_seconds, elapsed)
        time.sleep(min(poll_interval_seconds, max(0.0, deadline - time.monotonic())))


def wait_seconds(seconds: float, log_callback: Optional[Callable[[str], None]] = None) -> None:
    if seconds <= 0:
        return
    if log_callback:
        log_callback(f"[INFO] Waiting {seconds}s")
    time.sleep(seconds)
