"""
Trust anchor activation bookkeeping.

A TSL can announce a future trust anchor with a StatusStartingTime. The test
object must keep the old anchor until that time and switch only on a TSL
poll cycle after it. The controller tracks every announcement through

    ANNOUNCED -> ACTIVE        activation time reached and a poll seen after it
    ANNOUNCED -> OVERWRITTEN   a later announcement arrived before activation

ACTIVE and OVERWRITTEN are terminal.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from .config import HarnessConfig
from .models import IGNORE_SEQUENCE_NUMBER, EndpointScope
from .polling import DEFAULT_POLL_INTERVAL_SECONDS, Mismatch, poll_until


class AnchorState(Enum):
    ANNOUNCED = "ANNOUNCED"
    ACTIVE = "ACTIVE"
    OVERWRITTEN = "OVERWRITTEN"


@dataclass
class AnchorRecord:
    name: str
    activation_time: float
    announced_at: float
    state: AnchorState = AnchorState.ANNOUNCED


class TrustAnchorActivationController:
    def __init__(
        self,
        download_interval_seconds: float,
        processing_time_seconds: float,
        ocsp_wait_seconds: float = 0,
        clock: Callable[[], float] = time.time,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.download_interval_seconds = download_interval_seconds
        self.processing_time_seconds = processing_time_seconds
        self.ocsp_wait_seconds = ocsp_wait_seconds
        self.clock = clock
        self.log_callback = log_callback or print
        self._records: Dict[str, AnchorRecord] = {}
        self._poll_times: List[float] = []

    @classmethod
    def from_config(cls, config: HarnessConfig, **kwargs) -> "TrustAnchorActivationController":
        return cls(
            download_interval_seconds=config.tsl_download_interval_seconds,
            processing_time_seconds=config.tsl_processing_time_seconds,
            ocsp_wait_seconds=config.ocsp_wait_seconds,
            **kwargs,
        )

    def safe_window_seconds(self) -> float:
        """Time for at least three poll cycles of the test object, plus OCSP cache expiry when it dominates"""
        window = 3 * (self.download_interval_seconds + self.processing_time_seconds)
        if self.download_interval_seconds < self.ocsp_wait_seconds:
            window += 2 * self.ocsp_wait_seconds
        return window

    def announce(self, name: str, activation_time: Optional[float] = None, now: Optional[float] = None) -> float:
        """Register an anchor announcement; returns its activation time (default now + safe window)"""
        now = self.clock() if now is None else now
        self._refresh(now)
        if activation_time is None:
            activation_time = now + self.safe_window_seconds()

        for record in self._records.values():
            if record.state is AnchorState.ANNOUNCED:
                record.state = AnchorState.OVERWRITTEN
                self.log_callback(f"[INFO] Trust anchor {record.name} overwritten by {name} before activation")

        self._records[name] = AnchorRecord(name=name, activation_time=activation_time, announced_at=now)
        self.log_callback(f"[INFO] Trust anchor {name} announced, activation at {datetime.fromtimestamp(activation_time).isoformat()}")
        return activation_time

    def record_poll_cycle(self, at: Optional[float] = None) -> None:
        """Note a TSL poll of the test object at time at"""
        self._poll_times.append(self.clock() if at is None else at)

    def _refresh(self, now: float) -> None:
        for record in self._records.values():
            if record.state is not AnchorState.ANNOUNCED or now < record.activation_time:
                continue
            if any(t >= record.activation_time for t in self._poll_times):
                record.state = AnchorState.ACTIVE
                self.log_callback(f"[INFO] Trust anchor {record.name} is active")

    def state_of(self, name: str, now: Optional[float] = None) -> AnchorState:
        if name not in self._records:
            raise KeyError(f"Unknown trust anchor: {name}")
        self._refresh(self.clock() if now is None else now)
        return self._records[name].state

    def activation_time_of(self, name: str) -> float:
        return self._records[name].activation_time

    def _collect_poll_cycles(self, tsl_provider) -> None:
        known = set(self._poll_times)
        for entry in tsl_provider.history(IGNORE_SEQUENCE_NUMBER, EndpointScope.XML_ONLY):
            if not entry.timestamp:
                continue
            at = datetime.fromisoformat(entry.timestamp).timestamp()
            if at not in known:
                self._poll_times.append(at)
                known.add(at)

    def wait_until_active(
        self,
        name: str,
        tsl_provider,
        timeout_seconds: Optional[float] = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> AnchorState:
        """Wait until the anchor is active, taking poll cycles from the TSL provider history"""
        record = self._records[name]
        if timeout_seconds is None:
            timeout_seconds = max(0.0, record.activation_time - self.clock()) + self.safe_window_seconds()

        def active():
            self._collect_poll_cycles(tsl_provider)
            state = self.state_of(name)
            if state is AnchorState.OVERWRITTEN:
                return Mismatch(f"trust anchor {name} was overwritten before activation")
            return state if state is AnchorState.ACTIVE else None

        return poll_until(
            f"trust anchor {name} active",
            timeout_seconds,
            active,
            poll_interval_seconds,
            self.log_callback,
        ).unwrap()
