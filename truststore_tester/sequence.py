import os
import threading
from typing import Callable, Optional

from .errors import PersistenceError
from .models import SequenceState


# sequence number of the TSL the test object is assumed to ship with
INITIAL_SEQUENCE_NUMBER = 1


class SequenceNumberStore:
    """Storage port for the last offered TSL sequence number"""

    def read(self) -> Optional[int]:
        raise NotImplementedError

    def write(self, value: int) -> None:
        raise NotImplementedError


class InMemorySequenceNumberStore(SequenceNumberStore):
    def __init__(self, value: Optional[int] = None):
        self.value = value

    def read(self) -> Optional[int]:
        return self.value

    def write(self, value: int) -> None:
        self.value = value


class FileSequenceNumberStore(SequenceNumberStore):
    """Keeps the number as plain text in a single small file, rewritten atomically"""

    def __init__(self, path: str):
        self.path = path

    def read(self) -> Optional[int]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return int(f.read().strip())
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Cannot read TSL sequence number from file {self.path}: {exc}") from exc

    def write(self, value: int) -> None:
        try:
            directory = os.path.dirname(self.path) or "."
            os.makedirs(directory, exist_ok=True)
            tmp_path = self.path + ".tmp"
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(str(value))
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write TSL sequence number file {self.path}: {exc}") from exc


class SequenceNumberTracker:
    """Allocates TSL sequence numbers and tracks what the test object is believed to have active.

    last_offered      last sequence number handed out for a TSL offered to the test object
    expected_in_sut   sequence number of the TSL we expect to be active in the test object
    current_in_sut    sequence number of the TSL observed to be active in the test object

    One instance lives in the HarnessContext for the whole run. Allocation is
    serialized by a lock and every allocation is persisted before it is
    returned, so numbers stay unique across restarts.
    """

    def __init__(self, store: SequenceNumberStore, log_callback: Optional[Callable[[str], None]] = None):
        self.store = store
        self.log_callback = log_callback or print
        self._lock = threading.Lock()
        self.last_offered = INITIAL_SEQUENCE_NUMBER
        self.expected_in_sut = INITIAL_SEQUENCE_NUMBER
        self.current_in_sut = INITIAL_SEQUENCE_NUMBER
        self.last_offered_digest: Optional[str] = None

    def log(self, text: str) -> None:
        self.log_callback(text)

    def initialize_from_persisted(self) -> "SequenceNumberTracker":
        with self._lock:
            stored = self.store.read()
            if stored is None:
                self.log(f"[INFO] No persisted TSL sequence number, starting at {self.last_offered}")
                self.store.write(self.last_offered)
            else:
                self.log(f"[INFO] Persisted TSL sequence number: {stored}")
                self.last_offered = stored
                self.expected_in_sut = stored
                self.current_in_sut = stored
        return self

    def next_sequence_number(self) -> int:
        with self._lock:
            stored = self.store.read()
            base = self.last_offered if stored is None else max(self.last_offered, stored)
            candidate = base + 1
            self.store.write(candidate)
            self.last_offered = candidate
            self.log(f"[INFO] Allocated TSL sequence number {candidate}")
            return candidate

    def peek_next_sequence_number(self) -> int:
        with self._lock:
            return self.last_offered + 1

    def record_offered(self, seq_nr: int, digest: Optional[str] = None) -> None:
        with self._lock:
            if seq_nr < self.last_offered:
                self.log(f"[WARN] Offered sequence number {seq_nr} is lower than last offered {self.last_offered} (re-offer?)")
            else:
                self.last_offered = seq_nr
                self.store.write(seq_nr)
            self.last_offered_digest = digest

    def record_expected(self, seq_nr: int) -> None:
        with self._lock:
            if seq_nr > self.last_offered:
                self.log(f"[WARN] Expected sequence number {seq_nr} exceeds last offered {self.last_offered}")
            if seq_nr < self.expected_in_sut:
                self.log(f"[WARN] Expected sequence number goes back from {self.expected_in_sut} to {seq_nr}")
            self.expected_in_sut = seq_nr

    def record_observed_current(self, seq_nr: int) -> None:
        with self._lock:
            if seq_nr > self.expected_in_sut:
                self.log(f"[WARN] Observed sequence number {seq_nr} exceeds expected {self.expected_in_sut}")
            if seq_nr < self.current_in_sut:
                self.log(f"[WARN] Observed sequence number goes back from {self.current_in_sut} to {seq_nr}")
            self.current_in_sut = seq_nr

    def is_reoffer(self, seq_nr: int, digest: str) -> bool:
        """True when exactly this TSL (number and content) was the last one offered"""
        with self._lock:
            return seq_nr == self.last_offered and digest == self.last_offered_digest

    def snapshot(self) -> SequenceState:
        with self._lock:
            return SequenceState(
                last_offered=self.last_offered,
                expected_in_sut=self.expected_in_sut,
                current_in_sut=self.current_in_sut,
            )

    def __str__(self) -> str:
        return str(self.snapshot())
