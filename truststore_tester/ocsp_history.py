from typing import Callable, List, Optional, Union

from .clients import OcspResponderClient
from .errors import ExpectedOcspRequestMissingError, UnexpectedOcspRequestError
from .models import IGNORE_SEQUENCE_NUMBER, ExpectationMode, OcspRequestHistoryEntry, SequenceState
from .polling import DEFAULT_POLL_INTERVAL_SECONDS, observe_for, poll_until


def max_tag(entries: List[OcspRequestHistoryEntry]) -> Optional[int]:
    tags = [e.seq_nr for e in entries if e.seq_nr is not None]
    return max(tags) if tags else None


class OcspExpectationVerifier:
    """Asserts presence, absence or optionality of OCSP requests for a certificate.

    Untagged history entries never satisfy MUST_OCCUR but count as a
    violation under MUST_NOT_OCCUR.
    """

    def __init__(
        self,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.poll_interval_seconds = poll_interval_seconds
        self.log_callback = log_callback or print

    def _responder(self, responder):
        if isinstance(responder, str):
            return OcspResponderClient(responder, log_callback=self.log_callback)
        return responder

    def check(
        self,
        responder: Union[str, object],
        serial_number: int,
        sequence_state: SequenceState,
        expectation_mode: ExpectationMode,
        timeout_seconds: float,
    ) -> Optional[int]:
        """Verify the OCSP history for serial_number; return the highest seqNr tag observed"""
        responder = self._responder(responder)
        expected = sequence_state.expected_in_sut
        self.log_callback(f"[INFO] Checking OCSP history for serial {serial_number}: {expectation_mode.value}, {sequence_state}")

        def entries_for_serial():
            return responder.history(IGNORE_SEQUENCE_NUMBER, serial_number)

        if expectation_mode is ExpectationMode.MUST_OCCUR:
            def current_request():
                entries = entries_for_serial()
                if any(e.seq_nr is not None and e.seq_nr >= expected for e in entries):
                    return entries
                return None

            entries = poll_until(
                f"OcspRequestHistoryHasEntry for seqNr >= {expected} and cert {serial_number}",
                timeout_seconds,
                current_request,
                self.poll_interval_seconds,
                self.log_callback,
            ).unwrap(ExpectedOcspRequestMissingError)
            return max_tag(entries)

        if expectation_mode is ExpectationMode.MUST_NOT_OCCUR:
            condition = f"no OCSP request for cert {serial_number}"
            result = observe_for(
                condition,
                timeout_seconds,
                lambda: entries_for_serial() or None,
                self.poll_interval_seconds,
                self.log_callback,
            )
            if not result.ok:
                raise UnexpectedOcspRequestError(
                    condition, len(result.value), f"seqNr tags {[e.seq_nr for e in result.value]}"
                )
            return None

        result = poll_until(
            f"optional OCSP request for cert {serial_number}",
            timeout_seconds,
            lambda: entries_for_serial() or None,
            self.poll_interval_seconds,
            self.log_callback,
        )
        if not result.ok:
            self.log_callback(f"[INFO] No optional OCSP request for cert {serial_number}, continuing")
            return None
        return max_tag(result.value)
