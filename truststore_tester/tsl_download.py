"""
Correlation of one offered TSL with the test object's download and signer
validation traffic.

The test object polls the TSL provider on its own schedule, so every wait
here is a bounded poll over the mock servers' request histories.
"""

from typing import Callable, List, Optional

from .errors import DownloadNotObservedError, OcspRequestNotObservedError
from .fault_profile import CertificateFaultProfile
from .models import (
    IGNORE_SEQUENCE_NUMBER,
    PRIMARY_200_BACKUP_200,
    EndpointBehaviorMatrix,
    EndpointScope,
    OcspRequestHistoryEntry,
    TslRequestHistoryEntry,
)
from .polling import DEFAULT_POLL_INTERVAL_SECONDS, Mismatch, PollResult, poll_until, wait_seconds
from .tsl_artifact import TslArtifact


DEFAULT_DOWNLOAD_MARGIN_SECONDS = 5


class TslDownloadCoordinator:
    """Offers one TslArtifact and waits for the test object to fetch and validate it.

    tsl_provider and ocsp_responder are admin clients (TslProviderClient,
    OcspResponderClient) or the in-process state objects of the mock servers.
    """

    def __init__(
        self,
        artifact: TslArtifact,
        tsl_provider,
        ocsp_responder,
        matrix: EndpointBehaviorMatrix = PRIMARY_200_BACKUP_200,
        margin_seconds: float = DEFAULT_DOWNLOAD_MARGIN_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.artifact = artifact
        self.tsl_provider = tsl_provider
        self.ocsp_responder = ocsp_responder
        self.matrix = matrix
        self.margin_seconds = margin_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.log_callback = log_callback or print
        self.last_ocsp_request_history_entries: List[OcspRequestHistoryEntry] = []

    def _log(self, message: str) -> None:
        self.log_callback(message)

    @property
    def download_timeout_seconds(self) -> float:
        return self.artifact.download_interval_seconds + self.margin_seconds

    @property
    def signer_timeout_seconds(self) -> float:
        return self.artifact.processing_time_seconds

    def configure_ocsp_responder_for_signer(self, fault_profile: Optional[CertificateFaultProfile] = None) -> None:
        """Register a profile for the TSL signer certificate; healthy and good unless overridden"""
        profile = fault_profile or CertificateFaultProfile()
        if profile.ee_cert is None:
            profile = profile.evolve(ee_cert=self.artifact.signer_cert)
        self._log(f"[INFO] Configuring OCSP responder for TSL signer {self.artifact.signer_serial_number}")
        self.ocsp_responder.configure([profile])

    def configure_tsl_provider(self, matrix: Optional[EndpointBehaviorMatrix] = None) -> None:
        matrix = matrix or self.matrix
        self._log(f"[INFO] Offering {self.artifact} with {matrix}")
        self.tsl_provider.configure(self.artifact.tsl_bytes, matrix)

    def _download_entries(self, seq_nr: int, scope: EndpointScope) -> List[TslRequestHistoryEntry]:
        return self.tsl_provider.history(seq_nr, scope)

    def poll_for_download(
        self,
        expected_seq_nr: int = IGNORE_SEQUENCE_NUMBER,
        endpoint_scope: EndpointScope = EndpointScope.ANY,
        timeout_seconds: Optional[float] = None,
    ) -> PollResult:
        """Poll the provider history; on success the value is the last matching entry"""
        def last_matching_entry():
            entries = self._download_entries(expected_seq_nr, endpoint_scope)
            return entries[-1] if entries else None

        return poll_until(
            f"TslDownloadHistoryHasEntry for seqNr {expected_seq_nr} on {endpoint_scope.value} endpoints",
            self.download_timeout_seconds if timeout_seconds is None else timeout_seconds,
            last_matching_entry,
            self.poll_interval_seconds,
            self.log_callback,
        )

    def wait_for_download(
        self,
        expected_seq_nr: int = IGNORE_SEQUENCE_NUMBER,
        endpoint_scope: EndpointScope = EndpointScope.ANY,
        clear_after: bool = True,
        matrix: Optional[EndpointBehaviorMatrix] = None,
    ) -> Optional[int]:
        """Offer the TSL and wait until the test object requests it.

        Returns the seqNr query parameter of the last matching request, which
        is the number of the TSL active in the test object when it asked.
        """
        self.configure_tsl_provider(matrix)
        self._log(f"[INFO] Waiting at most {self.download_timeout_seconds}s for TSL download")
        try:
            entry = self.poll_for_download(expected_seq_nr, endpoint_scope).unwrap(DownloadNotObservedError)
        finally:
            if clear_after:
                self.tsl_provider.clear_config()
        return entry.seq_nr

    def poll_for_signer_request(self, expected_seq_nr: int = IGNORE_SEQUENCE_NUMBER) -> PollResult:
        serial = self.artifact.signer_serial_number

        def signer_requests():
            entries = self.ocsp_responder.history(expected_seq_nr, serial)
            self.last_ocsp_request_history_entries = entries
            return entries or None

        return poll_until(
            f"OcspRequestHistoryHasEntry for seqNr {expected_seq_nr} and TSL signer cert {serial}",
            self.signer_timeout_seconds,
            signer_requests,
            self.poll_interval_seconds,
            self.log_callback,
        )

    def _finish_signer_wait(self, result: PollResult) -> None:
        self.ocsp_responder.clear_config()
        remaining = self.signer_timeout_seconds - result.elapsed_seconds
        self._log(
            f"[INFO] OCSP request for TSL signer received after {result.elapsed_seconds:.1f}s, "
            f"waiting further {max(0.0, remaining):.1f}s for the TSL to be processed"
        )
        wait_seconds(remaining, self.log_callback)

    def wait_until_ocsp_request_for_signer(self, expected_seq_nr: int = IGNORE_SEQUENCE_NUMBER) -> List[OcspRequestHistoryEntry]:
        """Wait for the test object to check the TSL signer, then for the rest of the processing time"""
        result = self.poll_for_signer_request(expected_seq_nr)
        entries = result.unwrap(OcspRequestNotObservedError)
        self._finish_signer_wait(result)
        return entries

    def wait_until_ocsp_request_for_signer_optional(self, expected_seq_nr: int = IGNORE_SEQUENCE_NUMBER) -> List[OcspRequestHistoryEntry]:
        result = self.poll_for_signer_request(expected_seq_nr)
        if not result.ok:
            self._log("[INFO] No optional OCSP request for TSL signer received, continuing")
            return []
        self._finish_signer_wait(result)
        return result.value

    def wait_until_download_completed(self, seq_nr: int, ocsp_seq_nr: int) -> Optional[int]:
        self.configure_ocsp_responder_for_signer()
        observed = self.wait_for_download(seq_nr)
        self.wait_until_ocsp_request_for_signer(ocsp_seq_nr)
        return observed

    def wait_until_download_completed_optional(self, seq_nr: int) -> Optional[int]:
        self.configure_ocsp_responder_for_signer()
        observed = self.wait_for_download(seq_nr)
        self.wait_until_ocsp_request_for_signer_optional()
        return observed

    def wait_for_history_count(
        self,
        matrix: EndpointBehaviorMatrix,
        primary_count: int,
        backup_count: int,
        seq_nr: int = IGNORE_SEQUENCE_NUMBER,
        timeout_seconds: Optional[float] = None,
        clear_after: bool = True,
    ) -> PollResult:
        """Offer the TSL with matrix and wait until exactly the given XML request counts are seen.

        More requests than expected on either endpoint end the wait with a
        mismatch, since counts never decrease.
        """
        self.configure_tsl_provider(matrix)

        def counts_reached():
            entries = self._download_entries(seq_nr, EndpointScope.XML_ONLY)
            primary = sum(1 for e in entries if e.download_point == "primary")
            backup = sum(1 for e in entries if e.download_point == "backup")
            self._log(f"[DEBUG] primaryTslCount: {primary}, backupTslCount: {backup}")
            if primary > primary_count or backup > backup_count:
                return Mismatch(
                    f"expected {primary_count} primary and {backup_count} backup requests, "
                    f"got {primary} and {backup}"
                )
            if primary == primary_count and backup == backup_count:
                return (primary, backup)
            return None

        try:
            result = poll_until(
                f"TslDownloadHistoryHasEntry for seqNr {seq_nr} with {primary_count} primary "
                f"and {backup_count} backup requests",
                self.download_timeout_seconds if timeout_seconds is None else timeout_seconds,
                counts_reached,
                self.poll_interval_seconds,
                self.log_callback,
            )
        finally:
            if clear_after:
                self.tsl_provider.clear_config()
        result.unwrap(DownloadNotObservedError)
        return result

    def seq_nr_of_last_download(
        self, seq_nr: int = IGNORE_SEQUENCE_NUMBER, endpoint_scope: EndpointScope = EndpointScope.ANY
    ) -> Optional[int]:
        return seq_nr_of_last_download(self.tsl_provider, seq_nr, endpoint_scope, self.log_callback)


def seq_nr_of_last_download(
    tsl_provider,
    seq_nr: int = IGNORE_SEQUENCE_NUMBER,
    endpoint_scope: EndpointScope = EndpointScope.ANY,
    log_callback: Optional[Callable[[str], None]] = None,
) -> Optional[int]:
    """seqNr parameter of the last history entry matching the filters, None if there is none"""
    log = log_callback or print
    entries = tsl_provider.history(seq_nr, endpoint_scope)
    if not entries:
        log(f"[INFO] TSL request history for seqNr {seq_nr} is empty")
        return None
    last = entries[-1].seq_nr
    log(f"[INFO] Last known TSL seqNr in history: {last}")
    return last
