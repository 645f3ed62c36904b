"""
Trust store update orchestration: offering TSLs to the test object and
exercising its client use case, keeping the sequence number tracker in step
with what the mock servers observed.
"""

from dataclasses import dataclass
from typing import Optional

from .context import HarnessContext
from .errors import HarnessError, UnexpectedOcspRequestError, UseCaseMismatchError
from .fault_profile import CertificateFaultProfile
from .models import IGNORE_SEQUENCE_NUMBER, EndpointBehaviorMatrix, EndpointScope, ExpectationMode
from .polling import poll_until, wait_seconds
from .tsl_artifact import TslArtifact, load_cert
from .tsl_download import TslDownloadCoordinator, seq_nr_of_last_download
from .use_case import USECASE_VALID


@dataclass
class UseCaseConfig:
    cert_path: str
    expected_code: int = USECASE_VALID
    # None: MUST_OCCUR for a valid use case, MUST_NOT_OCCUR otherwise
    expectation: Optional[ExpectationMode] = None
    fault_profile: Optional[CertificateFaultProfile] = None

    @property
    def effective_expectation(self) -> ExpectationMode:
        if self.expectation is not None:
            return self.expectation
        if self.expected_code == USECASE_VALID:
            return ExpectationMode.MUST_OCCUR
        return ExpectationMode.MUST_NOT_OCCUR


class TrustStoreUpdater:
    def __init__(self, context: HarnessContext):
        self.context = context
        self.config = context.config
        self.sequence = context.sequence
        self.log_callback = context.log_callback

    def _log(self, message: str) -> None:
        self.log_callback(message)

    def wait_for_ocsp_cache_to_expire(self, seconds: Optional[int] = None) -> None:
        if seconds is None:
            seconds = self.config.ocsp_grace_period_seconds
        seconds += self.config.grace_period_extra_delay_seconds
        self._log("[INFO] Waiting for OCSP cache to expire")
        wait_seconds(seconds, self.log_callback)

    def assert_no_ocsp_request(self, coordinator: TslDownloadCoordinator) -> None:
        result = coordinator.poll_for_signer_request(IGNORE_SEQUENCE_NUMBER)
        if result.ok:
            raise UnexpectedOcspRequestError(
                result.condition, len(result.value), "test object validated the TSL signer although it must not"
            )
        self._log(f"[INFO] As expected, no OCSP request for TSL signer {coordinator.artifact.signer_serial_number}")

    def offer_initial_tsl(self, artifact: TslArtifact) -> TslDownloadCoordinator:
        """Establish a known TSL in the test object without assumptions about its current one"""
        self._log(f"[INFO] Start initial TSL download: {artifact}")
        coordinator = self.context.new_coordinator(artifact)
        self.sequence.record_offered(artifact.sequence_number, artifact.digest)
        coordinator.wait_until_download_completed(IGNORE_SEQUENCE_NUMBER, IGNORE_SEQUENCE_NUMBER)
        self.sequence.record_expected(artifact.sequence_number)
        self._log(f"[INFO] Finished initial TSL download: {self.sequence}")
        return coordinator

    def update_trust_store(
        self,
        description: str,
        artifact: TslArtifact,
        expectation: ExpectationMode = ExpectationMode.MUST_OCCUR,
        use_case: Optional[UseCaseConfig] = None,
        signer_profile: Optional[CertificateFaultProfile] = None,
    ) -> TslDownloadCoordinator:
        """Offer artifact, wait for its download and the signer check according to expectation.

        Offering the TSL that was offered last, byte for byte, is a re-offer:
        the signer check becomes optional and the expected sequence number
        is left as it is.
        """
        self._log(f"[INFO] START updateTrustStore - {description}")
        offered = artifact.sequence_number
        reoffer = self.sequence.is_reoffer(offered, artifact.digest)
        if reoffer:
            self._log(f"[INFO] TSL with seqNr {offered} is a re-offer of identical content")

        coordinator = self.context.new_coordinator(artifact)
        self.context.tsl_provider.clear_history()
        self.context.ocsp_responder.clear_history()
        coordinator.configure_ocsp_responder_for_signer(signer_profile)
        self.sequence.record_offered(offered, artifact.digest)

        expected = self.sequence.snapshot().expected_in_sut
        coordinator.wait_for_download(expected)

        if reoffer and expectation is ExpectationMode.MUST_OCCUR:
            expectation = ExpectationMode.OPTIONAL

        if expectation is ExpectationMode.MUST_OCCUR:
            coordinator.wait_until_ocsp_request_for_signer(expected)
            self.sequence.record_expected(offered)
            if artifact.trust_anchor is not None:
                self._announce_trust_anchor(artifact)
        elif expectation is ExpectationMode.OPTIONAL:
            coordinator.wait_until_ocsp_request_for_signer_optional()
        else:
            self.assert_no_ocsp_request(coordinator)

        if use_case is not None:
            self.use_case_with_cert(
                use_case.cert_path,
                use_case.expected_code,
                use_case.effective_expectation,
                use_case.fault_profile,
            )
        self._log(f"[INFO] END updateTrustStore - {description}: {self.sequence}")
        return coordinator

    def _announce_trust_anchor(self, artifact: TslArtifact) -> None:
        announcement = artifact.trust_anchor
        self.context.trust_anchors.announce(announcement.name, announcement.activation_time)
        self._log(f"[INFO] TSL seqNr {artifact.sequence_number} announced trust anchor {announcement.name}")

    def update_trust_store_and_wait_with_count(
        self,
        artifact: TslArtifact,
        matrix: EndpointBehaviorMatrix,
        primary_count: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> TslDownloadCoordinator:
        """Offer artifact with matrix and wait for an exact number of XML requests per endpoint.

        Counts left out default to max_endpoint_repetitions of the configuration.
        """
        if primary_count is None:
            primary_count = self.config.max_endpoint_repetitions
        if backup_count is None:
            backup_count = self.config.max_endpoint_repetitions
        self.wait_for_ocsp_cache_to_expire()
        coordinator = self.context.new_coordinator(artifact, matrix)
        self.context.tsl_provider.clear_history()
        coordinator.configure_ocsp_responder_for_signer()
        self._log(f"[INFO] Configure TSL provider to return {matrix}")
        coordinator.wait_for_history_count(
            matrix,
            primary_count,
            backup_count,
            seq_nr=self.sequence.snapshot().expected_in_sut,
            timeout_seconds=self.config.tsl_download_interval_seconds,
        )
        self.sequence.record_offered(artifact.sequence_number, artifact.digest)
        return coordinator

    def retrieve_current_seq_nr_in_sut(self) -> int:
        """Learn the sequence number of the TSL active in the test object from its next download request"""
        tsl_provider = self.context.tsl_provider
        timeout = self.config.download_wait_seconds
        self._log(f"[INFO] Waiting at most {timeout}s for TSL download")
        poll_until(
            f"TslDownloadHistoryHasEntry for seqNr {IGNORE_SEQUENCE_NUMBER}",
            timeout,
            lambda: tsl_provider.history(IGNORE_SEQUENCE_NUMBER, EndpointScope.XML_ONLY) or None,
            self.config.poll_interval_seconds,
            self.log_callback,
        ).unwrap()
        current = seq_nr_of_last_download(tsl_provider, IGNORE_SEQUENCE_NUMBER, EndpointScope.ANY, self.log_callback)
        if current is None:
            raise HarnessError("Cannot retrieve seqNr of the last TSL download (or hash) request")
        self.sequence.record_observed_current(current)
        self._log(f"[INFO] Current TSL seqNr in test object is {current}")
        return current

    def use_case_with_cert(
        self,
        cert_path: str,
        expected_code: int,
        expectation: ExpectationMode,
        fault_profile: Optional[CertificateFaultProfile] = None,
        configure_responder: bool = True,
    ) -> Optional[int]:
        """Run the use case with cert_path and verify its result code and OCSP traffic"""
        if self.context.use_case is None:
            raise HarnessError("No use case configured")
        self._log(f"[INFO] START useCaseWithCert {cert_path}: expected {expected_code}, {expectation.value}")

        cert = load_cert(cert_path)
        ocsp_responder = self.context.ocsp_responder
        if configure_responder:
            profile = (fault_profile or CertificateFaultProfile()).evolve(ee_cert=cert)
            ocsp_responder.configure([profile])

        self.wait_for_ocsp_cache_to_expire()
        ocsp_responder.clear_history()

        actual = self.context.use_case.execute(cert_path)
        if actual != expected_code:
            raise UseCaseMismatchError(cert_path, expected_code, actual)

        max_seq_nr = self.context.new_verifier().check(
            ocsp_responder,
            cert.serial_number,
            self.sequence.snapshot(),
            expectation,
            self.config.ocsp_processing_time_seconds,
        )
        if max_seq_nr is not None:
            self.sequence.record_observed_current(max_seq_nr)
        self._log(f"[INFO] SUCCESSFULLY completed useCaseWithCert {cert_path}: {self.sequence}")
        return max_seq_nr
