from typing import Callable, Optional

from .clients import OcspResponderClient, TslProviderClient
from .config import HarnessConfig
from .models import PRIMARY_200_BACKUP_200, EndpointBehaviorMatrix
from .ocsp_history import OcspExpectationVerifier
from .sequence import FileSequenceNumberStore, SequenceNumberStore, SequenceNumberTracker
from .trust_anchor import TrustAnchorActivationController
from .tsl_artifact import TslArtifact
from .tsl_download import TslDownloadCoordinator
from .use_case import ScriptUseCase, UseCase


class HarnessContext:
    """Everything a scenario needs, built once at harness start and handed to each scenario"""

    def __init__(
        self,
        config: HarnessConfig,
        sequence: SequenceNumberTracker,
        tsl_provider,
        ocsp_responder,
        use_case: Optional[UseCase] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.sequence = sequence
        self.tsl_provider = tsl_provider
        self.ocsp_responder = ocsp_responder
        self.use_case = use_case
        self.log_callback = log_callback or print
        self.trust_anchors = TrustAnchorActivationController.from_config(config, log_callback=self.log_callback)

    @classmethod
    def create(
        cls,
        config: HarnessConfig,
        store: Optional[SequenceNumberStore] = None,
        tsl_provider=None,
        ocsp_responder=None,
        use_case: Optional[UseCase] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> "HarnessContext":
        """Wire a context from config; explicit collaborators take precedence over configured ones"""
        log = log_callback or print
        sequence = SequenceNumberTracker(store or FileSequenceNumberStore(config.seq_nr_file), log)
        sequence.initialize_from_persisted()
        if tsl_provider is None:
            tsl_provider = TslProviderClient(config.tsl_provider_uri, log_callback=log)
        if ocsp_responder is None:
            ocsp_responder = OcspResponderClient(config.ocsp_responder_uri, log_callback=log)
        if use_case is None and config.use_case_script:
            use_case = ScriptUseCase(
                config.use_case_script,
                config.sut_host,
                config.sut_port,
                config.use_case_timeout_seconds,
                log,
            )
        return cls(config, sequence, tsl_provider, ocsp_responder, use_case, log)

    def new_coordinator(
        self, artifact: TslArtifact, matrix: EndpointBehaviorMatrix = PRIMARY_200_BACKUP_200
    ) -> TslDownloadCoordinator:
        return TslDownloadCoordinator(
            artifact,
            self.tsl_provider,
            self.ocsp_responder,
            matrix=matrix,
            margin_seconds=self.config.tsl_download_interval_extra_seconds,
            poll_interval_seconds=self.config.poll_interval_seconds,
            log_callback=self.log_callback,
        )

    def new_verifier(self) -> OcspExpectationVerifier:
        return OcspExpectationVerifier(self.config.poll_interval_seconds, self.log_callback)

    def new_artifact(self, tsl_bytes: bytes, sequence_number: int, signer_cert, **kwargs) -> TslArtifact:
        """Wrap externally generated TSL bytes with the configured timing budgets.

        sequence_number comes from sequence.next_sequence_number(), allocated
        before the TSL was generated.
        """
        kwargs.setdefault("download_interval_seconds", self.config.tsl_download_interval_seconds)
        kwargs.setdefault("processing_time_seconds", self.config.tsl_processing_time_seconds)
        return TslArtifact(
            tsl_bytes=tsl_bytes,
            sequence_number=sequence_number,
            signer_cert=signer_cert,
            **kwargs,
        )
