import os
import sys

import pytest

from truststore_tester.config import HarnessConfig
from truststore_tester.context import HarnessContext
from truststore_tester.clients import OcspResponderClient, TslProviderClient
from truststore_tester.errors import HarnessError
from truststore_tester.sequence import InMemorySequenceNumberStore
from truststore_tester.tsl_artifact import TslArtifact, load_cert
from truststore_tester.use_case import USECASE_INVALID, ScriptUseCase


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script")
def test_script_use_case_returns_exit_code(tmp_path):
    script = tmp_path / "use_case.sh"
    script.write_text('#!/bin/sh\necho "handshake with $1 at $2:$3"\nexit 1\n', encoding="utf-8")
    os.chmod(script, 0o755)
    logs = []
    use_case = ScriptUseCase(str(script), "sut.example", 8443, timeout_seconds=10, log_callback=logs.append)
    assert use_case.execute("ee.pem") == USECASE_INVALID
    assert any("handshake with ee.pem at sut.example:8443" in line for line in logs)


def test_missing_script_is_a_harness_error(tmp_path):
    use_case = ScriptUseCase(str(tmp_path / "absent.sh"), "localhost", 8443, log_callback=lambda _m: None)
    with pytest.raises(HarnessError):
        use_case.execute("ee.pem")


def test_context_wiring_from_config(tmp_path):
    config = HarnessConfig(
        tsl_provider_uri="http://tsl.example:1",
        ocsp_responder_uri="http://ocsp.example:2",
        use_case_script="/opt/use_case.sh",
        seq_nr_file=str(tmp_path / "seq.txt"),
    )
    context = HarnessContext.create(config, log_callback=lambda _m: None)
    assert isinstance(context.tsl_provider, TslProviderClient)
    assert isinstance(context.ocsp_responder, OcspResponderClient)
    assert context.use_case.command("ee.pem") == ["/opt/use_case.sh", "ee.pem", "localhost", "8443"]
    assert (tmp_path / "seq.txt").read_text(encoding="utf-8") == "1"


def test_new_artifact_takes_configured_budgets(context, pki):
    artifact = context.new_artifact(b"<TSL/>", 9, pki.tsl_signer_cert)
    assert artifact.download_interval_seconds == context.config.tsl_download_interval_seconds
    assert artifact.processing_time_seconds == context.config.tsl_processing_time_seconds
    assert artifact.signer_serial_number == pki.tsl_signer_cert.serial_number


def test_artifact_from_files(tmp_path, cert_files, pki):
    tsl_path = tmp_path / "tsl.xml"
    tsl_path.write_bytes(b"<TSL/>")
    artifact = TslArtifact.from_files(str(tsl_path), 4, cert_files["signer_cert"])
    assert artifact.tsl_bytes == b"<TSL/>"
    assert artifact.signer_cert == pki.ocsp_signer.certificate
    assert artifact.with_bytes(b"<TSL v='2'/>").digest != artifact.digest


def test_load_cert_errors(tmp_path):
    with pytest.raises(ValueError):
        load_cert("")
    with pytest.raises(FileNotFoundError):
        load_cert(str(tmp_path / "absent.pem"))


def test_explicit_store_takes_precedence():
    store = InMemorySequenceNumberStore(5)
    context = HarnessContext.create(HarnessConfig(), store=store, log_callback=lambda _m: None)
    assert context.sequence.snapshot().last_offered == 5
