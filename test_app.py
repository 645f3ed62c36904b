import requests

import app
from truststore_tester.ocsp_client import send_ocsp_request
from truststore_tester.server_thread import MockServerThread
from truststore_tester.tsl_provider import MockTslProvider


def test_parse_args_defaults():
    args = app.parse_args([])
    assert args.config == "truststore_tester.json"
    assert args.tsl_port is None
    assert args.only is None


def test_signer_options_must_come_together(cert_files, capsys):
    assert app.main(["--signer-cert", cert_files["signer_cert"]]) == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_missing_signer_file(tmp_path, capsys):
    assert app.main(["--signer-cert", str(tmp_path / "a.pem"), "--signer-key", str(tmp_path / "a.key")]) == 1
    assert "File not found" in capsys.readouterr().out


def test_server_thread_serves_on_ephemeral_port(logs):
    thread = MockServerThread(MockTslProvider(logs.append).app, log_callback=logs.append).start_and_wait()
    try:
        assert thread.port != 0
        assert requests.get(f"{thread.base_uri}/admin/health").json()["status"] == "UP"
    finally:
        thread.stop()
    assert not thread.is_alive()


def test_responder_answers_signer_loaded_from_files(pki, cert_files, logs):
    signer = app.load_signer(cert_files["signer_cert"], cert_files["signer_key"])
    responder = app.MockOcspResponder(default_signer=signer, log_callback=logs.append)
    thread = MockServerThread(responder.app, log_callback=logs.append).start_and_wait()
    try:
        info = send_ocsp_request(f"{thread.base_uri}/ocsp/5", pki.spec_for(pki.ee_cert))
        assert info.cert_status == "good"
    finally:
        thread.stop()
