import datetime
import threading
import time

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from truststore_tester.config import HarnessConfig
from truststore_tester.context import HarnessContext
from truststore_tester.fault_profile import OcspSigner
from truststore_tester.ocsp_client import OCSPRequestSpec, build_request
from truststore_tester.ocsp_responder import MockOcspResponder, OcspResponderState
from truststore_tester.ocsp_response_builder import parse_ocsp_request
from truststore_tester.sequence import InMemorySequenceNumberStore
from truststore_tester.server_thread import MockServerThread
from truststore_tester.tsl_artifact import TslArtifact
from truststore_tester.tsl_provider import MockTslProvider, TslProviderState


def _name(common_name):
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "DE"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test PKI"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _issue(subject, public_key, issuer_name, issuer_key, serial, ca=False, eku=None):
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(serial)
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if eku:
        builder = builder.add_extension(x509.ExtendedKeyUsage(eku), critical=False)
    return builder.sign(issuer_key, hashes.SHA256())


class Pki:
    """A CA with an end-entity, a TSL signer and OCSP signer certificates"""

    def __init__(self):
        self.ca_key = ec.generate_private_key(ec.SECP256R1())
        ca_name = _name("Test CA")
        self.ca_cert = _issue("Test CA", self.ca_key.public_key(), ca_name, self.ca_key, 1, ca=True)

        self.ee_key = ec.generate_private_key(ec.SECP256R1())
        self.ee_cert = _issue("Test EE", self.ee_key.public_key(), ca_name, self.ca_key, 1001)

        self.other_ee_key = ec.generate_private_key(ec.SECP256R1())
        self.other_ee_cert = _issue("Other EE", self.other_ee_key.public_key(), ca_name, self.ca_key, 1002)

        self.tsl_signer_key = ec.generate_private_key(ec.SECP256R1())
        self.tsl_signer_cert = _issue("TSL Signer", self.tsl_signer_key.public_key(), ca_name, self.ca_key, 2001)

        ocsp_key = ec.generate_private_key(ec.SECP256R1())
        ocsp_cert = _issue(
            "OCSP Signer", ocsp_key.public_key(), ca_name, self.ca_key, 3001, eku=[ExtendedKeyUsageOID.OCSP_SIGNING]
        )
        self.ocsp_signer = OcspSigner(certificate=ocsp_cert, private_key=ocsp_key)

        rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        rsa_cert = _issue(
            "OCSP Signer RSA", rsa_key.public_key(), ca_name, self.ca_key, 3002, eku=[ExtendedKeyUsageOID.OCSP_SIGNING]
        )
        self.rsa_ocsp_signer = OcspSigner(certificate=rsa_cert, private_key=rsa_key)

        # a second CA reusing the serial number of ee_cert
        self.other_ca_key = ec.generate_private_key(ec.SECP256R1())
        other_ca_name = _name("Other CA")
        self.other_ca_cert = _issue(
            "Other CA", self.other_ca_key.public_key(), other_ca_name, self.other_ca_key, 1, ca=True
        )
        self.other_ca_ee_key = ec.generate_private_key(ec.SECP256R1())
        self.other_ca_ee_cert = _issue(
            "Test EE", self.other_ca_ee_key.public_key(), other_ca_name, self.other_ca_key, 1001
        )

    def request_for(self, cert, hash_algo=None, nonce=None, issuer=None):
        """Parsed OCSP request for cert, as the test object would send it"""
        spec = self.spec_for(cert, issuer)
        if hash_algo is not None:
            spec.hash_algo = hash_algo
        der, _ = build_request(spec, nonce)
        return parse_ocsp_request(der)

    def spec_for(self, cert, issuer=None):
        return OCSPRequestSpec(cert=cert, issuer=issuer or self.ca_cert)


@pytest.fixture(scope="session")
def pki():
    return Pki()


@pytest.fixture
def cert_files(pki, tmp_path):
    """PEM files for the end-entity certificate and the OCSP signer"""
    ee_path = tmp_path / "ee.pem"
    ee_path.write_bytes(pki.ee_cert.public_bytes(serialization.Encoding.PEM))
    signer_cert_path = tmp_path / "ocsp_signer.pem"
    signer_cert_path.write_bytes(pki.ocsp_signer.certificate.public_bytes(serialization.Encoding.PEM))
    signer_key_path = tmp_path / "ocsp_signer.key"
    signer_key_path.write_bytes(pki.ocsp_signer.private_key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ))
    return {"ee": str(ee_path), "signer_cert": str(signer_cert_path), "signer_key": str(signer_key_path)}


@pytest.fixture
def logs():
    return []


@pytest.fixture
def tsl_state(logs):
    return TslProviderState(logs.append)


@pytest.fixture
def ocsp_state(pki, logs):
    return OcspResponderState(pki.ocsp_signer, log_callback=logs.append)


@pytest.fixture
def tsl_server(logs):
    provider = MockTslProvider(logs.append)
    thread = MockServerThread(provider.app, log_callback=logs.append).start_and_wait()
    yield provider, thread
    thread.stop()


@pytest.fixture
def ocsp_server(pki, logs):
    responder = MockOcspResponder(default_signer=pki.ocsp_signer, log_callback=logs.append)
    thread = MockServerThread(responder.app, log_callback=logs.append).start_and_wait()
    yield responder, thread
    thread.stop()


@pytest.fixture
def fast_config():
    """Timing budgets short enough for unit tests"""
    return HarnessConfig(
        tsl_download_interval_seconds=1,
        tsl_download_interval_extra_seconds=1,
        tsl_processing_time_seconds=1,
        ocsp_processing_time_seconds=1,
        ocsp_grace_period_seconds=0,
        grace_period_extra_delay_seconds=0,
        poll_interval_milliseconds=20,
    )


@pytest.fixture
def context(fast_config, tsl_state, ocsp_state, logs):
    return HarnessContext.create(
        fast_config,
        store=InMemorySequenceNumberStore(),
        tsl_provider=tsl_state,
        ocsp_responder=ocsp_state,
        log_callback=logs.append,
    )


@pytest.fixture
def make_artifact(pki):
    def _make(seq_nr, content=None, **kwargs):
        kwargs.setdefault("download_interval_seconds", 1)
        kwargs.setdefault("processing_time_seconds", 1)
        tsl_bytes = content if content is not None else f"<TSL seqNr='{seq_nr}'/>".encode("utf-8")
        return TslArtifact(tsl_bytes=tsl_bytes, sequence_number=seq_nr, signer_cert=pki.tsl_signer_cert, **kwargs)
    return _make


class FakeTestObject(threading.Thread):
    """Plays the system under test against the in-process mock server states.

    Once the TSL provider is configured it downloads the TSL with the seqNr of
    its active TSL and, unless told otherwise, checks the TSL signer via OCSP.
    """

    def __init__(self, pki, tsl_state, ocsp_state, active_seq_nr, check_signer=True, delay=0.05, timeout=5.0):
        super().__init__(daemon=True)
        self.pki = pki
        self.tsl_state = tsl_state
        self.ocsp_state = ocsp_state
        self.active_seq_nr = active_seq_nr
        self.check_signer = check_signer
        self.delay = delay
        self.timeout = timeout

    def run(self):
        deadline = time.monotonic() + self.timeout
        while not self.tsl_state.configured:
            if time.monotonic() > deadline:
                return
            time.sleep(0.01)
        time.sleep(self.delay)
        self.tsl_state.record("primary/xml", self.active_seq_nr, True, "HTTP/1.1")
        if self.check_signer:
            self.ocsp_state.record(self.pki.request_for(self.pki.tsl_signer_cert), self.active_seq_nr)


@pytest.fixture
def fake_test_object(pki, tsl_state, ocsp_state):
    started = []

    def _start(active_seq_nr, **kwargs):
        sut = FakeTestObject(pki, tsl_state, ocsp_state, active_seq_nr, **kwargs)
        sut.start()
        started.append(sut)
        return sut

    yield _start
    for sut in started:
        sut.join(10)
