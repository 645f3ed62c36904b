import hashlib
import os
from dataclasses import dataclass, replace
from typing import Optional

from cryptography import x509


def load_cert(path: str) -> x509.Certificate:
    """Load a PEM or DER encoded certificate"""
    if not path or not path.strip():
        raise ValueError("Certificate path is empty")

    if not os.path.exists(path):
        raise FileNotFoundError(f"Certificate file not found: {path}")

    with open(path, "rb") as f:
        data = f.read()

    if not data:
        raise ValueError(f"Certificate file is empty: {path}")

    if b"-----BEGIN" in data:
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


@dataclass(frozen=True)
class TrustAnchorAnnouncement:
    """A new trust anchor carried by a TSL, valid from activation_time on"""
    name: str
    certificate: x509.Certificate
    activation_time: float


@dataclass(frozen=True)
class TslArtifact:
    """A signed TSL as offered to the test object. Built externally; the harness never parses it."""
    tsl_bytes: bytes
    sequence_number: int
    signer_cert: x509.Certificate
    download_interval_seconds: int = 60
    processing_time_seconds: int = 3
    trust_anchor: Optional[TrustAnchorAnnouncement] = None

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.tsl_bytes).hexdigest()

    @property
    def signer_serial_number(self) -> int:
        return self.signer_cert.serial_number

    def with_bytes(self, tsl_bytes: bytes) -> "TslArtifact":
        return replace(self, tsl_bytes=tsl_bytes)

    @classmethod
    def from_files(
        cls,
        tsl_path: str,
        sequence_number: int,
        signer_cert_path: str,
        **kwargs,
    ) -> "TslArtifact":
        with open(tsl_path, "rb") as f:
            tsl_bytes = f.read()
        return cls(
            tsl_bytes=tsl_bytes,
            sequence_number=sequence_number,
            signer_cert=load_cert(signer_cert_path),
            **kwargs,
        )

    def __str__(self) -> str:
        return (
            f"TslArtifact(seqNr={self.sequence_number}, {len(self.tsl_bytes)} bytes, "
            f"signer serial={self.signer_serial_number}, digest={self.digest[:16]}...)"
        )
