"""
Per-certificate OCSP response deviations for the mock OCSP responder.

A CertificateFaultProfile names the certificate it applies to (or none, as a
wildcard for any request), the signer used for the response and every
deviation to inject. Profiles are plain immutable values; they travel to the
responder as JSON with certificates and keys in PEM form.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .errors import ConfigurationConflictError


class CertificateIdGeneration(Enum):
    VALID_CERTID = "VALID_CERTID"
    INVALID_CERTID_SERIAL_NUMBER = "INVALID_CERTID_SERIAL_NUMBER"
    INVALID_CERTID_HASH_ALGO = "INVALID_CERTID_HASH_ALGO"
    INVALID_CERTID_ISSUER_NAME_HASH = "INVALID_CERTID_ISSUER_NAME_HASH"
    INVALID_CERTID_ISSUER_KEY_HASH = "INVALID_CERTID_ISSUER_KEY_HASH"


class ResponderIdType(Enum):
    BY_KEY = "BY_KEY"
    BY_NAME = "BY_NAME"


class ResponseStatus(Enum):
    # values are the asn1crypto names of OCSPResponseStatus
    SUCCESSFUL = "successful"
    MALFORMED_REQUEST = "malformed_request"
    INTERNAL_ERROR = "internal_error"
    TRY_LATER = "try_later"
    SIG_REQUIRED = "sign_required"
    UNAUTHORIZED = "unauthorized"


class ResponseAlgoBehavior(Enum):
    # MIRRORING signs with the digest of the request's CertId hash algorithm
    MIRRORING = "MIRRORING"
    SHA2 = "SHA2"


class CertStatusType(Enum):
    GOOD = "GOOD"
    REVOKED = "REVOKED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class CertificateStatus:
    type: CertStatusType = CertStatusType.GOOD
    revocation_time: Optional[datetime] = None
    # asn1crypto CRLReason name
    revocation_reason: str = "key_compromise"

    @classmethod
    def good(cls) -> "CertificateStatus":
        return cls(CertStatusType.GOOD)

    @classmethod
    def unknown(cls) -> "CertificateStatus":
        return cls(CertStatusType.UNKNOWN)

    @classmethod
    def revoked(cls, revocation_time: Optional[datetime] = None, reason: str = "key_compromise") -> "CertificateStatus":
        return cls(CertStatusType.REVOKED, revocation_time or datetime.now(timezone.utc), reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "revocationTime": self.revocation_time.isoformat() if self.revocation_time else None,
            "revocationReason": self.revocation_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateStatus":
        rev_time = data.get("revocationTime")
        return cls(
            type=CertStatusType(data.get("type", "GOOD")),
            revocation_time=datetime.fromisoformat(rev_time) if rev_time else None,
            revocation_reason=data.get("revocationReason", "key_compromise"),
        )

    def __str__(self) -> str:
        if self.type is CertStatusType.REVOKED:
            return f"REVOKED({self.revocation_time}, {self.revocation_reason})"
        return self.type.value


@dataclass(frozen=True)
class OcspSigner:
    """Certificate and private key the responder signs a response with"""
    certificate: x509.Certificate
    private_key: Any

    def to_dict(self) -> Dict[str, str]:
        return {
            "certificate": _cert_to_pem(self.certificate),
            "privateKey": self.private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "OcspSigner":
        return cls(
            certificate=x509.load_pem_x509_certificate(data["certificate"].encode("ascii")),
            private_key=serialization.load_pem_private_key(data["privateKey"].encode("ascii"), password=None),
        )


def _cert_to_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _cert_from_pem(pem: Optional[str]) -> Optional[x509.Certificate]:
    if not pem:
        return None
    return x509.load_pem_x509_certificate(pem.encode("ascii"))


@dataclass(frozen=True)
class CertificateFaultProfile:
    # None makes this the wildcard profile applied to any otherwise unmatched request
    ee_cert: Optional[x509.Certificate] = None
    issuer_cert: Optional[x509.Certificate] = None
    signer: Optional[OcspSigner] = None
    cert_status: CertificateStatus = field(default_factory=CertificateStatus.good)
    response_status: ResponseStatus = ResponseStatus.SUCCESSFUL
    with_response_bytes: bool = True
    produced_at_delta_ms: int = 0
    this_update_delta_ms: int = 0
    # None omits nextUpdate
    next_update_delta_ms: Optional[int] = 0
    valid_signature: bool = True
    cert_id_generation: CertificateIdGeneration = CertificateIdGeneration.VALID_CERTID
    with_null_parameter_hash_algo_of_cert_id: bool = False
    with_cert_hash: bool = True
    valid_cert_hash: bool = True
    responder_id_type: ResponderIdType = ResponderIdType.BY_KEY
    response_algo_behavior: ResponseAlgoBehavior = ResponseAlgoBehavior.SHA2
    delay_milliseconds: int = 0

    def __post_init__(self):
        if self.delay_milliseconds < 0:
            raise ValueError("delay_milliseconds must not be negative")

    @property
    def is_wildcard(self) -> bool:
        return self.ee_cert is None

    @property
    def serial_number(self) -> Optional[int]:
        return None if self.ee_cert is None else self.ee_cert.serial_number

    @property
    def key(self) -> Tuple[Optional[str], Optional[int]]:
        """(issuer, serial) identity of the profile; (None, None) for the wildcard"""
        if self.ee_cert is None:
            return (None, None)
        issuer = self.ee_cert.issuer.rfc4514_string()
        return (issuer, self.ee_cert.serial_number)

    def evolve(self, **changes) -> "CertificateFaultProfile":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eeCert": _cert_to_pem(self.ee_cert) if self.ee_cert else None,
            "issuerCert": _cert_to_pem(self.issuer_cert) if self.issuer_cert else None,
            "signer": self.signer.to_dict() if self.signer else None,
            "certStatus": self.cert_status.to_dict(),
            "responseStatus": self.response_status.value,
            "withResponseBytes": self.with_response_bytes,
            "producedAtDeltaMilliseconds": self.produced_at_delta_ms,
            "thisUpdateDeltaMilliseconds": self.this_update_delta_ms,
            "nextUpdateDeltaMilliseconds": self.next_update_delta_ms,
            "validSignature": self.valid_signature,
            "certificateIdGeneration": self.cert_id_generation.value,
            "withNullParameterHashAlgoOfCertId": self.with_null_parameter_hash_algo_of_cert_id,
            "withCertHash": self.with_cert_hash,
            "validCertHash": self.valid_cert_hash,
            "responderIdType": self.responder_id_type.value,
            "responseAlgoBehavior": self.response_algo_behavior.value,
            "delayMilliseconds": self.delay_milliseconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateFaultProfile":
        signer = data.get("signer")
        return cls(
            ee_cert=_cert_from_pem(data.get("eeCert")),
            issuer_cert=_cert_from_pem(data.get("issuerCert")),
            signer=OcspSigner.from_dict(signer) if signer else None,
            cert_status=CertificateStatus.from_dict(data.get("certStatus") or {}),
            response_status=ResponseStatus(data.get("responseStatus", "successful")),
            with_response_bytes=data.get("withResponseBytes", True),
            produced_at_delta_ms=data.get("producedAtDeltaMilliseconds", 0),
            this_update_delta_ms=data.get("thisUpdateDeltaMilliseconds", 0),
            next_update_delta_ms=data.get("nextUpdateDeltaMilliseconds", 0),
            valid_signature=data.get("validSignature", True),
            cert_id_generation=CertificateIdGeneration(data.get("certificateIdGeneration", "VALID_CERTID")),
            with_null_parameter_hash_algo_of_cert_id=data.get("withNullParameterHashAlgoOfCertId", False),
            with_cert_hash=data.get("withCertHash", True),
            valid_cert_hash=data.get("validCertHash", True),
            responder_id_type=ResponderIdType(data.get("responderIdType", "BY_KEY")),
            response_algo_behavior=ResponseAlgoBehavior(data.get("responseAlgoBehavior", "SHA2")),
            delay_milliseconds=data.get("delayMilliseconds", 0),
        )

    def __str__(self) -> str:
        target = "*" if self.ee_cert is None else str(self.ee_cert.serial_number)
        return (
            f"CertificateFaultProfile{{eeCertSerialNr={target}, certStatus={self.cert_status}, "
            f"responseStatus={self.response_status.value}, validSignature={self.valid_signature}, "
            f"certIdGeneration={self.cert_id_generation.value}, withCertHash={self.with_cert_hash}, "
            f"validCertHash={self.valid_cert_hash}, responderIdType={self.responder_id_type.value}, "
            f"responseAlgo={self.response_algo_behavior.value}, "
            f"producedAtDelta={self.produced_at_delta_ms}, thisUpdateDelta={self.this_update_delta_ms}, "
            f"nextUpdateDelta={self.next_update_delta_ms}, "
            f"nullParamHashAlgo={self.with_null_parameter_hash_algo_of_cert_id}, "
            f"delayMs={self.delay_milliseconds}}}"
        )


def check_profiles_unambiguous(profiles: List[CertificateFaultProfile]) -> None:
    """Reject a profile set that registers one certificate (or the wildcard) twice"""
    seen = set()
    for profile in profiles:
        if profile.key in seen:
            issuer, serial = profile.key
            target = "wildcard" if serial is None else f"serial {serial} issued by {issuer}"
            raise ConfigurationConflictError(f"Duplicate OCSP fault profile for {target}")
        seen.add(profile.key)
