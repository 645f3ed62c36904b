"""
DER encoding of (deliberately faulty) OCSP responses.

Requests are parsed and responses assembled with asn1crypto; the signature is
computed with cryptography over the DER encoded ResponseData. Every fault
dimension of a CertificateFaultProfile is applied independently of the others.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from asn1crypto import algos as asn1_algos
from asn1crypto import core as asn1_core
from asn1crypto import ocsp as asn1_ocsp
from asn1crypto import x509 as asn1_x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from .fault_profile import (
    CertificateFaultProfile,
    CertificateIdGeneration,
    CertStatusType,
    OcspSigner,
    ResponderIdType,
    ResponseAlgoBehavior,
    ResponseStatus,
)


# id-isismtt-at-certHash (Common PKI)
CERT_HASH_OID = "1.3.36.8.3.13"


class CertHash(asn1_core.Sequence):
    _fields = [
        ("hash_algorithm", asn1_algos.DigestAlgorithm),
        ("certificate_hash", asn1_core.OctetString),
    ]


class MalformedOcspRequest(ValueError):
    pass


@dataclass
class ParsedOcspRequest:
    """The parts of a single-certificate OCSP request the responder acts on"""
    cert_id: asn1_ocsp.CertId
    serial_number: int
    issuer_name_hash: bytes
    issuer_key_hash: bytes
    nonce: Optional[bytes]
    raw: bytes


def parse_ocsp_request(der: bytes) -> ParsedOcspRequest:
    try:
        request = asn1_ocsp.OCSPRequest.load(der)
        tbs = request["tbs_request"]
        request_list = tbs["request_list"]
        if len(request_list) == 0:
            raise MalformedOcspRequest("OCSP request contains no certificate id")
        cert_id = request_list[0]["req_cert"]
        nonce = None
        for ext in tbs["request_extensions"] or []:
            if ext["extn_id"].native == "nonce":
                nonce = ext["extn_value"].parsed.native
        return ParsedOcspRequest(
            cert_id=cert_id,
            serial_number=cert_id["serial_number"].native,
            issuer_name_hash=cert_id["issuer_name_hash"].native,
            issuer_key_hash=cert_id["issuer_key_hash"].native,
            nonce=nonce,
            raw=der,
        )
    except MalformedOcspRequest:
        raise
    except (ValueError, TypeError, KeyError) as e:
        raise MalformedOcspRequest(f"Cannot parse OCSP request: {e}") from e


def _flip_first_byte(data: bytes) -> bytes:
    if not data:
        return b"\x00"
    return bytes([data[0] ^ 0xFF]) + data[1:]


def _response_cert_id(request: ParsedOcspRequest, profile: CertificateFaultProfile) -> asn1_ocsp.CertId:
    hash_algo = request.cert_id["hash_algorithm"]["algorithm"].native
    serial = request.serial_number
    name_hash = request.issuer_name_hash
    key_hash = request.issuer_key_hash

    generation = profile.cert_id_generation
    if generation is CertificateIdGeneration.INVALID_CERTID_SERIAL_NUMBER:
        serial = serial + 1
    elif generation is CertificateIdGeneration.INVALID_CERTID_HASH_ALGO:
        hash_algo = "sha256" if hash_algo == "sha1" else "sha1"
    elif generation is CertificateIdGeneration.INVALID_CERTID_ISSUER_NAME_HASH:
        name_hash = _flip_first_byte(name_hash)
    elif generation is CertificateIdGeneration.INVALID_CERTID_ISSUER_KEY_HASH:
        key_hash = _flip_first_byte(key_hash)

    algorithm = {"algorithm": hash_algo}
    if profile.with_null_parameter_hash_algo_of_cert_id:
        algorithm["parameters"] = asn1_core.Null()

    return asn1_ocsp.CertId({
        "hash_algorithm": algorithm,
        "issuer_name_hash": name_hash,
        "issuer_key_hash": key_hash,
        "serial_number": serial,
    })


def _cert_status(profile: CertificateFaultProfile) -> asn1_ocsp.CertStatus:
    status = profile.cert_status
    if status.type is CertStatusType.REVOKED:
        return asn1_ocsp.CertStatus(
            name="revoked",
            value={
                "revocation_time": (status.revocation_time or datetime.now(timezone.utc)).replace(microsecond=0),
                "revocation_reason": status.revocation_reason,
            },
        )
    if status.type is CertStatusType.UNKNOWN:
        return asn1_ocsp.CertStatus(name="unknown", value=asn1_core.Null())
    return asn1_ocsp.CertStatus(name="good", value=asn1_core.Null())


def _cert_hash_extension(profile: CertificateFaultProfile) -> Optional[dict]:
    if not profile.with_cert_hash or profile.ee_cert is None:
        return None
    digest = hashlib.sha256(profile.ee_cert.public_bytes(serialization.Encoding.DER)).digest()
    if not profile.valid_cert_hash:
        digest = _flip_first_byte(digest)
    cert_hash = CertHash({
        "hash_algorithm": {"algorithm": "sha256"},
        "certificate_hash": digest,
    })
    return {"extn_id": CERT_HASH_OID, "critical": False, "extn_value": cert_hash.dump()}


def _responder_id(signer_cert: asn1_x509.Certificate, responder_id_type: ResponderIdType) -> asn1_ocsp.ResponderId:
    if responder_id_type is ResponderIdType.BY_NAME:
        return asn1_ocsp.ResponderId(name="by_name", value=signer_cert.subject)
    return asn1_ocsp.ResponderId(name="by_key", value=signer_cert.public_key.sha1)


_SIGNATURE_DIGESTS = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def _signature_digest(request: ParsedOcspRequest, profile: CertificateFaultProfile) -> str:
    if profile.response_algo_behavior is ResponseAlgoBehavior.MIRRORING:
        hash_algo = request.cert_id["hash_algorithm"]["algorithm"].native
        if hash_algo in _SIGNATURE_DIGESTS:
            return hash_algo
    return "sha256"


def _sign(signer: OcspSigner, data: bytes, digest: str = "sha256"):
    """Return (asn1crypto signature algorithm name, signature bytes)"""
    key = signer.private_key
    algorithm = _SIGNATURE_DIGESTS[digest]()
    if isinstance(key, rsa.RSAPrivateKey):
        return f"{digest}_rsa", key.sign(data, padding.PKCS1v15(), algorithm)
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return f"{digest}_ecdsa", key.sign(data, ec.ECDSA(algorithm))
    raise TypeError(f"Unsupported OCSP signer key type: {type(key).__name__}")


def build_ocsp_response(
    request: ParsedOcspRequest,
    profile: CertificateFaultProfile,
    signer: OcspSigner,
    now: Optional[datetime] = None,
) -> bytes:
    """Build the DER encoded OCSPResponse for request according to profile"""
    if profile.response_status is not ResponseStatus.SUCCESSFUL or not profile.with_response_bytes:
        return asn1_ocsp.OCSPResponse({"response_status": profile.response_status.value}).dump()

    now = now or datetime.now(timezone.utc)
    now = now.replace(microsecond=0)
    this_update = now + timedelta(milliseconds=profile.this_update_delta_ms)
    produced_at = now + timedelta(milliseconds=profile.produced_at_delta_ms)

    single_response = {
        "cert_id": _response_cert_id(request, profile),
        "cert_status": _cert_status(profile),
        "this_update": this_update,
    }
    if profile.next_update_delta_ms is not None:
        single_response["next_update"] = now + timedelta(milliseconds=profile.next_update_delta_ms)
    cert_hash_ext = _cert_hash_extension(profile)
    if cert_hash_ext is not None:
        single_response["single_extensions"] = [cert_hash_ext]

    signer_cert = asn1_x509.Certificate.load(signer.certificate.public_bytes(serialization.Encoding.DER))
    response_data = {
        "responder_id": _responder_id(signer_cert, profile.responder_id_type),
        "produced_at": produced_at,
        "responses": [single_response],
    }
    if request.nonce is not None:
        response_data["response_extensions"] = [
            {"extn_id": "nonce", "critical": False, "extn_value": request.nonce}
        ]
    tbs = asn1_ocsp.ResponseData(response_data)

    algorithm, signature = _sign(signer, tbs.dump(), _signature_digest(request, profile))
    if not profile.valid_signature:
        signature = _flip_first_byte(signature)

    basic = asn1_ocsp.BasicOCSPResponse({
        "tbs_response_data": tbs,
        "signature_algorithm": {"algorithm": algorithm},
        "signature": signature,
        "certs": [signer_cert],
    })
    return asn1_ocsp.OCSPResponse({
        "response_status": "successful",
        "response_bytes": {
            "response_type": "basic_ocsp_response",
            "response": basic,
        },
    }).dump()
