"""
Minimal OCSP client, used to play the test object against the mock responder
(smoke checks from the launcher, and the test suite).
"""

import os
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import requests
from asn1crypto import ocsp as asn1_ocsp
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.ocsp import OCSPRequestBuilder, OCSPResponseStatus, load_der_ocsp_response

from .ocsp_response_builder import CERT_HASH_OID, CertHash


@dataclass
class OCSPRequestSpec:
    cert: x509.Certificate
    issuer: x509.Certificate
    include_nonce: bool = True
    nonce_len: int = 32  # RFC 9654 recommends >=32
    hash_algo: hashes.HashAlgorithm = field(default_factory=hashes.SHA1)


@dataclass
class OCSPResponseInfo:
    response_status: str
    cert_status: Optional[str]
    serial_number: Optional[int]
    cert_id_hash_algorithm: Optional[str]
    this_update: Optional[str]
    next_update: Optional[str]
    produced_at: Optional[str]
    responder_id_type: Optional[str]
    nonce_echoed: Optional[bool]
    cert_hash: Optional[bytes]
    raw_der: bytes
    latency_ms: int


def build_request(spec: OCSPRequestSpec, nonce_bytes: Optional[bytes] = None) -> Tuple[bytes, Optional[bytes]]:
    builder = OCSPRequestBuilder()
    builder = builder.add_certificate(spec.cert, spec.issuer, spec.hash_algo)
    used_nonce = None
    if spec.include_nonce:
        used_nonce = nonce_bytes if nonce_bytes is not None else os.urandom(spec.nonce_len)
        builder = builder.add_extension(x509.OCSPNonce(used_nonce), critical=False)
    req = builder.build()
    return req.public_bytes(serialization.Encoding.DER), used_nonce


def parse_response(der_resp: bytes, used_nonce: Optional[bytes] = None, latency_ms: int = 0) -> OCSPResponseInfo:
    # status via cryptography, the details cryptography does not expose via asn1crypto
    ocsp_resp = load_der_ocsp_response(der_resp)
    status_name = ocsp_resp.response_status.name

    cert_status = None
    serial = None
    hash_algo = None
    this_upd = None
    next_upd = None
    produced_at = None
    responder_id_type = None
    nonce_echoed = None
    cert_hash = None
    if ocsp_resp.response_status == OCSPResponseStatus.SUCCESSFUL:
        asn1 = asn1_ocsp.OCSPResponse.load(der_resp)
        tbs = asn1["response_bytes"]["response"].parsed["tbs_response_data"]
        produced_at = tbs["produced_at"].native.strftime("%Y-%m-%dT%H:%M:%SZ")
        responder_id_type = tbs["responder_id"].name

        single = tbs["responses"][0]
        cert_status = single["cert_status"].name
        serial = single["cert_id"]["serial_number"].native
        hash_algo = single["cert_id"]["hash_algorithm"]["algorithm"].native
        this_upd = single["this_update"].native.strftime("%Y-%m-%dT%H:%M:%SZ")
        if single["next_update"].native is not None:
            next_upd = single["next_update"].native.strftime("%Y-%m-%dT%H:%M:%SZ")
        for ext in single["single_extensions"] or []:
            if ext["extn_id"].dotted == CERT_HASH_OID:
                # CertHash ::= SEQUENCE { hashAlgorithm, certificateHash OCTET STRING }
                cert_hash = CertHash.load(ext["extn_value"].contents)["certificate_hash"].native

        for ext in tbs["response_extensions"] or []:
            if ext["extn_id"].dotted == "1.3.6.1.5.5.7.48.1.2":
                nonce_echoed = used_nonce is not None and ext["extn_value"].parsed.native == used_nonce

    return OCSPResponseInfo(
        response_status=status_name,
        cert_status=cert_status,
        serial_number=serial,
        cert_id_hash_algorithm=hash_algo,
        this_update=this_upd,
        next_update=next_upd,
        produced_at=produced_at,
        responder_id_type=responder_id_type,
        nonce_echoed=nonce_echoed,
        cert_hash=cert_hash,
        raw_der=der_resp,
        latency_ms=latency_ms,
    )


def send_ocsp_request(
    url: str,
    spec: OCSPRequestSpec,
    override_nonce: Optional[bytes] = None,
    timeout: int = 10,
) -> OCSPResponseInfo:
    der_req, used_nonce = build_request(spec, override_nonce)

    headers = {"Content-Type": "application/ocsp-request", "Accept": "application/ocsp-response"}
    start = time.perf_counter()
    resp = requests.post(url, data=der_req, headers=headers, timeout=timeout)
    latency_ms = int((time.perf_counter() - start) * 1000)

    resp.raise_for_status()
    return parse_response(resp.content, used_nonce, latency_ms)
