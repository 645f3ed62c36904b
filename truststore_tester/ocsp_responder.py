"""
Mock OCSP responder.

Answers OCSP requests according to configured CertificateFaultProfiles and
keeps a history of every request. The sequence number tag of a request comes
from the URL path (/ocsp/{seqNr}, as written into the service information of
each TSL the harness offers), else from a seqNr query parameter, else from
the responder's default tag.
"""

import asyncio
import hashlib
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from aiohttp import web
from cryptography.hazmat.primitives import serialization

from .errors import ConfigurationConflictError
from .fault_profile import CertificateFaultProfile, OcspSigner, check_profiles_unambiguous
from .models import IGNORE_CERT_SERIAL_NUMBER, IGNORE_SEQUENCE_NUMBER, OcspRequestHistoryEntry
from .ocsp_response_builder import MalformedOcspRequest, ParsedOcspRequest, build_ocsp_response, parse_ocsp_request
from .tsl_artifact import load_cert
from .tsl_provider import parse_seq_nr, parse_seq_nr_filter


def _issuer_name_hash(profile: CertificateFaultProfile, hash_algo: str) -> Optional[bytes]:
    # issuer_cert, when given, overrides the issuer name of the end-entity certificate
    issuer_name = profile.issuer_cert.subject if profile.issuer_cert is not None else profile.ee_cert.issuer
    try:
        return hashlib.new(hash_algo, issuer_name.public_bytes()).digest()
    except ValueError:
        return None


def profile_matches(profile: CertificateFaultProfile, request: ParsedOcspRequest) -> bool:
    if profile.is_wildcard or profile.serial_number != request.serial_number:
        return False
    hash_algo = request.cert_id["hash_algorithm"]["algorithm"].native
    return _issuer_name_hash(profile, hash_algo) == request.issuer_name_hash


class OcspResponderState:
    """Fault profiles and request history of the OCSP responder, guarded by one lock"""

    def __init__(
        self,
        default_signer: Optional[OcspSigner] = None,
        default_seq_nr: Optional[int] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.log_callback = log_callback or print
        self._lock = threading.Lock()
        self.default_signer = default_signer
        self.default_seq_nr = default_seq_nr
        self._profiles: Dict[Tuple[Optional[str], Optional[int]], CertificateFaultProfile] = {}
        self._history: List[OcspRequestHistoryEntry] = []
        self._order = 0

    def configure(self, profiles: List[CertificateFaultProfile]) -> None:
        """Replace the profile set; a set naming one certificate twice is rejected unchanged"""
        check_profiles_unambiguous(profiles)
        with self._lock:
            self._profiles = {p.key: p for p in profiles}
        for profile in profiles:
            self.log_callback(f"[INFO] OCSP responder configured: {profile}")

    def clear_config(self) -> None:
        with self._lock:
            self._profiles = {}
        self.log_callback("[INFO] OCSP responder configuration cleared")

    def profiles(self) -> List[CertificateFaultProfile]:
        with self._lock:
            return list(self._profiles.values())

    def record(self, request: ParsedOcspRequest, seq_nr: Optional[int]) -> CertificateFaultProfile:
        """Append a history entry and return the profile that answers the request"""
        with self._lock:
            self._order += 1
            entry = OcspRequestHistoryEntry(
                cert_serial_nr=request.serial_number,
                request_bytes=request.raw,
                seq_nr=seq_nr,
                order=self._order,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            self._history.append(entry)
            profile = next((p for p in self._profiles.values() if profile_matches(p, request)), None)
            if profile is None:
                profile = self._profiles.get((None, None))
        self.log_callback(f"[DEBUG] OCSP request #{entry.order} serial={request.serial_number} seqNr={seq_nr}")
        if profile is None:
            self.log_callback(f"[DEBUG] No fault profile for serial {request.serial_number}, answering good")
            profile = CertificateFaultProfile()
        return profile

    def history(
        self, seq_nr: int = IGNORE_SEQUENCE_NUMBER, serial: int = IGNORE_CERT_SERIAL_NUMBER
    ) -> List[OcspRequestHistoryEntry]:
        with self._lock:
            return [
                e for e in self._history
                if (seq_nr == IGNORE_SEQUENCE_NUMBER or e.seq_nr == seq_nr)
                and (serial == IGNORE_CERT_SERIAL_NUMBER or e.cert_serial_nr == serial)
            ]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
        self.log_callback("[INFO] OCSP responder history cleared")


class MockOcspResponder:
    def __init__(
        self,
        default_signer: Optional[OcspSigner] = None,
        default_seq_nr: Optional[int] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.state = OcspResponderState(default_signer, default_seq_nr, log_callback)
        self.app = web.Application()
        self.register_routes()

    @property
    def log_callback(self):
        return self.state.log_callback

    def register_routes(self):
        self.app.add_routes([
            web.post('/ocsp', self.ocsp),
            web.post('/ocsp/{seqNr}', self.ocsp),
            web.post('/admin/configure', self.admin_configure),
            web.post('/admin/clear-config', self.admin_clear_config),
            web.get('/admin/history', self.admin_history),
            web.post('/admin/history/clear', self.admin_clear_history),
            web.get('/admin/health', self.admin_health),
        ])

    def _seq_nr_tag(self, request: web.Request) -> Optional[int]:
        tag = parse_seq_nr(request.match_info.get('seqNr'))
        if tag is None:
            tag = parse_seq_nr(request.query.get('seqNr'))
        if tag is None:
            tag = self.state.default_seq_nr
        return tag

    async def ocsp(self, request: web.Request):
        body = await request.read()
        try:
            parsed = parse_ocsp_request(body)
        except MalformedOcspRequest as e:
            self.log_callback(f"[WARN] Rejecting OCSP request: {e}")
            raise web.HTTPBadRequest(text=str(e))

        profile = self.state.record(parsed, self._seq_nr_tag(request))
        signer = profile.signer or self.state.default_signer
        if signer is None:
            self.log_callback(f"[ERROR] No OCSP signer available for serial {parsed.serial_number}")
            raise web.HTTPInternalServerError(text="no OCSP signer configured")

        if profile.delay_milliseconds > 0:
            self.log_callback(f"[DEBUG] Delaying OCSP response by {profile.delay_milliseconds} ms")
            await asyncio.sleep(profile.delay_milliseconds / 1000.0)

        der = build_ocsp_response(parsed, profile, signer)
        return web.Response(body=der, content_type='application/ocsp-response')

    async def admin_configure(self, request: web.Request):
        try:
            payload = await request.json()
            profiles = [CertificateFaultProfile.from_dict(p) for p in payload.get('profiles', [])]
        except (ValueError, KeyError, TypeError) as e:
            raise web.HTTPBadRequest(text=f"invalid OCSP responder configuration: {e}")
        try:
            self.state.configure(profiles)
        except ConfigurationConflictError as e:
            self.log_callback(f"[WARN] {e}")
            return web.json_response({'error': str(e)}, status=409)
        return web.json_response({'status': 'configured', 'profiles': len(profiles)})

    async def admin_clear_config(self, request: web.Request):
        self.state.clear_config()
        return web.json_response({'status': 'cleared'})

    async def admin_history(self, request: web.Request):
        seq_nr = parse_seq_nr_filter(request.query.get('seqNr'))
        serial_param = request.query.get('serial')
        if serial_param is None or serial_param.lower() == 'ignore':
            serial = IGNORE_CERT_SERIAL_NUMBER
        else:
            try:
                serial = int(serial_param)
            except ValueError:
                raise web.HTTPBadRequest(text=f"invalid serial filter: {serial_param}")
        return web.json_response([e.to_dict() for e in self.state.history(seq_nr, serial)])

    async def admin_clear_history(self, request: web.Request):
        self.state.clear_history()
        return web.json_response({'status': 'cleared'})

    async def admin_health(self, request: web.Request):
        signer = self.state.default_signer
        return web.json_response({
            'status': 'UP',
            'profiles': len(self.state.profiles()),
            'defaultSigner': (
                signer.certificate.subject.rfc4514_string() if signer is not None else None
            ),
        })


def load_signer(cert_path: str, key_path: str, password: Optional[bytes] = None) -> OcspSigner:
    """Load an OCSP signer from PEM encoded certificate and key files"""
    with open(key_path, "rb") as f:
        key = serialization.load_pem_private_key(f.read(), password=password)
    return OcspSigner(certificate=load_cert(cert_path), private_key=key)
