"""
HTTP clients for the administrative side channel of the mock servers.

Both clients mirror the method signatures of TslProviderState and
OcspResponderState, so coordinators can be wired to a remote mock server or
to an in-process one interchangeably.
"""

import base64
from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import ConfigurationConflictError, MockServerError
from .fault_profile import CertificateFaultProfile
from .models import (
    IGNORE_CERT_SERIAL_NUMBER,
    IGNORE_SEQUENCE_NUMBER,
    EndpointBehaviorMatrix,
    EndpointScope,
    OcspRequestHistoryEntry,
    TslRequestHistoryEntry,
)


class _AdminClient:
    def __init__(self, base_uri: str, timeout: int = 10, log_callback: Optional[Callable[[str], None]] = None):
        self.base_uri = base_uri.rstrip("/")
        self.timeout = timeout
        self.log_callback = log_callback or (lambda _msg: None)
        self.session = requests.Session()

    def _call(self, method: str, path: str, **kwargs) -> Any:
        url = self.base_uri + path
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise MockServerError(f"{method} {url} failed: {e}") from e

        if resp.status_code == 409:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            raise ConfigurationConflictError(detail)
        if resp.status_code >= 400:
            raise MockServerError(f"{method} {url} returned {resp.status_code}: {resp.text}")
        return resp.json()

    def clear_config(self) -> None:
        self.log_callback(f"[DEBUG] Clearing configuration of {self.base_uri}")
        self._call("POST", "/admin/clear-config")

    def clear_history(self) -> None:
        self.log_callback(f"[DEBUG] Clearing history of {self.base_uri}")
        self._call("POST", "/admin/history/clear")

    def health(self) -> Dict[str, Any]:
        return self._call("GET", "/admin/health")


def _seq_nr_param(seq_nr: int) -> str:
    return "ignore" if seq_nr == IGNORE_SEQUENCE_NUMBER else str(seq_nr)


class TslProviderClient(_AdminClient):
    def configure(self, tsl_bytes: bytes, matrix: EndpointBehaviorMatrix) -> None:
        self.log_callback(f"[DEBUG] Configuring TSL provider {self.base_uri}: {len(tsl_bytes)} bytes, {matrix}")
        self._call("POST", "/admin/configure", json={
            "tsl": base64.b64encode(tsl_bytes).decode("ascii"),
            "matrix": matrix.to_dict(),
        })

    def history(
        self, seq_nr: int = IGNORE_SEQUENCE_NUMBER, scope: EndpointScope = EndpointScope.ANY
    ) -> List[TslRequestHistoryEntry]:
        data = self._call("GET", "/admin/history", params={"seqNr": _seq_nr_param(seq_nr), "endpoint": scope.value})
        return [TslRequestHistoryEntry.from_dict(d) for d in data]


class OcspResponderClient(_AdminClient):
    def configure(self, profiles: List[CertificateFaultProfile]) -> None:
        self.log_callback(f"[DEBUG] Configuring OCSP responder {self.base_uri} with {len(profiles)} profile(s)")
        self._call("POST", "/admin/configure", json={"profiles": [p.to_dict() for p in profiles]})

    def history(
        self, seq_nr: int = IGNORE_SEQUENCE_NUMBER, serial: int = IGNORE_CERT_SERIAL_NUMBER
    ) -> List[OcspRequestHistoryEntry]:
        params = {
            "seqNr": _seq_nr_param(seq_nr),
            "serial": "ignore" if serial == IGNORE_CERT_SERIAL_NUMBER else str(serial),
        }
        data = self._call("GET", "/admin/history", params=params)
        return [OcspRequestHistoryEntry.from_dict(d) for d in data]
