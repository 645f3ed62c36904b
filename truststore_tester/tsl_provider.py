"""
Mock TSL download server.

Serves one configured TSL on a primary and a backup download point, each as
XML and as SHA-256 hash, with per-point behaviour taken from an
EndpointBehaviorMatrix. Every request is recorded before the response is
decided so a poller never misses a request that is still being answered.
"""

import base64
import gzip
import hashlib
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from aiohttp import web

from .models import (
    IGNORE_SEQUENCE_NUMBER,
    EndpointBehavior,
    EndpointBehaviorMatrix,
    EndpointScope,
    TslRequestHistoryEntry,
)


DOWNLOAD_POINTS = ("primary", "backup")


def parse_seq_nr(value: Optional[str]) -> Optional[int]:
    """Sequence number from a query parameter; None when missing or not a number"""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_seq_nr_filter(value: Optional[str]) -> int:
    if value is None or value.lower() == "ignore":
        return IGNORE_SEQUENCE_NUMBER
    try:
        return int(value)
    except ValueError:
        raise web.HTTPBadRequest(text=f"invalid seqNr filter: {value}")


class TslProviderState:
    """Configuration and request history of the TSL provider, guarded by one lock"""

    def __init__(self, log_callback: Optional[Callable[[str], None]] = None):
        self.log_callback = log_callback or print
        self._lock = threading.Lock()
        self._tsl_bytes: Optional[bytes] = None
        self._matrix: Optional[EndpointBehaviorMatrix] = None
        self._history: List[TslRequestHistoryEntry] = []
        self._order = 0

    def configure(self, tsl_bytes: bytes, matrix: EndpointBehaviorMatrix) -> None:
        with self._lock:
            self._tsl_bytes = tsl_bytes
            self._matrix = matrix
        self.log_callback(f"[INFO] TSL provider configured: {len(tsl_bytes)} bytes, {matrix}")

    def clear_config(self) -> None:
        with self._lock:
            self._tsl_bytes = None
            self._matrix = None
        self.log_callback("[INFO] TSL provider configuration cleared")

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._tsl_bytes is not None

    def record(
        self, endpoint: str, seq_nr: Optional[int], gzip_accepted: bool, protocol: str
    ) -> Tuple[TslRequestHistoryEntry, Optional[bytes], Optional[EndpointBehavior]]:
        """Append a history entry and return it with the payload and behaviour in force at arrival"""
        point = endpoint.partition("/")[0]
        with self._lock:
            tsl_bytes = self._tsl_bytes
            behavior = self._matrix.for_point(point) if self._matrix else None
            if tsl_bytes is None:
                status = 500
            elif behavior is EndpointBehavior.SERVE_404:
                status = 404
            else:
                status = 200
            self._order += 1
            entry = TslRequestHistoryEntry(
                endpoint=endpoint,
                seq_nr=seq_nr,
                gzip_accepted=gzip_accepted,
                protocol=protocol,
                status=status,
                order=self._order,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            self._history.append(entry)
        self.log_callback(f"[DEBUG] TSL request #{entry.order} {endpoint} seqNr={seq_nr} gzip={gzip_accepted} -> {status}")
        return entry, tsl_bytes, behavior

    def history(
        self, seq_nr: int = IGNORE_SEQUENCE_NUMBER, scope: EndpointScope = EndpointScope.ANY
    ) -> List[TslRequestHistoryEntry]:
        with self._lock:
            return [
                e for e in self._history
                if (seq_nr == IGNORE_SEQUENCE_NUMBER or e.seq_nr == seq_nr) and scope.admits(e.endpoint)
            ]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
        self.log_callback("[INFO] TSL provider history cleared")


class MockTslProvider:
    def __init__(self, log_callback: Optional[Callable[[str], None]] = None):
        self.state = TslProviderState(log_callback)
        self.app = web.Application()
        self.register_routes()

    def register_routes(self):
        self.app.add_routes([
            web.get('/tsl/{point}', self.serve_xml),
            web.get('/tsl/{point}/hash', self.serve_hash),
            web.post('/admin/configure', self.admin_configure),
            web.post('/admin/clear-config', self.admin_clear_config),
            web.get('/admin/history', self.admin_history),
            web.post('/admin/history/clear', self.admin_clear_history),
            web.get('/admin/health', self.admin_health),
        ])

    def _record(self, request: web.Request, kind: str):
        point = request.match_info['point']
        if point not in DOWNLOAD_POINTS:
            raise web.HTTPNotFound()
        gzip_accepted = 'gzip' in request.headers.get('Accept-Encoding', '').lower()
        protocol = f"HTTP/{request.version.major}.{request.version.minor}"
        return self.state.record(
            f"{point}/{kind}", parse_seq_nr(request.query.get('seqNr')), gzip_accepted, protocol
        )

    @staticmethod
    def _error_response(entry: TslRequestHistoryEntry) -> Optional[web.Response]:
        if entry.status == 500:
            return web.Response(status=500, text="not configured")
        if entry.status == 404:
            return web.Response(status=404, text="not found")
        return None

    async def serve_xml(self, request: web.Request):
        entry, tsl_bytes, behavior = self._record(request, "xml")
        error = self._error_response(entry)
        if error is not None:
            return error
        if behavior is EndpointBehavior.SERVE_200_COMPRESSIBLE and entry.gzip_accepted:
            return web.Response(
                body=gzip.compress(tsl_bytes),
                content_type='application/xml',
                headers={'Content-Encoding': 'gzip'},
            )
        return web.Response(body=tsl_bytes, content_type='application/xml')

    async def serve_hash(self, request: web.Request):
        entry, tsl_bytes, _behavior = self._record(request, "hash")
        error = self._error_response(entry)
        if error is not None:
            return error
        return web.Response(text=hashlib.sha256(tsl_bytes).hexdigest())

    async def admin_configure(self, request: web.Request):
        try:
            payload = await request.json()
            tsl_bytes = base64.b64decode(payload['tsl'], validate=True)
            matrix = EndpointBehaviorMatrix.from_dict(payload.get('matrix', {}))
        except (ValueError, KeyError, TypeError) as e:
            raise web.HTTPBadRequest(text=f"invalid TSL provider configuration: {e}")
        self.state.configure(tsl_bytes, matrix)
        return web.json_response({'status': 'configured'})

    async def admin_clear_config(self, request: web.Request):
        self.state.clear_config()
        return web.json_response({'status': 'cleared'})

    async def admin_history(self, request: web.Request):
        seq_nr = parse_seq_nr_filter(request.query.get('seqNr'))
        try:
            scope = EndpointScope(request.query.get('endpoint', 'any'))
        except ValueError:
            raise web.HTTPBadRequest(text=f"invalid endpoint filter: {request.query.get('endpoint')}")
        return web.json_response([e.to_dict() for e in self.state.history(seq_nr, scope)])

    async def admin_clear_history(self, request: web.Request):
        self.state.clear_history()
        return web.json_response({'status': 'cleared'})

    async def admin_health(self, request: web.Request):
        return web.json_response({'status': 'UP', 'configured': self.state.configured})
