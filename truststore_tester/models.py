from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime


# history queries with this value match every sequence number
IGNORE_SEQUENCE_NUMBER = -1
IGNORE_CERT_SERIAL_NUMBER = -1


class TestStatus(Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"
    ERROR = "ERROR"


@dataclass
class TestCaseResult:
    id: str
    name: str
    category: str
    status: TestStatus
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if not self.ended_at:
            return None
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    def end(self) -> None:
        self.ended_at = datetime.utcnow()


class ExpectationMode(Enum):
    MUST_OCCUR = "MUST_OCCUR"
    MUST_NOT_OCCUR = "MUST_NOT_OCCUR"
    OPTIONAL = "OPTIONAL"


class EndpointBehavior(Enum):
    SERVE_200 = "SERVE_200"
    SERVE_404 = "SERVE_404"
    SERVE_200_COMPRESSIBLE = "SERVE_200_COMPRESSIBLE"


@dataclass(frozen=True)
class EndpointBehaviorMatrix:
    primary: EndpointBehavior = EndpointBehavior.SERVE_200
    backup: EndpointBehavior = EndpointBehavior.SERVE_200

    def for_point(self, point: str) -> EndpointBehavior:
        if point == "primary":
            return self.primary
        if point == "backup":
            return self.backup
        raise ValueError(f"Unknown download point: {point}")

    def to_dict(self) -> Dict[str, str]:
        return {"primary": self.primary.value, "backup": self.backup.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EndpointBehaviorMatrix":
        unknown = sorted(set(data) - {"primary", "backup"})
        if unknown:
            raise ValueError(f"Unknown endpoint(s) in behavior matrix: {unknown}")
        return cls(
            primary=EndpointBehavior(data.get("primary", EndpointBehavior.SERVE_200.value)),
            backup=EndpointBehavior(data.get("backup", EndpointBehavior.SERVE_200.value)),
        )

    def __str__(self) -> str:
        return f"primary={self.primary.value}, backup={self.backup.value}"


PRIMARY_200_BACKUP_200 = EndpointBehaviorMatrix(EndpointBehavior.SERVE_200, EndpointBehavior.SERVE_200)
PRIMARY_404_BACKUP_200 = EndpointBehaviorMatrix(EndpointBehavior.SERVE_404, EndpointBehavior.SERVE_200)
PRIMARY_200_BACKUP_404 = EndpointBehaviorMatrix(EndpointBehavior.SERVE_200, EndpointBehavior.SERVE_404)
PRIMARY_404_BACKUP_404 = EndpointBehaviorMatrix(EndpointBehavior.SERVE_404, EndpointBehavior.SERVE_404)
PRIMARY_200_BACKUP_200_COMPRESSIBLE = EndpointBehaviorMatrix(
    EndpointBehavior.SERVE_200_COMPRESSIBLE, EndpointBehavior.SERVE_200_COMPRESSIBLE
)


class EndpointScope(Enum):
    """Which TSL provider endpoints a history query admits."""
    PRIMARY = "primary"
    BACKUP = "backup"
    ANY = "any"
    XML_ONLY = "xml"
    HASH_ONLY = "hash"

    def admits(self, endpoint: str) -> bool:
        point, _, kind = endpoint.partition("/")
        if self is EndpointScope.ANY:
            return True
        if self is EndpointScope.PRIMARY:
            return point == "primary"
        if self is EndpointScope.BACKUP:
            return point == "backup"
        if self is EndpointScope.XML_ONLY:
            return kind == "xml"
        return kind == "hash"


@dataclass
class TslRequestHistoryEntry:
    # endpoint is "<primary|backup>/<xml|hash>"
    endpoint: str
    seq_nr: Optional[int]
    gzip_accepted: bool = False
    protocol: str = "HTTP/1.1"
    status: int = 200
    order: int = 0
    timestamp: str = ""

    @property
    def download_point(self) -> str:
        return self.endpoint.partition("/")[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "seqNr": self.seq_nr,
            "gzipAccepted": self.gzip_accepted,
            "protocol": self.protocol,
            "status": self.status,
            "order": self.order,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TslRequestHistoryEntry":
        return cls(
            endpoint=data["endpoint"],
            seq_nr=data.get("seqNr"),
            gzip_accepted=bool(data.get("gzipAccepted", False)),
            protocol=data.get("protocol", "HTTP/1.1"),
            status=int(data.get("status", 200)),
            order=int(data.get("order", 0)),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class OcspRequestHistoryEntry:
    cert_serial_nr: int
    request_bytes: bytes
    seq_nr: Optional[int] = None
    order: int = 0
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certSerialNr": str(self.cert_serial_nr),
            "requestBytes": self.request_bytes.hex(),
            "seqNr": self.seq_nr,
            "order": self.order,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OcspRequestHistoryEntry":
        return cls(
            cert_serial_nr=int(data["certSerialNr"]),
            request_bytes=bytes.fromhex(data.get("requestBytes", "")),
            seq_nr=data.get("seqNr"),
            order=int(data.get("order", 0)),
            timestamp=data.get("timestamp", ""),
        )


@dataclass(frozen=True)
class SequenceState:
    last_offered: int
    expected_in_sut: int
    current_in_sut: int

    def __str__(self) -> str:
        return (
            f"SequenceState(current_in_sut={self.current_in_sut}, "
            f"last_offered={self.last_offered}, expected_in_sut={self.expected_in_sut})"
        )
