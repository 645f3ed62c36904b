import csv
import json
from typing import List, Optional

from .models import SequenceState, TestCaseResult

SEQUENCE_STATE_COLS = ["last_offered", "expected_in_sut", "current_in_sut"]


def _result_row(r: TestCaseResult) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "category": r.category,
        "status": r.status.value,
        "message": r.message,
        "details": r.details,
        "started_at": r.started_at.isoformat() + "Z",
        "ended_at": r.ended_at.isoformat() + "Z" if r.ended_at else None,
        "duration_ms": r.duration_ms,
    }


def _sequence_state_row(sequence_state: SequenceState) -> dict:
    return {col: getattr(sequence_state, col) for col in SEQUENCE_STATE_COLS}


def export_results_json(results: List[TestCaseResult], path: str, sequence_state: Optional[SequenceState] = None) -> None:
    payload = {"results": [_result_row(r) for r in results]}
    if sequence_state is not None:
        payload["sequence_state"] = _sequence_state_row(sequence_state)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def export_results_csv(results: List[TestCaseResult], path: str, sequence_state: Optional[SequenceState] = None) -> None:
    """One row per result; a given sequence state is repeated on every row"""
    cols = ["id", "category", "name", "status", "message", "duration_ms", "details"]
    state_row = {}
    if sequence_state is not None:
        cols += SEQUENCE_STATE_COLS
        state_row = _sequence_state_row(sequence_state)
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=cols)
        w.writeheader()
        for r in results:
            w.writerow({
                "id": r.id,
                "category": r.category,
                "name": r.name,
                "status": r.status.value,
                "message": r.message,
                "duration_ms": r.duration_ms,
                "details": json.dumps(r.details),
                **state_row,
            })
