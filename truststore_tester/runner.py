import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .context import HarnessContext
from .errors import HarnessError, PersistenceError
from .models import TestCaseResult, TestStatus


@dataclass
class Scenario:
    """Externally supplied test scenario. run may return details to attach to the result."""
    id: str
    name: str
    category: str
    run: Callable[[HarnessContext], Optional[Dict[str, Any]]]
    enabled: bool = True
    tags: List[str] = field(default_factory=list)


class ScenarioRunner:
    def __init__(self, context: HarnessContext, log_callback=None):
        self.context = context
        self.log_callback = log_callback or context.log_callback

    def _log(self, message: str):
        """Log a message using the callback if available"""
        if self.log_callback:
            self.log_callback(message)

    def run_one(self, scenario: Scenario) -> TestCaseResult:
        r = TestCaseResult(id=scenario.id or str(uuid.uuid4()), category=scenario.category, name=scenario.name, status=TestStatus.SKIP)
        if not scenario.enabled:
            r.message = "Scenario disabled"
            r.end()
            return r

        self._log(f"[INFO] ===> Scenario {scenario.id}: {scenario.name}")
        self._log(f"[DEBUG] Sequence state before scenario: {self.context.sequence}")
        try:
            details = scenario.run(self.context)
            r.status = TestStatus.PASS
            r.message = "passed"
            if details:
                r.details.update(details)
        except PersistenceError:
            raise
        except HarnessError as exc:
            r.status = TestStatus.FAIL
            r.message = str(exc)
            r.details["error_type"] = type(exc).__name__
        except Exception as exc:
            r.status = TestStatus.ERROR
            r.message = str(exc)
            r.details["error_type"] = type(exc).__name__
        r.details["sequence_state"] = str(self.context.sequence)
        r.end()
        self._log(f"[INFO] <=== Scenario {scenario.id}: {r.status.value} {r.message}")
        return r

    def run_all(self, scenarios: List[Scenario]) -> List[TestCaseResult]:
        """Run scenarios strictly one after the other.

        A PersistenceError aborts the run: sequence number uniqueness can no
        longer be guaranteed. The remaining scenarios are reported as ERROR.
        """
        results: List[TestCaseResult] = []
        self._log(f"[DEBUG] ScenarioRunner.run_all() starting with {len(scenarios)} scenario(s)")
        for index, scenario in enumerate(scenarios):
            try:
                results.append(self.run_one(scenario))
            except PersistenceError as exc:
                self._log(f"[ERROR] Aborting run: {exc}")
                for remaining in scenarios[index:]:
                    results.append(self._err(remaining, f"Run aborted: {exc}"))
                break

        self._log(f"[DEBUG] ScenarioRunner.run_all() completed - Total results: {len(results)}")
        for status in TestStatus:
            self._log(f"[DEBUG] - {status.value}: {len([r for r in results if r.status is status])}")
        return results

    @staticmethod
    def _err(scenario: Scenario, msg: str) -> TestCaseResult:
        r = TestCaseResult(id=scenario.id, category=scenario.category, name=scenario.name, status=TestStatus.ERROR, message=msg)
        r.end()
        return r
