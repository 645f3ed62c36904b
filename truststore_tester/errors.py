from typing import Optional


class HarnessError(Exception):
    """Base class for every failure the harness reports for a scenario"""


class PollTimeoutError(HarnessError):
    """A bounded poll loop reached its ceiling without observing the condition"""

    def __init__(self, condition: str, timeout_seconds: float, elapsed_seconds: float, detail: Optional[str] = None):
        self.condition = condition
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        self.detail = detail
        message = f'Timeout for event "{condition}" after {elapsed_seconds:.1f}s (limit {timeout_seconds:.1f}s)'
        if detail:
            message += f": {detail}"
        super().__init__(message)


class DownloadNotObservedError(PollTimeoutError):
    pass


class OcspRequestNotObservedError(PollTimeoutError):
    pass


class ExpectedOcspRequestMissingError(PollTimeoutError):
    pass


class UnexpectedOcspRequestError(HarnessError):
    def __init__(self, condition: str, observed: int, detail: Optional[str] = None):
        self.condition = condition
        self.observed = observed
        message = f'Unexpected OCSP request(s) for "{condition}": observed {observed}'
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class PersistenceError(HarnessError):
    """Sequence number could not be read or written; the run cannot continue"""


class ConfigurationConflictError(HarnessError):
    """A mock server configuration would leave a certificate or endpoint ambiguous"""


class MockServerError(HarnessError):
    """An administrative call to a mock server failed"""


class UseCaseMismatchError(HarnessError):
    def __init__(self, cert_path: str, expected_code: int, actual_code: int):
        self.cert_path = cert_path
        self.expected_code = expected_code
        self.actual_code = actual_code
        super().__init__(
            f"Use case with certificate {cert_path} returned {actual_code}, expected {expected_code}"
        )
