import subprocess
from typing import Callable, List, Optional

from .errors import HarnessError


USECASE_VALID = 0
USECASE_INVALID = 1


class UseCase:
    """TLS handshake of a client certificate against the test object, returning a result code"""

    def execute(self, cert_path: str) -> int:
        raise NotImplementedError


class ScriptUseCase(UseCase):
    """Runs an external script as: <script> <cert_path> <sut_host> <sut_port>; the exit code is the result"""

    def __init__(
        self,
        script: str,
        sut_host: str,
        sut_port: int,
        timeout_seconds: int = 60,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.script = script
        self.sut_host = sut_host
        self.sut_port = sut_port
        self.timeout_seconds = timeout_seconds
        self.log_callback = log_callback or print

    def command(self, cert_path: str) -> List[str]:
        return [self.script, cert_path, self.sut_host, str(self.sut_port)]

    def execute(self, cert_path: str) -> int:
        cmd = self.command(cert_path)
        self.log_callback(f"[INFO] Executing use case: {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_seconds)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise HarnessError(f"Use case script {self.script} could not be executed: {e}") from e
        if proc.stdout:
            self.log_callback(f"[DEBUG] Use case stdout: {proc.stdout.strip()}")
        if proc.stderr:
            self.log_callback(f"[DEBUG] Use case stderr: {proc.stderr.strip()}")
        self.log_callback(f"[INFO] Use case returned {proc.returncode}")
        return proc.returncode
