import asyncio
import threading
from typing import Callable, Optional

from aiohttp import web

from .errors import MockServerError


class MockServerThread(threading.Thread):
    """Runs an aiohttp application on its own event loop in a background thread.

    Port 0 binds an ephemeral port; the bound port is available as ``port``
    once ``start_and_wait`` has returned.
    """

    def __init__(
        self,
        app: web.Application,
        host: str = "127.0.0.1",
        port: int = 0,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(daemon=True)
        self.app = app
        self.host = host
        self.port = port
        self.log_callback = log_callback or print
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def base_uri(self) -> str:
        return f"http://{self.host}:{self.port}"

    def run(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        runner = web.AppRunner(self.app)
        try:
            loop.run_until_complete(runner.setup())
            site = web.TCPSite(runner, self.host, self.port)
            loop.run_until_complete(site.start())
            self.port = runner.addresses[0][1]
        except OSError as e:
            self._startup_error = e
            self._ready.set()
            loop.run_until_complete(runner.cleanup())
            loop.close()
            return

        self.log_callback(f"[INFO] Mock server listening on {self.base_uri}")
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(runner.cleanup())
            loop.close()
            self.log_callback(f"[INFO] Mock server on {self.base_uri} stopped")

    def start_and_wait(self, timeout: float = 10.0) -> "MockServerThread":
        self.start()
        if not self._ready.wait(timeout):
            raise MockServerError(f"Mock server on {self.host}:{self.port} did not start within {timeout}s")
        if self._startup_error is not None:
            raise MockServerError(f"Mock server on {self.host}:{self.port} failed to start: {self._startup_error}")
        return self

    def stop(self, timeout: float = 10.0) -> None:
        if self._loop is not None and self.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self.join(timeout)
