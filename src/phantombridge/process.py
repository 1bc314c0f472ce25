"""Supervisor for the external worker process."""

import enum
import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
from typing import IO

import httpx

from phantombridge.client import RpcClient
from phantombridge.errors import BridgeError
from phantombridge.errors import BridgeProtocolError
from phantombridge.errors import WorkerIOError
from phantombridge.errors import WorkerSpawnError
from phantombridge.errors import WorkerTimeoutError
from phantombridge.errors import WorkerTransportError
from phantombridge.shim import PHANTOMJS_SCRIPT_NAME
from phantombridge.shim import build_phantomjs_shim
from phantombridge.webpage import WebPage
from phantombridge.wire import decode_ref_id

log = logging.getLogger(__name__)

DEFAULT_PORT: int = 20202
DEFAULT_BIN_PATH: str = "phantomjs"
DEFAULT_STARTUP_TIMEOUT: float = 30.0
DEFAULT_POLL_INTERVAL: float = 1.0
DEFAULT_PING_TIMEOUT: float = 1.0
PORT_ENV_VAR: str = "PORT"
TEMP_DIR_PREFIX: str = "phantomjs-"

OutputSink = int | IO[bytes] | IO[str] | None


class WorkerState(enum.Enum):
    """Liveness of a worker process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"


class WorkerProcess:
    """Own one worker process, its working directory and its RPC client.

    Attributes may be adjusted between construction and :meth:`open`.
    """

    bin_path: str
    port: int
    stdout: OutputSink
    stderr: OutputSink
    script: str
    script_name: str
    env: dict[str, str]
    startup_timeout: float
    poll_interval: float

    _path: str | None
    _process: subprocess.Popen | None
    _client: RpcClient | None
    _state: WorkerState
    _lock: threading.RLock

    def __init__(
        self,
        bin_path: str = DEFAULT_BIN_PATH,
        port: int = DEFAULT_PORT,
        stdout: OutputSink = None,
        stderr: OutputSink = None,
        script: str | None = None,
        script_name: str = PHANTOMJS_SCRIPT_NAME,
        env: dict[str, str] | None = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize a worker that has not been started.

        :param bin_path: Worker executable.
        :param port: Port the worker listens on.
        :param stdout: Sink for worker stdout; ``None`` inherits ours.
        :param stderr: Sink for worker stderr; ``None`` inherits ours.
        :param script: Bootstrap script source; defaults to the PhantomJS shim.
        :param script_name: File name the script is written under.
        :param env: Extra environment variables for the worker.
        :param startup_timeout: Seconds to wait for the first successful health check.
        :param poll_interval: Seconds between health checks during startup.
        """
        self.bin_path = bin_path
        self.port = port
        self.stdout = stdout
        self.stderr = stderr
        if script is None:
            script = build_phantomjs_shim()
        self.script = script
        self.script_name = script_name
        self.env = dict(env or {})
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self._path = None
        self._process = None
        self._client = None
        self._state = WorkerState.NOT_STARTED
        self._lock = threading.RLock()

    @property
    def path(self) -> str | None:
        """Return the temporary working directory, or ``None`` when not open."""
        return self._path

    @property
    def state(self) -> WorkerState:
        """Return the current liveness state."""
        return self._state

    @property
    def process(self) -> subprocess.Popen | None:
        """Return the OS process handle of the last started worker."""
        return self._process

    @property
    def endpoint(self) -> str:
        """Return the base URL for RPC calls."""
        return f"http://127.0.0.1:{self.port}"

    @property
    def client(self) -> RpcClient:
        """Return the RPC client of the running worker.

        :raises BridgeError: If the worker is not ready.
        """
        client: RpcClient | None = self._client
        if client is None or self._state is not WorkerState.READY:
            raise BridgeError("worker process is not open")
        return client

    def open(self) -> None:
        """Start the worker and block until it answers its health check.

        On failure every partially allocated resource is released before
        the error propagates.

        :raises WorkerIOError: If the working directory or script cannot be written.
        :raises WorkerSpawnError: If the worker cannot be executed or exits early.
        :raises WorkerTimeoutError: If the worker never becomes healthy.
        """
        with self._lock:
            if self._state is WorkerState.READY or self._state is WorkerState.STARTING:
                return
            self._state = WorkerState.STARTING
            try:
                self._start()
                self._wait()
            except BaseException:
                try:
                    self.close()
                except BridgeError:
                    log.warning("cleanup after failed start also failed", exc_info=True)
                raise
            self._client = RpcClient(self.endpoint)
            self._state = WorkerState.READY
            log.info("worker %s ready on port %d", os.path.basename(self.bin_path), self.port)

    def _start(self) -> None:
        try:
            path: str = tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX)
        except OSError as exc:
            raise WorkerIOError(f"cannot create working directory: {exc}") from exc
        self._path = path

        script_path: str = os.path.join(path, self.script_name)
        try:
            with open(script_path, "w", encoding="utf-8") as f:
                f.write(self.script)
            os.chmod(script_path, 0o600)
        except OSError as exc:
            raise WorkerIOError(f"cannot write bootstrap script {script_path}: {exc}") from exc

        env: dict[str, str] = dict(os.environ)
        env.update(self.env)
        env[PORT_ENV_VAR] = str(self.port)

        log.info("launching worker %s on port %d", self.bin_path, self.port)
        try:
            self._process = subprocess.Popen(
                [self.bin_path, script_path],
                cwd=path,
                env=env,
                stdout=self.stdout,
                stderr=self.stderr,
            )
        except OSError as exc:
            raise WorkerSpawnError(f"cannot execute {self.bin_path}: {exc}") from exc

    def _wait(self) -> None:
        """Poll the health check until it succeeds or the timeout elapses."""
        deadline: float = time.monotonic() + self.startup_timeout
        while True:
            time.sleep(self.poll_interval)
            process: subprocess.Popen | None = self._process
            if process is not None and process.poll() is not None:
                raise WorkerSpawnError(
                    f"worker exited during startup (code {process.returncode})"
                )
            try:
                self.ping()
                return
            except (WorkerTransportError, BridgeProtocolError):
                pass
            if time.monotonic() >= deadline:
                raise WorkerTimeoutError(
                    f"worker did not become ready within {self.startup_timeout:g}s"
                )

    def ping(self) -> None:
        """Run one health check.

        :raises WorkerTransportError: If the worker cannot be reached.
        :raises BridgeProtocolError: If the worker answers with a non-200 status.
        """
        try:
            response: httpx.Response = httpx.get(
                self.endpoint + "/ping",
                timeout=DEFAULT_PING_TIMEOUT,
                trust_env=False,
            )
        except httpx.TransportError as exc:
            raise WorkerTransportError(f"health check failed: {exc}") from exc
        if response.status_code != 200:
            raise BridgeProtocolError(f"unexpected status: {response.status_code}")

    def close(self) -> None:
        """Stop the worker and remove its working directory.

        Both steps are always attempted. Safe to call repeatedly, and after
        a failed :meth:`open`.

        :raises WorkerIOError: With the first failure, after both steps ran.
        """
        with self._lock:
            first_error: BaseException | None = None

            client: RpcClient | None = self._client
            self._client = None
            if client is not None:
                client.close()

            process: subprocess.Popen | None = self._process
            if process is not None and process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                except OSError as exc:
                    first_error = exc
                process.wait()
                log.info("worker process %d stopped", process.pid)

            path: str | None = self._path
            if path is not None:
                try:
                    shutil.rmtree(path)
                    self._path = None
                except FileNotFoundError:
                    self._path = None
                except OSError as exc:
                    if first_error is None:
                        first_error = exc

            if self._state is not WorkerState.NOT_STARTED:
                self._state = WorkerState.STOPPED

            if first_error is not None:
                raise WorkerIOError(f"failed to stop worker cleanly: {first_error}") from first_error

    def create_web_page(self) -> WebPage:
        """Create a new page in the worker.

        :returns: Proxy bound to the new page.
        """
        response: dict[str, object] = self.client.post("/webpage/Create")
        return WebPage(self.client, decode_ref_id(response.get("ref")))

    def __enter__(self) -> "WorkerProcess":
        """Open the worker for a ``with`` block."""
        self.open()
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        """Close the worker on scope exit."""
        self.close()

    def __repr__(self) -> str:
        return f"<WorkerProcess bin={self.bin_path!r} port={self.port} state={self._state.value}>"
