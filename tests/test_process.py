"""Integration tests for worker process supervision.

These spawn real child processes running the current interpreter; the
PhantomJS smoke test runs only when the binary is on ``PATH``.
"""

import json
import os
import shutil
import socket
import subprocess
import sys
import tempfile
from collections.abc import Callable

import pytest

from phantombridge import BridgeError
from phantombridge import RemoteFaultError
from phantombridge import WebPage
from phantombridge import WorkerProcess
from phantombridge import WorkerSpawnError
from phantombridge import WorkerState
from phantombridge import WorkerTimeoutError
from phantombridge import launch_phantomjs
from phantombridge import launch_python_worker
from phantombridge.process import TEMP_DIR_PREFIX

REPO_ROOT: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
FAKE_PAGE_FACTORY: str = "tests.fixtures.fake_page:FakeWebPage"


def _free_port() -> int:
    """Return a TCP port that is currently free on the loopback interface."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.fixture
def created_dirs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Record every working directory the supervisor creates."""
    created: list[str] = []
    original: Callable[..., str] = tempfile.mkdtemp

    def mkdtemp(*args: object, **kwargs: object) -> str:
        path: str = original(*args, **kwargs)  # type: ignore[arg-type]
        created.append(path)
        return path

    monkeypatch.setattr(tempfile, "mkdtemp", mkdtemp)
    return created


def _script_worker(script: str, **options: object) -> WorkerProcess:
    """Build a worker running an arbitrary Python script.

    :param script: Python source written as the bootstrap script.
    :param options: Extra :class:`WorkerProcess` keyword arguments.
    :returns: Unopened worker.
    """
    return WorkerProcess(
        bin_path=sys.executable,
        port=_free_port(),
        script=script,
        script_name="script.py",
        poll_interval=0.1,
        **options,  # type: ignore[arg-type]
    )


def test_python_worker_round_trip_and_cleanup(created_dirs: list[str]) -> None:
    """A healthy worker serves pages and leaves nothing behind when closed."""
    worker: WorkerProcess = launch_python_worker(
        FAKE_PAGE_FACTORY,
        port=_free_port(),
        sys_path=[REPO_ROOT],
        poll_interval=0.2,
    )
    process: subprocess.Popen | None = worker.process
    try:
        assert worker.state is WorkerState.READY
        assert worker.path is not None
        assert os.path.basename(worker.path).startswith(TEMP_DIR_PREFIX)
        assert worker.endpoint == f"http://127.0.0.1:{worker.port}"
        worker.ping()

        page: WebPage = worker.create_web_page()
        page.content = "<p>hello</p>"
        assert page.content == "<p>hello</p>"
        page.close()
        with pytest.raises(RemoteFaultError, match="unknown reference"):
            page.content
    finally:
        worker.close()

    assert worker.state is WorkerState.STOPPED
    assert worker.path is None
    assert process is not None and process.returncode is not None
    assert all(os.path.exists(path) is False for path in created_dirs)

    worker.close()
    assert worker.state is WorkerState.STOPPED


def test_context_manager_opens_and_closes(created_dirs: list[str]) -> None:
    """Scope exit stops the worker."""
    with _script_worker(
        "import sys\n"
        f"sys.path.insert(0, {json.dumps(REPO_ROOT)})\n"
        "from phantombridge.server import serve\n"
        f"serve({json.dumps(FAKE_PAGE_FACTORY)})\n",
        startup_timeout=30.0,
    ) as worker:
        assert worker.state is WorkerState.READY
        assert worker.client.endpoint == worker.endpoint
    assert worker.state is WorkerState.STOPPED
    assert all(os.path.exists(path) is False for path in created_dirs)


def test_worker_that_never_answers_times_out(created_dirs: list[str]) -> None:
    """An unresponsive worker is killed and its directory removed."""
    worker: WorkerProcess = _script_worker("import time\ntime.sleep(60)\n", startup_timeout=0.5)
    with pytest.raises(WorkerTimeoutError):
        worker.open()
    assert worker.state is WorkerState.STOPPED
    assert worker.process is not None and worker.process.returncode is not None
    assert len(created_dirs) == 1
    assert os.path.exists(created_dirs[0]) is False


def test_worker_that_exits_during_startup_fails_fast(created_dirs: list[str]) -> None:
    """An early exit is reported without waiting for the timeout."""
    worker: WorkerProcess = _script_worker("raise SystemExit(3)\n", startup_timeout=30.0)
    with pytest.raises(WorkerSpawnError, match="code 3"):
        worker.open()
    assert worker.state is WorkerState.STOPPED
    assert os.path.exists(created_dirs[0]) is False


def test_missing_binary_is_spawn_error(created_dirs: list[str]) -> None:
    """A binary that cannot be executed fails and cleans up."""
    worker: WorkerProcess = WorkerProcess(bin_path=os.path.join(REPO_ROOT, "no-such-phantomjs"), port=_free_port())
    with pytest.raises(WorkerSpawnError):
        worker.open()
    assert worker.process is None
    assert worker.path is None
    assert os.path.exists(created_dirs[0]) is False


def test_child_environment_and_working_directory(tmp_path: object) -> None:
    """The child sees PORT, extra variables and its own working directory."""
    out_path: str = os.path.join(str(tmp_path), "env.json")
    script: str = (
        "import json, os\n"
        "with open(os.environ['OUT'], 'w') as f:\n"
        "    json.dump({'port': os.environ['PORT'], 'extra': os.environ['EXTRA'], 'cwd': os.getcwd(),"
        " 'script': open('script.py').read() != ''}, f)\n"
    )
    worker: WorkerProcess = _script_worker(script, env={"OUT": out_path, "EXTRA": "1"})
    with pytest.raises(WorkerSpawnError):
        worker.open()

    with open(out_path, encoding="utf-8") as f:
        seen: dict[str, object] = json.load(f)
    assert seen["port"] == str(worker.port)
    assert seen["extra"] == "1"
    assert os.path.basename(str(seen["cwd"])).startswith(TEMP_DIR_PREFIX)
    assert seen["script"] is True


def test_close_before_open_is_a_noop() -> None:
    """Closing an unstarted worker does nothing."""
    worker: WorkerProcess = WorkerProcess()
    worker.close()
    assert worker.state is WorkerState.NOT_STARTED
    with pytest.raises(BridgeError):
        worker.client
    assert "not_started" in repr(worker)


@pytest.mark.skipif(shutil.which("phantomjs") is None, reason="phantomjs is not installed")
def test_phantomjs_smoke() -> None:
    """Drive a real PhantomJS through the JavaScript shim."""
    worker: WorkerProcess = launch_phantomjs(
        bin_path=shutil.which("phantomjs") or "phantomjs",
        port=_free_port(),
        poll_interval=0.2,
    )
    try:
        page: WebPage = worker.create_web_page()
        page.content = "<html><head></head><body><p>smoke</p></body></html>"
        assert "smoke" in page.content
        assert page.evaluate_javascript("function() { return 1 + 1; }") == 2
        page.close()
        with pytest.raises(RemoteFaultError):
            page.content
    finally:
        worker.close()
