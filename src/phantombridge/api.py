"""User-facing API entrypoints for phantombridge."""

import sys

from phantombridge.process import DEFAULT_BIN_PATH
from phantombridge.process import DEFAULT_PORT
from phantombridge.process import WorkerProcess
from phantombridge.shim import PHANTOMJS_SCRIPT_NAME
from phantombridge.shim import PYTHON_SCRIPT_NAME
from phantombridge.shim import build_phantomjs_shim
from phantombridge.shim import build_python_bootstrap


def launch_phantomjs(
    bin_path: str = DEFAULT_BIN_PATH,
    port: int = DEFAULT_PORT,
    **options: object,
) -> WorkerProcess:
    """Start PhantomJS with the dispatch shim and wait until it is ready.

    :param bin_path: PhantomJS executable.
    :param port: Port the shim listens on.
    :param options: Extra :class:`WorkerProcess` keyword arguments.
    :returns: An open worker; close it when done.
    """
    worker: WorkerProcess = WorkerProcess(
        bin_path=bin_path,
        port=port,
        script=build_phantomjs_shim(),
        script_name=PHANTOMJS_SCRIPT_NAME,
        **options,  # type: ignore[arg-type]
    )
    worker.open()
    return worker


def launch_python_worker(
    factory_target: str,
    port: int = DEFAULT_PORT,
    sys_path: list[str] | None = None,
    **options: object,
) -> WorkerProcess:
    """Start a Python worker hosting native pages from ``factory_target``.

    The worker runs under the current interpreter and speaks the same wire
    protocol as the PhantomJS shim.

    :param factory_target: ``module.path:attribute`` of the native page factory.
    :param port: Port the worker listens on.
    :param sys_path: Optional import path entries for the factory module.
    :param options: Extra :class:`WorkerProcess` keyword arguments.
    :returns: An open worker; close it when done.
    """
    worker: WorkerProcess = WorkerProcess(
        bin_path=sys.executable,
        port=port,
        script=build_python_bootstrap(factory_target, sys_path=sys_path),
        script_name=PYTHON_SCRIPT_NAME,
        **options,  # type: ignore[arg-type]
    )
    worker.open()
    return worker
