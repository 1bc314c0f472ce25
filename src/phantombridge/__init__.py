"""Public package API for phantombridge."""

from phantombridge.api import launch_phantomjs
from phantombridge.api import launch_python_worker
from phantombridge.client import RpcClient
from phantombridge.errors import BridgeError
from phantombridge.errors import BridgeProtocolError
from phantombridge.errors import OperationFailedError
from phantombridge.errors import OperationNotSupportedError
from phantombridge.errors import RemoteFaultError
from phantombridge.errors import RemoteOperationError
from phantombridge.errors import UnknownOperationError
from phantombridge.errors import WorkerIOError
from phantombridge.errors import WorkerSpawnError
from phantombridge.errors import WorkerTimeoutError
from phantombridge.errors import WorkerTransportError
from phantombridge.errors import WorkerUnavailableError
from phantombridge.process import WorkerProcess
from phantombridge.process import WorkerState
from phantombridge.webpage import RemoteHandle
from phantombridge.webpage import WebPage
from phantombridge.wire import Cookie
from phantombridge.wire import Rect

__all__: list[str] = [
    "launch_phantomjs",
    "launch_python_worker",
    "BridgeError",
    "BridgeProtocolError",
    "Cookie",
    "OperationFailedError",
    "OperationNotSupportedError",
    "Rect",
    "RemoteFaultError",
    "RemoteHandle",
    "RemoteOperationError",
    "RpcClient",
    "UnknownOperationError",
    "WebPage",
    "WorkerIOError",
    "WorkerProcess",
    "WorkerSpawnError",
    "WorkerState",
    "WorkerTimeoutError",
    "WorkerTransportError",
    "WorkerUnavailableError",
]
