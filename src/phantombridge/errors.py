"""Custom error types for phantombridge."""


class BridgeError(Exception):
    """Base class for all phantombridge errors."""


class WorkerUnavailableError(BridgeError):
    """Raised when the bridge itself is broken and the worker should be restarted."""


class WorkerSpawnError(WorkerUnavailableError):
    """Raised when the worker binary cannot be executed or exits during startup."""


class WorkerIOError(WorkerUnavailableError):
    """Raised when the working directory or bootstrap script cannot be managed."""


class WorkerTimeoutError(WorkerUnavailableError):
    """Raised when the worker never answers its health check in time."""


class WorkerTransportError(WorkerUnavailableError):
    """Raised for network-level failures talking to a running worker."""


class BridgeProtocolError(BridgeError):
    """Raised for malformed or unexpected responses from the worker."""


class RemoteOperationError(BridgeError):
    """Base class for failures of one requested remote operation."""


class UnknownOperationError(RemoteOperationError):
    """Raised when the worker has no handler for a path."""

    path: str

    def __init__(self, path: str, message: str | None = None) -> None:
        """Initialize an unknown-operation error.

        :param path: Request path the worker did not recognize.
        :param message: Optional override for the error text.
        """
        self.path = path
        if message is None:
            message = f"unknown operation: {path}"
        super().__init__(message)


class OperationNotSupportedError(UnknownOperationError, NotImplementedError):
    """Raised locally for operations the bridge does not implement yet."""

    def __init__(self, operation: str) -> None:
        """Initialize a not-supported error.

        :param operation: Remote operation name, such as ``Render``.
        """
        super().__init__(operation, f"operation not supported: {operation}")


class RemoteFaultError(RemoteOperationError):
    """Raised when a worker-side handler raised an exception."""

    path: str
    remote_message: str

    def __init__(self, path: str, remote_message: str) -> None:
        """Initialize a remote fault wrapper.

        :param path: Request path that failed.
        :param remote_message: Worker error text, unmodified.
        """
        self.path = path
        self.remote_message = remote_message
        super().__init__(remote_message)


class OperationFailedError(RemoteOperationError):
    """Raised when an action call reports a non-success status."""

    status: str

    def __init__(self, status: str, message: str) -> None:
        """Initialize an operation failure.

        :param status: Status string reported by the worker.
        :param message: Human-readable description.
        """
        self.status = status
        super().__init__(message)
