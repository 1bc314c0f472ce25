"""Blocking HTTP/JSON client for the worker's RPC surface."""

import json
import logging
import threading

import httpx

from phantombridge.errors import BridgeProtocolError
from phantombridge.errors import RemoteFaultError
from phantombridge.errors import UnknownOperationError
from phantombridge.errors import WorkerTransportError

log = logging.getLogger(__name__)

_BODY_DUMP_LIMIT: int = 2048


def _dump_body(body: bytes) -> str:
    """Render a response body for diagnostics.

    :param body: Raw response bytes.
    :returns: Printable, possibly truncated text.
    """
    text: str = body.decode("utf-8", errors="replace")
    if len(text) > _BODY_DUMP_LIMIT:
        return text[:_BODY_DUMP_LIMIT] + f"... ({len(text)} chars)"
    return text


class RpcClient:
    """Issue typed requests against one worker endpoint.

    Every remote feature funnels through :meth:`call`. The client never
    retries; a transport failure means the worker should be presumed dead.
    """

    _endpoint: str
    _http: httpx.Client
    _owns_http: bool
    _timeout: float | None
    _lock: threading.Lock
    _is_closed: bool

    def __init__(
        self,
        endpoint: str,
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize a client.

        :param endpoint: Base URL of the worker, such as ``http://127.0.0.1:20202``.
        :param http_client: Optional pre-built HTTP client; it is not closed by :meth:`close`.
        :param timeout: Optional per-call timeout in seconds; ``None`` waits forever.
        """
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        if http_client is None:
            self._http = httpx.Client(timeout=timeout, trust_env=False)
            self._owns_http = True
        else:
            self._http = http_client
            self._owns_http = False
        self._lock = threading.Lock()
        self._is_closed = False

    @property
    def endpoint(self) -> str:
        """Return the base URL this client talks to."""
        return self._endpoint

    def call(
        self,
        method: str,
        path: str,
        payload: dict[str, object] | None = None,
        expect_body: bool = True,
    ) -> dict[str, object] | None:
        """Send one request and classify the outcome.

        :param method: HTTP method.
        :param path: Request path, such as ``/webpage/Content``.
        :param payload: JSON payload; no body is sent when ``None``.
        :param expect_body: Whether a JSON object response is expected.
        :returns: Decoded response object, or ``None`` when no body is expected.
        :raises WorkerTransportError: On network-level failures.
        :raises UnknownOperationError: When the worker answers 404.
        :raises RemoteFaultError: When the worker answers 500.
        :raises BridgeProtocolError: On undecodable bodies or unexpected statuses.
        """
        content: bytes | None = None
        headers: dict[str, str] = {}
        if payload is not None:
            content = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        url: str = self._endpoint + path
        log.debug("rpc %s %s", method, path)
        try:
            response: httpx.Response = self._http.request(
                method,
                url,
                content=content,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            raise WorkerTransportError(f"{method} {path} failed: {exc}") from exc

        status: int = response.status_code
        if status == 404:
            raise UnknownOperationError(path)
        if status == 500:
            raise RemoteFaultError(path, response.text)
        if status != 200:
            raise BridgeProtocolError(
                f"unexpected status {status} from {path}: {_dump_body(response.content)}"
            )

        if expect_body is False:
            return None

        body: bytes = response.content
        try:
            decoded: object = json.loads(body)
        except ValueError as exc:
            raise BridgeProtocolError(
                f"unmarshal error: path={path}, err={exc}, buffer={_dump_body(body)}"
            ) from exc
        if isinstance(decoded, dict) is False:
            raise BridgeProtocolError(
                f"unmarshal error: path={path}, expected an object, buffer={_dump_body(body)}"
            )
        return decoded

    def post(self, path: str, payload: dict[str, object] | None = None) -> dict[str, object]:
        """POST and return the decoded response object.

        :param path: Request path.
        :param payload: JSON payload.
        :returns: Decoded response object.
        """
        response: dict[str, object] | None = self.call("POST", path, payload)
        if response is None:
            raise BridgeProtocolError(f"missing response body from {path}")
        return response

    def post_no_body(self, path: str, payload: dict[str, object] | None = None) -> None:
        """POST and ignore the response body.

        :param path: Request path.
        :param payload: JSON payload.
        """
        self.call("POST", path, payload, expect_body=False)

    def close(self) -> None:
        """Release the underlying HTTP client when this client owns it."""
        with self._lock:
            if self._is_closed is True:
                return
            self._is_closed = True
        if self._owns_http is True:
            self._http.close()

    def __enter__(self) -> "RpcClient":
        """Return this client for ``with`` blocks."""
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        """Close the client on scope exit."""
        self.close()
