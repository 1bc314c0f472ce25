"""Tests for RPC outcome classification."""

import json
from collections.abc import Callable

import httpx
import pytest

from phantombridge import BridgeProtocolError
from phantombridge import RemoteFaultError
from phantombridge import RemoteOperationError
from phantombridge import RpcClient
from phantombridge import UnknownOperationError
from phantombridge import WorkerTransportError
from phantombridge import WorkerUnavailableError

ENDPOINT: str = "http://worker.test"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> RpcClient:
    """Build a client whose requests are answered by ``handler``.

    :param handler: Mock transport handler.
    :returns: RPC client.
    """
    http_client: httpx.Client = httpx.Client(transport=httpx.MockTransport(handler))
    return RpcClient(ENDPOINT, http_client=http_client)


def test_payload_is_sent_as_json_and_response_decoded() -> None:
    """Requests carry the JSON payload; 200 bodies decode to dicts."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        """Echo the ref back as the value."""
        seen.append(request)
        message: dict[str, object] = json.loads(request.content)
        return httpx.Response(200, json={"value": message["ref"]})

    client: RpcClient = _client(handler)
    response: object = client.call("POST", "/webpage/URL", {"ref": "7"})
    assert response == {"value": "7"}
    assert seen[0].method == "POST"
    assert str(seen[0].url) == ENDPOINT + "/webpage/URL"
    assert seen[0].headers["content-type"] == "application/json"


def test_absent_payload_sends_no_body() -> None:
    """A ``None`` payload omits the body entirely."""
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        """Record the body and create a ref."""
        bodies.append(request.content)
        return httpx.Response(200, json={"ref": {"id": "1"}})

    _client(handler).call("POST", "/webpage/Create")
    assert bodies == [b""]


def test_404_is_unknown_operation_naming_the_path() -> None:
    """Unknown paths map to the unknown-operation error."""
    client: RpcClient = _client(lambda request: httpx.Response(404, text="not found"))
    with pytest.raises(UnknownOperationError) as excinfo:
        client.call("POST", "/webpage/Bogus", {"ref": "1"})
    assert excinfo.value.path == "/webpage/Bogus"
    assert "/webpage/Bogus" in str(excinfo.value)
    assert isinstance(excinfo.value, RemoteOperationError)


def test_500_is_remote_fault_with_verbatim_message() -> None:
    """The worker's error text is preserved unmodified."""
    text: str = "/webpage/Content: TypeError: 'undefined' is not an object"
    client: RpcClient = _client(lambda request: httpx.Response(500, text=text))
    with pytest.raises(RemoteFaultError) as excinfo:
        client.call("POST", "/webpage/Content", {"ref": "1"})
    assert excinfo.value.remote_message == text
    assert str(excinfo.value) == text


def test_malformed_json_is_protocol_error_with_dump() -> None:
    """Undecodable bodies are reported together with the raw payload."""
    client: RpcClient = _client(lambda request: httpx.Response(200, text="{oops"))
    with pytest.raises(BridgeProtocolError) as excinfo:
        client.call("POST", "/webpage/Content", {"ref": "1"})
    assert "{oops" in str(excinfo.value)


def test_non_object_json_is_protocol_error() -> None:
    """Responses must be JSON objects."""
    client: RpcClient = _client(lambda request: httpx.Response(200, json=[1, 2]))
    with pytest.raises(BridgeProtocolError):
        client.call("POST", "/webpage/Content", {"ref": "1"})


def test_no_body_expected_ignores_content() -> None:
    """Calls without an expected body succeed whatever the body holds."""
    client: RpcClient = _client(lambda request: httpx.Response(200, text="not json at all"))
    assert client.call("POST", "/webpage/SetContent", {"ref": "1", "content": ""}, expect_body=False) is None


def test_unexpected_status_is_protocol_error() -> None:
    """Statuses outside 200/404/500 are not part of the protocol."""
    client: RpcClient = _client(lambda request: httpx.Response(418, text="teapot"))
    with pytest.raises(BridgeProtocolError, match="418"):
        client.call("POST", "/webpage/Content", {"ref": "1"})


def test_transport_failure_means_worker_unavailable() -> None:
    """Connection errors are fatal for the session."""

    def handler(request: httpx.Request) -> httpx.Response:
        """Refuse the connection."""
        raise httpx.ConnectError("connection refused", request=request)

    client: RpcClient = _client(handler)
    with pytest.raises(WorkerTransportError) as excinfo:
        client.call("POST", "/webpage/Content", {"ref": "1"})
    assert isinstance(excinfo.value, WorkerUnavailableError)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_unreachable_endpoint_raises_transport_error() -> None:
    """A real connection to a closed port is classified the same way."""
    with RpcClient("http://127.0.0.1:9", timeout=2.0) as client:
        with pytest.raises(WorkerTransportError):
            client.call("GET", "/ping")


def test_close_leaves_borrowed_http_client_open() -> None:
    """Injected HTTP clients stay owned by the caller."""
    http_client: httpx.Client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    client: RpcClient = RpcClient(ENDPOINT, http_client=http_client)
    client.close()
    client.close()
    assert http_client.is_closed is False
    http_client.close()


def test_post_requires_a_body(monkeypatch: pytest.MonkeyPatch) -> None:
    """A body-less answer to a call that needs one is a protocol error."""
    client: RpcClient = _client(lambda request: httpx.Response(200, json={"value": 1}))
    assert client.post("/webpage/FrameCount", {"ref": "1"}) == {"value": 1}
    monkeypatch.setattr(client, "call", lambda *args, **kwargs: None)
    with pytest.raises(BridgeProtocolError, match="/webpage/FrameCount"):
        client.post("/webpage/FrameCount", {"ref": "1"})
