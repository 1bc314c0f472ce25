"""Control-side proxies for objects living in the worker's reference table."""

from collections.abc import Callable
from typing import Any

from phantombridge.client import RpcClient
from phantombridge.errors import BridgeProtocolError
from phantombridge.errors import OperationFailedError
from phantombridge.errors import OperationNotSupportedError
from phantombridge.wire import Cookie
from phantombridge.wire import Rect
from phantombridge.wire import decode_cookie
from phantombridge.wire import decode_headers
from phantombridge.wire import decode_int
from phantombridge.wire import decode_rect
from phantombridge.wire import decode_ref_id
from phantombridge.wire import encode_cookie
from phantombridge.wire import encode_rect


def _identity(value: Any) -> Any:
    return value


class RemoteHandle:
    """Lightweight handle naming one worker-side object by its reference ID.

    Handles are cheap to copy. Two handles with the same ID on the same
    endpoint name the same remote object.
    """

    kind: str = ""

    _client: RpcClient
    _ref_id: str

    def __init__(self, client: RpcClient, ref_id: str) -> None:
        """Bind a handle to a client.

        :param client: RPC client of the owning worker.
        :param ref_id: Opaque reference identifier.
        """
        self._client = client
        self._ref_id = ref_id

    @property
    def client(self) -> RpcClient:
        """Return the client this handle forwards through."""
        return self._client

    @property
    def ref_id(self) -> str:
        """Return the reference identifier."""
        return self._ref_id

    def _path(self, operation: str) -> str:
        return f"/{self.kind}/{operation}"

    def _request(self, **fields: object) -> dict[str, object]:
        request: dict[str, object] = {"ref": self._ref_id}
        request.update(fields)
        return request

    def _get(self, operation: str) -> object:
        """Run the getter pattern and return the ``value`` field.

        :param operation: Remote field name, such as ``Content``.
        :returns: Raw wire value.
        """
        response: dict[str, object] = self._client.post(self._path(operation), self._request())
        return response.get("value")

    def _set(self, operation: str, key: str, value: object) -> None:
        """Run the setter pattern.

        :param operation: Remote setter name, such as ``SetContent``.
        :param key: Request field carrying the value.
        :param value: Wire value.
        """
        self._client.post_no_body(self._path(operation), self._request(**{key: value}))

    def _act(self, operation: str, **fields: object) -> None:
        """Run an action call that returns no body."""
        self._client.post_no_body(self._path(operation), self._request(**fields))

    def _unsupported(self, operation: str) -> OperationNotSupportedError:
        """Build the error raised by operations that have no remote handler yet."""
        return OperationNotSupportedError(f"{self.kind}/{operation}")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RemoteHandle) is False:
            return NotImplemented
        return (
            self.kind == other.kind
            and self._ref_id == other._ref_id
            and self._client.endpoint == other._client.endpoint
        )

    def __hash__(self) -> int:
        return hash((self.kind, self._client.endpoint, self._ref_id))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} ref={self._ref_id!r} endpoint={self._client.endpoint!r}>"


class RemoteField:
    """Descriptor mapping attribute access onto the getter/setter wire pattern.

    Reading issues ``POST /<kind>/<name>``; assigning issues
    ``POST /<kind>/Set<name>`` with the value under ``key``. Fields without
    a ``key`` are read-only.
    """

    name: str
    attr_name: str
    key: str | None
    decode: Callable[[Any], Any]
    encode: Callable[[Any], Any]

    def __init__(
        self,
        name: str,
        key: str | None = None,
        decode: Callable[[Any], Any] = _identity,
        encode: Callable[[Any], Any] = _identity,
        doc: str | None = None,
    ) -> None:
        self.name = name
        self.key = key
        self.decode = decode
        self.encode = encode
        self.__doc__ = doc

    def __set_name__(self, owner: type, attr_name: str) -> None:
        self.attr_name = attr_name

    def __get__(self, instance: RemoteHandle | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return self.decode(instance._get(self.name))

    def __set__(self, instance: RemoteHandle, value: Any) -> None:
        if self.key is None:
            raise AttributeError(f"{self.attr_name} is read-only")
        instance._set(f"Set{self.name}", self.key, self.encode(value))


def _decode_cookies(raw: object) -> list[Cookie]:
    if raw is None:
        return []
    if isinstance(raw, list) is False:
        raise BridgeProtocolError(f"cookies must be a list, got {raw!r}")
    return [decode_cookie(item) for item in raw]


def _encode_cookies(cookies: list[Cookie]) -> list[dict[str, object]]:
    return [encode_cookie(cookie) for cookie in cookies]


def _decode_str_list(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list) is False:
        raise BridgeProtocolError(f"expected a list, got {raw!r}")
    return [str(item) for item in raw]


def _decode_str(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw)


def _decode_int(raw: object) -> int:
    return decode_int(raw, "value")


class WebPage(RemoteHandle):
    """Proxy for a worker-side ``webpage`` object.

    Property reads and writes each cost one round trip. After :meth:`close`
    the worker no longer knows this ID and any further call raises
    :class:`~phantombridge.errors.RemoteFaultError`.
    """

    kind = "webpage"

    can_go_back = RemoteField("CanGoBack", decode=bool, doc="Whether history can go back.")
    can_go_forward = RemoteField("CanGoForward", decode=bool, doc="Whether history can go forward.")
    clip_rect = RemoteField(
        "ClipRect",
        "rect",
        decode=decode_rect,
        encode=encode_rect,
        doc="Clipping rectangle used when rendering; all zeros renders the whole page.",
    )
    content = RemoteField("Content", "content", decode=_decode_str, doc="Page content as HTML.")
    cookies = RemoteField(
        "Cookies",
        "cookies",
        decode=_decode_cookies,
        encode=_encode_cookies,
        doc="Cookies visible to the current URL.",
    )
    custom_headers = RemoteField(
        "CustomHeaders",
        "headers",
        decode=decode_headers,
        encode=dict,
        doc="Additional headers sent with every request; one value per name.",
    )
    focused_frame_name = RemoteField("FocusedFrameName", decode=_decode_str)
    frame_content = RemoteField("FrameContent", "content", decode=_decode_str)
    frame_name = RemoteField("FrameName", decode=_decode_str)
    frame_plain_text = RemoteField("FramePlainText", decode=_decode_str)
    frame_title = RemoteField("FrameTitle", decode=_decode_str)
    frame_url = RemoteField("FrameURL", decode=_decode_str)
    frame_count = RemoteField("FrameCount", decode=_decode_int)
    frame_names = RemoteField("FrameNames", decode=_decode_str_list)
    library_path = RemoteField(
        "LibraryPath",
        "path",
        decode=_decode_str,
        doc="Path used to resolve injected scripts; starts as the worker's working directory.",
    )
    navigation_locked = RemoteField("NavigationLocked", "value", decode=bool)
    offline_storage_path = RemoteField("OfflineStoragePath", decode=_decode_str)
    offline_storage_quota = RemoteField("OfflineStorageQuota", decode=_decode_int)
    owns_pages = RemoteField(
        "OwnsPages",
        "value",
        decode=bool,
        doc="Whether pages opened by this page in new windows are owned and closed with it.",
    )
    page_window_names = RemoteField("PageWindowNames", decode=_decode_str_list)
    plain_text = RemoteField("PlainText", decode=_decode_str)
    title = RemoteField("Title", decode=_decode_str)
    url = RemoteField("URL", decode=_decode_str)

    def open(self, url: str) -> None:
        """Navigate to ``url`` and wait for the load to finish.

        :param url: Address to load.
        :raises OperationFailedError: If the worker reports a non-success status.
        """
        response: dict[str, object] = self._client.post(self._path("Open"), self._request(url=url))
        status: object = response.get("status")
        if status != "success":
            raise OperationFailedError(str(status), f"failed to open {url}: status={status!r}")

    def pages(self) -> list["WebPage"]:
        """Return the pages owned by this page.

        :returns: One proxy per owned page.
        """
        response: dict[str, object] = self._client.post(self._path("Pages"), self._request())
        refs: object = response.get("refs") or []
        if isinstance(refs, list) is False:
            raise BridgeProtocolError(f"refs must be a list, got {refs!r}")
        return [WebPage(self._client, decode_ref_id(ref)) for ref in refs]

    def evaluate_javascript(self, script: str) -> Any:
        """Evaluate a JavaScript function in the page context.

        :param script: Source of a function, such as ``function() { return 1; }``.
        :returns: JSON-decoded return value.
        """
        response: dict[str, object] = self._client.post(
            self._path("EvaluateJavaScript"),
            self._request(script=script),
        )
        return response.get("returnValue")

    def switch_to_frame_name(self, name: str) -> None:
        """Focus the child frame called ``name``."""
        self._act("SwitchToFrameName", name=name)

    def switch_to_frame_position(self, position: int) -> None:
        """Focus the child frame at ``position``."""
        self._act("SwitchToFramePosition", position=position)

    def switch_to_main_frame(self) -> None:
        self._act("SwitchToMainFrame")

    def switch_to_parent_frame(self) -> None:
        self._act("SwitchToParentFrame")

    def go_back(self) -> None:
        self._act("GoBack")

    def go_forward(self) -> None:
        self._act("GoForward")

    def reload(self) -> None:
        self._act("Reload")

    def stop(self) -> None:
        self._act("Stop")

    def close(self) -> None:
        """Release this page and every page it owns on the worker."""
        self._act("Close")

    def __enter__(self) -> "WebPage":
        return self

    def __exit__(self, exc_type: object, exc_value: object, exc_traceback: object) -> None:
        self.close()

    # Operations below have no worker handler yet.

    def paper_size(self) -> object:
        raise self._unsupported("PaperSize")

    def scroll_position(self) -> object:
        raise self._unsupported("ScrollPosition")

    def settings(self) -> object:
        raise self._unsupported("Settings")

    def viewport_size(self) -> object:
        raise self._unsupported("ViewportSize")

    def window_name(self) -> str:
        raise self._unsupported("WindowName")

    def zoom_factor(self) -> float:
        raise self._unsupported("ZoomFactor")

    def add_cookie(self, cookie: Cookie) -> None:
        raise self._unsupported("AddCookie")

    def clear_cookies(self) -> None:
        raise self._unsupported("ClearCookies")

    def delete_cookie(self, name: str) -> None:
        raise self._unsupported("DeleteCookie")

    def child_frames_count(self) -> int:
        raise self._unsupported("ChildFramesCount")

    def child_frames_name(self) -> list[str]:
        raise self._unsupported("ChildFramesName")

    def current_frame_name(self) -> str:
        raise self._unsupported("CurrentFrameName")

    def evaluate(self, function: str, *args: object) -> Any:
        raise self._unsupported("Evaluate")

    def evaluate_async(self, function: str, delay: int = 0, *args: object) -> None:
        raise self._unsupported("EvaluateAsync")

    def get_page(self, window_name: str) -> "WebPage":
        raise self._unsupported("GetPage")

    def go(self, index: int) -> None:
        raise self._unsupported("Go")

    def include_js(self, url: str) -> None:
        raise self._unsupported("IncludeJs")

    def inject_js(self, filename: str) -> None:
        raise self._unsupported("InjectJs")

    def open_url(self, url: str, http_conf: object, settings: object) -> None:
        raise self._unsupported("OpenUrl")

    def release(self) -> None:
        raise self._unsupported("Release")

    def render(self, filename: str) -> None:
        raise self._unsupported("Render")

    def render_base64(self, format: str = "png") -> str:
        raise self._unsupported("RenderBase64")

    def render_buffer(self, format: str = "png") -> bytes:
        raise self._unsupported("RenderBuffer")

    def send_event(self, event_type: str, *args: object) -> None:
        raise self._unsupported("SendEvent")

    def set_content_and_url(self, content: str, url: str) -> None:
        raise self._unsupported("SetContentAndURL")

    def switch_to_child_frame(self, frame: object) -> None:
        raise self._unsupported("SwitchToChildFrame")

    def switch_to_focused_frame(self) -> None:
        raise self._unsupported("SwitchToFocusedFrame")

    def upload_file(self, selector: str, filename: str) -> None:
        raise self._unsupported("UploadFile")
