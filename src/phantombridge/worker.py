"""Worker-side reference table and path dispatch.

This is the Python rendition of the dispatch script that runs inside the
worker process. It hosts any Python-native page implementation behind the
same HTTP/JSON wire contract the PhantomJS shim speaks.
"""

import json
import logging
import threading
from collections.abc import Callable
from collections.abc import Iterable
from typing import NamedTuple

log = logging.getLogger(__name__)

Message = dict[str, object]
Handler = Callable[[Message], Message | None]
PageFactory = Callable[[], object]
OwnedValues = Callable[[object], Iterable[object]]

PING_PATH: str = "/ping"


class UnknownReferenceError(LookupError):
    """Raised when a reference ID is not present in the table."""

    def __init__(self, ref_id: object) -> None:
        """Initialize a lookup miss.

        :param ref_id: Identifier that was not found.
        """
        self.ref_id = ref_id
        super().__init__(f"unknown reference: {ref_id!r}")


class ReferenceTable:
    """Map string identifiers to live native objects.

    A value is registered at most once; registering it again returns the
    existing identifier. Deleting is the only way an entry goes away.
    All operations are serialized under one lock.
    """

    _by_ref_id: dict[str, object]
    _by_identity: dict[int, str]
    _next_ref_id: int
    _lock: threading.RLock

    def __init__(self) -> None:
        """Initialize an empty reference table."""
        self._by_ref_id = {}
        self._by_identity = {}
        self._next_ref_id = 1
        self._lock = threading.RLock()

    def register(self, value: object) -> str:
        """Register a value and return its identifier.

        :param value: Native object.
        :returns: Existing identifier for ``value``, or a newly allocated one.
        """
        with self._lock:
            identity: int = id(value)
            existing: str | None = self._by_identity.get(identity)
            if existing is not None:
                return existing

            ref_id: str = str(self._next_ref_id)
            self._next_ref_id += 1
            self._by_ref_id[ref_id] = value
            self._by_identity[identity] = ref_id
            log.debug("registered reference %s (%s)", ref_id, type(value).__name__)
            return ref_id

    def lookup(self, ref_id: object) -> object:
        """Return the value registered under ``ref_id``.

        :param ref_id: Reference identifier.
        :returns: Native object.
        :raises UnknownReferenceError: If the identifier is unknown or deleted.
        """
        with self._lock:
            if isinstance(ref_id, str) is False or ref_id not in self._by_ref_id:
                raise UnknownReferenceError(ref_id)
            return self._by_ref_id[ref_id]

    def find(self, value: object) -> str | None:
        """Return the identifier registered for ``value``, if any."""
        with self._lock:
            return self._by_identity.get(id(value))

    def delete(self, ref_id: str) -> bool:
        """Remove one entry. Deleting an absent identifier is a no-op.

        :param ref_id: Reference identifier.
        :returns: ``True`` when an entry was removed.
        """
        with self._lock:
            if ref_id not in self._by_ref_id:
                return False
            value: object = self._by_ref_id.pop(ref_id)
            self._by_identity.pop(id(value), None)
            log.debug("deleted reference %s", ref_id)
            return True

    def delete_value(self, value: object) -> bool:
        """Remove the entry referencing ``value``, if any.

        :param value: Native object.
        :returns: ``True`` when an entry was removed.
        """
        with self._lock:
            ref_id: str | None = self._by_identity.get(id(value))
            if ref_id is None:
                return False
            return self.delete(ref_id)

    def delete_recursive(self, ref_id: str, owned: OwnedValues) -> list[object]:
        """Remove an entry and every entry for objects it owns, transitively.

        :param ref_id: Identifier of the container object.
        :param owned: Returns the objects directly owned by a value.
        :returns: Every value reached, owned values before their owner.
        :raises UnknownReferenceError: If ``ref_id`` is not registered.
        """
        with self._lock:
            root: object = self.lookup(ref_id)
            reached: list[object] = []
            seen: set[int] = set()
            self._collect_owned(root, owned, reached, seen)
            for value in reached:
                self.delete_value(value)
            return reached

    def _collect_owned(
        self,
        value: object,
        owned: OwnedValues,
        reached: list[object],
        seen: set[int],
    ) -> None:
        identity: int = id(value)
        if identity in seen:
            return
        seen.add(identity)
        for child in list(owned(value)):
            self._collect_owned(child, owned, reached, seen)
        reached.append(value)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._by_ref_id.clear()
            self._by_identity.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_ref_id)

    def __contains__(self, ref_id: object) -> bool:
        with self._lock:
            return ref_id in self._by_ref_id


class DispatchResult(NamedTuple):
    """HTTP status and body produced for one request."""

    status: int
    body: str
    media_type: str = "text/plain"


def _require_ref(message: Message) -> str:
    """Extract the ``ref`` field.

    :param message: Request message.
    :returns: Reference identifier.
    :raises ValueError: If ``ref`` is missing or not a string.
    """
    ref_id: object = message.get("ref")
    if isinstance(ref_id, str) is False:
        raise ValueError("ref must be a string")
    return ref_id


def _require_field(message: Message, key: str) -> object:
    """Extract a required request field.

    :param message: Request message.
    :param key: Field name.
    :returns: Field value.
    :raises ValueError: If the field is missing.
    """
    if key not in message:
        raise ValueError(f"{key} is required")
    return message[key]


class Dispatcher:
    """Route request paths to handlers by exact match.

    Handlers take the decoded JSON request and return a JSON-serializable
    object, or ``None`` for an empty body. Any exception raised while
    handling becomes a 500 whose body is ``"<path>: <message>"``.
    """

    _handlers: dict[str, Handler]

    def __init__(self) -> None:
        """Initialize a dispatcher that only answers the health check."""
        self._handlers = {}

    def register(self, path: str, handler: Handler) -> None:
        """Register the handler for ``path``.

        :param path: Exact request path, such as ``/webpage/Content``.
        :param handler: Request handler.
        :raises ValueError: If ``path`` is already registered.
        """
        if path in self._handlers or path == PING_PATH:
            raise ValueError(f"handler already registered for {path}")
        self._handlers[path] = handler

    def paths(self) -> list[str]:
        """Return every registered path, sorted."""
        return sorted(self._handlers)

    def dispatch(self, path: str, body: bytes) -> DispatchResult:
        """Handle one request.

        :param path: Request path.
        :param body: Raw request body.
        :returns: Status, body text and media type for the response.
        """
        if path == PING_PATH:
            return DispatchResult(200, "ok")

        handler: Handler | None = self._handlers.get(path)
        if handler is None:
            return DispatchResult(404, "not found")

        try:
            message: Message = {}
            if len(body) > 0:
                decoded: object = json.loads(body)
                if isinstance(decoded, dict) is False:
                    raise ValueError("request body must be a JSON object")
                message = decoded
            result: Message | None = handler(message)
            if result is None:
                return DispatchResult(200, "")
            return DispatchResult(200, json.dumps(result), "application/json")
        except Exception as exc:
            log.debug("handler for %s failed", path, exc_info=True)
            return DispatchResult(500, f"{path}: {exc}")


# Remote field name -> (native attribute, setter request key or None).
WEBPAGE_FIELDS: dict[str, tuple[str, str | None]] = {
    "CanGoBack": ("can_go_back", None),
    "CanGoForward": ("can_go_forward", None),
    "ClipRect": ("clip_rect", "rect"),
    "Content": ("content", "content"),
    "Cookies": ("cookies", "cookies"),
    "CustomHeaders": ("custom_headers", "headers"),
    "FocusedFrameName": ("focused_frame_name", None),
    "FrameContent": ("frame_content", "content"),
    "FrameName": ("frame_name", None),
    "FramePlainText": ("frame_plain_text", None),
    "FrameTitle": ("frame_title", None),
    "FrameURL": ("frame_url", None),
    "FrameCount": ("frames_count", None),
    "FrameNames": ("frames_name", None),
    "LibraryPath": ("library_path", "path"),
    "NavigationLocked": ("navigation_locked", "value"),
    "OfflineStoragePath": ("offline_storage_path", None),
    "OfflineStorageQuota": ("offline_storage_quota", None),
    "OwnsPages": ("owns_pages", "value"),
    "PageWindowNames": ("pages_window_name", None),
    "PlainText": ("plain_text", None),
    "Title": ("title", None),
    "URL": ("url", None),
}

# Remote action name -> native method taking no arguments.
WEBPAGE_ACTIONS: dict[str, str] = {
    "GoBack": "go_back",
    "GoForward": "go_forward",
    "Reload": "reload",
    "Stop": "stop",
    "SwitchToMainFrame": "switch_to_main_frame",
    "SwitchToParentFrame": "switch_to_parent_frame",
}


def owned_pages(page: object) -> list[object]:
    """Return the pages a native page owns."""
    pages: object = getattr(page, "pages", None)
    if pages is None:
        return []
    return list(pages)  # type: ignore[call-overload]


class WebPageHandlers:
    """Handlers for the ``/webpage/*`` routes over one reference table."""

    _table: ReferenceTable
    _page_factory: PageFactory

    def __init__(self, table: ReferenceTable, page_factory: PageFactory) -> None:
        """Bind handlers to their state.

        :param table: Reference table shared by every handler.
        :param page_factory: Creates a new native page.
        """
        self._table = table
        self._page_factory = page_factory

    def install(self, dispatcher: Dispatcher) -> None:
        """Register every webpage route on ``dispatcher``.

        :param dispatcher: Dispatcher to populate.
        """
        for field_name, (attr_name, key) in WEBPAGE_FIELDS.items():
            dispatcher.register(f"/webpage/{field_name}", self._getter(attr_name))
            if key is not None:
                dispatcher.register(f"/webpage/Set{field_name}", self._setter(attr_name, key))
        for action_name, method_name in WEBPAGE_ACTIONS.items():
            dispatcher.register(f"/webpage/{action_name}", self._action(method_name))

        dispatcher.register("/webpage/Create", self.create)
        dispatcher.register("/webpage/Open", self.open)
        dispatcher.register("/webpage/Pages", self.pages)
        dispatcher.register("/webpage/Close", self.close)
        dispatcher.register("/webpage/EvaluateJavaScript", self.evaluate_javascript)
        dispatcher.register("/webpage/SwitchToFrameName", self.switch_to_frame_name)
        dispatcher.register("/webpage/SwitchToFramePosition", self.switch_to_frame_position)

    def _page(self, message: Message) -> object:
        return self._table.lookup(_require_ref(message))

    def _getter(self, attr_name: str) -> Handler:
        def handle(message: Message) -> Message:
            return {"value": getattr(self._page(message), attr_name)}

        return handle

    def _setter(self, attr_name: str, key: str) -> Handler:
        def handle(message: Message) -> None:
            page: object = self._page(message)
            setattr(page, attr_name, _require_field(message, key))

        return handle

    def _action(self, method_name: str) -> Handler:
        def handle(message: Message) -> None:
            getattr(self._page(message), method_name)()

        return handle

    def create(self, message: Message) -> Message:
        page: object = self._page_factory()
        return {"ref": {"id": self._table.register(page)}}

    def open(self, message: Message) -> Message:
        page: object = self._page(message)
        status: object = page.open(_require_field(message, "url"))  # type: ignore[attr-defined]
        return {"status": status}

    def pages(self, message: Message) -> Message:
        page: object = self._page(message)
        refs: list[Message] = [{"id": self._table.register(child)} for child in owned_pages(page)]
        return {"refs": refs}

    def close(self, message: Message) -> None:
        """Close a page and every page it owns, and forget their references.

        Every reached page is closed even when an earlier one fails; the
        first failure is raised afterwards.
        """
        reached: list[object] = self._table.delete_recursive(_require_ref(message), owned_pages)
        first_error: Exception | None = None
        for page in reached:
            try:
                page.close()  # type: ignore[attr-defined]
            except Exception as exc:
                log.warning("closing %s failed", type(page).__name__, exc_info=True)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def evaluate_javascript(self, message: Message) -> Message:
        page: object = self._page(message)
        script: object = _require_field(message, "script")
        return {"returnValue": page.evaluate_javascript(script)}  # type: ignore[attr-defined]

    def switch_to_frame_name(self, message: Message) -> None:
        page: object = self._page(message)
        page.switch_to_frame(_require_field(message, "name"))  # type: ignore[attr-defined]

    def switch_to_frame_position(self, message: Message) -> None:
        page: object = self._page(message)
        page.switch_to_frame(_require_field(message, "position"))  # type: ignore[attr-defined]


def build_dispatcher(page_factory: PageFactory, table: ReferenceTable | None = None) -> Dispatcher:
    """Build a dispatcher serving the webpage routes.

    :param page_factory: Creates a new native page.
    :param table: Optional reference table; a fresh one is created when omitted.
    :returns: Populated dispatcher.
    """
    if table is None:
        table = ReferenceTable()
    dispatcher: Dispatcher = Dispatcher()
    WebPageHandlers(table, page_factory).install(dispatcher)
    return dispatcher
