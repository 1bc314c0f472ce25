"""JSON wire shapes shared by the client proxies and the worker handlers."""

from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
from email.utils import format_datetime
from email.utils import parsedate_to_datetime

from phantombridge.errors import BridgeProtocolError


@dataclass
class Rect:
    """Rectangle used for page clipping."""

    top: int = 0
    left: int = 0
    width: int = 0
    height: int = 0


@dataclass
class Cookie:
    """Browser cookie as exchanged with the worker.

    ``expires`` is ``None`` for session cookies.
    """

    name: str
    value: str
    domain: str = ""
    path: str = ""
    expires: datetime | None = None
    expiry: int = 0
    http_only: bool = False
    secure: bool = False


def format_http_date(value: datetime) -> str:
    """Format a timestamp as an RFC 1123 HTTP date.

    The format has whole-second resolution and an explicit zone, so only
    values that survive it unchanged are accepted.

    :param value: Timezone-aware timestamp without sub-second precision.
    :returns: Date string such as ``Mon, 02 Jan 2006 15:04:05 GMT``.
    :raises ValueError: If ``value`` is naive or has microseconds.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"cookie expiry must be timezone-aware, got {value!r}")
    if value.microsecond != 0:
        raise ValueError(f"cookie expiry cannot carry sub-second precision, got {value!r}")
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def parse_http_date(text: str) -> datetime:
    """Parse an RFC 1123 HTTP date.

    :param text: Date string.
    :returns: Timezone-aware UTC timestamp.
    :raises BridgeProtocolError: If the text is not a valid HTTP date.
    """
    try:
        parsed: datetime = parsedate_to_datetime(text)
    except (TypeError, ValueError) as exc:
        raise BridgeProtocolError(f"invalid cookie expiry date: {text!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def encode_cookie(cookie: Cookie) -> dict[str, object]:
    """Encode a cookie into its wire shape.

    :param cookie: Cookie value.
    :returns: Wire dictionary.
    :raises ValueError: If ``expires`` cannot be represented exactly.
    """
    expires: str = ""
    if cookie.expires is not None:
        expires = format_http_date(cookie.expires)
    return {
        "domain": cookie.domain,
        "expires": expires,
        "expiry": cookie.expiry,
        "httponly": cookie.http_only,
        "name": cookie.name,
        "path": cookie.path,
        "secure": cookie.secure,
        "value": cookie.value,
    }


def decode_cookie(raw: object) -> Cookie:
    """Decode a cookie from its wire shape.

    Missing fields take their zero values; an empty or absent ``expires``
    decodes to ``None``.

    :param raw: Wire value.
    :returns: Cookie value.
    :raises BridgeProtocolError: If the value is not a cookie object.
    """
    if isinstance(raw, dict) is False:
        raise BridgeProtocolError(f"cookie must be an object, got {raw!r}")
    expires_text: object = raw.get("expires") or ""
    expires: datetime | None = None
    if isinstance(expires_text, str) is True and expires_text != "":
        expires = parse_http_date(expires_text)
    expiry: int = decode_int(raw.get("expiry"), "cookie expiry")
    return Cookie(
        name=str(raw.get("name", "")),
        value=str(raw.get("value", "")),
        domain=str(raw.get("domain", "")),
        path=str(raw.get("path", "")),
        expires=expires,
        expiry=expiry,
        http_only=bool(raw.get("httponly", False)),
        secure=bool(raw.get("secure", False)),
    )


def decode_int(raw: object, name: str) -> int:
    """Decode an integer field; absent values are zero.

    :param raw: Wire value.
    :param name: Field description used in the error message.
    :returns: Integer value.
    :raises BridgeProtocolError: If the value is not numeric.
    """
    if raw is None:
        return 0
    if isinstance(raw, bool) is True:
        raise BridgeProtocolError(f"{name} must be a number, got {raw!r}")
    try:
        return int(raw)  # type: ignore[call-overload]
    except (TypeError, ValueError) as exc:
        raise BridgeProtocolError(f"{name} must be a number, got {raw!r}") from exc


def encode_rect(rect: Rect) -> dict[str, int]:
    """Encode a rectangle into its wire shape."""
    return {
        "top": rect.top,
        "left": rect.left,
        "width": rect.width,
        "height": rect.height,
    }


def decode_rect(raw: object) -> Rect:
    """Decode a rectangle; absent sides are zero.

    :param raw: Wire value.
    :returns: Rectangle value.
    :raises BridgeProtocolError: If the value is not a rectangle object.
    """
    if raw is None:
        return Rect()
    if isinstance(raw, dict) is False:
        raise BridgeProtocolError(f"rect must be an object, got {raw!r}")
    return Rect(
        top=decode_int(raw.get("top"), "rect top"),
        left=decode_int(raw.get("left"), "rect left"),
        width=decode_int(raw.get("width"), "rect width"),
        height=decode_int(raw.get("height"), "rect height"),
    )


def decode_ref_id(raw: object) -> str:
    """Extract the identifier from a ``{"id": ...}`` reference object.

    :param raw: Wire value.
    :returns: Reference identifier.
    :raises BridgeProtocolError: If the reference is malformed.
    """
    if isinstance(raw, dict) is False:
        raise BridgeProtocolError(f"ref must be an object, got {raw!r}")
    ref_id: object = raw.get("id")
    if isinstance(ref_id, str) is False or ref_id == "":
        raise BridgeProtocolError(f"ref id must be a non-empty string, got {ref_id!r}")
    return ref_id


def decode_headers(raw: object) -> dict[str, str]:
    """Decode a header mapping.

    :param raw: Wire value.
    :returns: Header names mapped to values.
    :raises BridgeProtocolError: If the value is not an object.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict) is False:
        raise BridgeProtocolError(f"headers must be an object, got {raw!r}")
    return {str(key): str(value) for key, value in raw.items()}
