"""JSON responses for the HTTP API."""

from __future__ import annotations

import base64
import json
import os
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any

from werkzeug.wrappers import Response

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

INVALID_TOKEN = "Invalid or missing token"
UNAUTHORIZED = "Unauthorized"
FORBIDDEN = "Forbidden"
NOT_FOUND = "Not Found"

_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _parse_bool(value: str | None) -> bool:
    """Return True for the usual spellings of true; anything else is False."""
    return (value or "") in _TRUE_WORDS


# Indent the json-encoded API responses when HTTP_JSON_INDENT is true.
INDENT = _parse_bool(os.environ.get("HTTP_JSON_INDENT"))


@dataclass
class Error:
    """A json-encoded API error."""

    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


def _default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def _encode(value: Any, indent: bool) -> str:
    if indent:
        text = json.dumps(value, default=_default, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(value, default=_default, ensure_ascii=False, separators=(",", ":"))
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text + "\n"


def write_json(value: Any, status: int = 200, indent: bool | None = None) -> Response:
    """Return a response holding the json-encoded value."""
    use_indent = INDENT if indent is None else indent
    response = Response(_encode(value, use_indent), status=status, content_type=JSON_CONTENT_TYPE)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def write_error_code(err: BaseException | str, status: int) -> Response:
    """Return a response holding the json-encoded error message."""
    return write_json(Error(message=str(err)), status)


def write_error(err: BaseException | str) -> Response:
    """Return the error with a 500 internal server error status."""
    return write_error_code(err, 500)


def write_not_found(err: BaseException | str) -> Response:
    """Return the error with a 404 not found status."""
    return write_error_code(err, 404)


def write_unauthorized(err: BaseException | str) -> Response:
    """Return the error with a 401 unauthorized status."""
    return write_error_code(err, 401)


def write_forbidden(err: BaseException | str) -> Response:
    """Return the error with a 403 forbidden status."""
    return write_error_code(err, 403)


def write_bad_request(err: BaseException | str) -> Response:
    """Return the error with a 400 bad request status."""
    return write_error_code(err, 400)