"""Requests and responses of the HTTP API, and helpers that build responses."""

from __future__ import annotations

import json
import socket
from dataclasses import dataclass, field
from typing import Any

from .settings import Settings

_CORS_KEY = "general.access-control-allow-origin"
_ENCODE_FAILURE = b'{"error":true,"message":"could not encode JSON","result":{}}'
_NOT_FOUND_BODY = '{"error":true,"message":"invalid request type","result":{}}'


@dataclass
class Request:
    """An incoming HTTP request as the handlers see it."""

    method: str
    path: str
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    """An HTTP response ready to be written to a client."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


def request_info(request: Request) -> dict[str, str]:
    """Describe the request: its path without query and the serving host."""
    return {"url": request.path.split("?", 1)[0], "host": socket.gethostname()}


def _cors_headers(settings: Settings) -> dict[str, str]:
    origin = settings.get_string(_CORS_KEY)
    return {"Access-Control-Allow-Origin": origin} if origin else {}


def _encode(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def json_response(settings: Settings, status: int, payload: Any) -> Response:
    """Encode the payload as JSON; an encoding failure gives a 500 response."""
    headers = _cors_headers(settings)
    headers["Content-Type"] = "application/json"
    try:
        body = json.dumps(
            payload, default=_encode, separators=(",", ":"), allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError):
        return Response(500, _ENCODE_FAILURE, headers)
    return Response(status, body, headers)


def error_response(
    settings: Settings, request: Request, status: int, message: str
) -> Response:
    """A JSON error body with the given status and message."""
    return json_response(
        settings,
        status,
        {"error": True, "message": message, "request": request_info(request)},
    )


def text_response(settings: Settings, status: int, text: str) -> Response:
    """A plain text response, carrying the CORS header when configured."""
    headers = _cors_headers(settings)
    headers["Content-Type"] = "text/plain; charset=utf-8"
    return Response(status, text.encode("utf-8"), headers)


def not_found_response() -> Response:
    """The response for any URL that no route matches."""
    return Response(
        404,
        (_NOT_FOUND_BODY + "\n").encode("utf-8"),
        {
            "Content-Type": "text/plain; charset=utf-8",
            "X-Content-Type-Options": "nosniff",
        },
    )