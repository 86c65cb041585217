"""ASGI middleware guarding the JSON write endpoints."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

# Every POST route that reads a JSON body
_JSON_ROUTES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"/users",
        r"/users/[^/]+/accounts",
        r"/users/register/[^/]+",
        r"/accounts/[^/]+/deposit",
        r"/withdrawals",
        r"/withdraw",
    )
)


def _is_json_route(method: str, path: str) -> bool:
    return method == "POST" and any(route.fullmatch(path) for route in _JSON_ROUTES)


def _media_type(headers: dict[bytes, bytes]) -> str:
    raw = headers.get(b"content-type", b"").decode("latin-1")
    return raw.split(";", 1)[0].strip().lower()


def _declared_length(headers: dict[bytes, bytes]) -> int | None:
    raw = headers.get(b"content-length")
    if raw is None or not raw.isdigit():
        return None
    return int(raw)


def _reject(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": {}},
    )


class RequestValidationMiddleware:
    """
    Rejects malformed writes before they reach a router.

    On the JSON POST routes: 415 unless the media type is application/json,
    413 when the body (declared or actually received) exceeds max_body_size.
    The accepted body is buffered and replayed to the app in one message.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not _is_json_route(scope["method"], scope["path"]):
            await self.app(scope, receive, send)
            return

        headers = dict(cast("list[tuple[bytes, bytes]]", scope.get("headers", [])))

        if _media_type(headers) != "application/json":
            rejection = _reject(
                415, "UNSUPPORTED_MEDIA_TYPE", "Content-Type must be application/json"
            )
            await rejection(scope, receive, send)
            return

        too_large = _reject(
            413, "PAYLOAD_TOO_LARGE", "Request body exceeds maximum allowed size"
        )
        declared = _declared_length(headers)
        if declared is not None and declared > self.max_body_size:
            await too_large(scope, receive, send)
            return

        body = bytearray()
        more_body = True
        while more_body:
            message = await receive()
            body.extend(cast("bytes", message.get("body", b"")))
            if len(body) > self.max_body_size:
                await too_large(scope, receive, send)
                return
            more_body = bool(message.get("more_body", False))

        replay: list[Message] = [
            {"type": "http.request", "body": bytes(body), "more_body": False}
        ]

        async def replay_receive() -> dict[str, Any]:
            if replay:
                return cast("dict[str, Any]", replay.pop())
            return {"type": "http.disconnect"}

        await self.app(scope, replay_receive, send)
