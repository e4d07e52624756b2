"""
Request body size limit, enforced before the body is parsed.

FastAPI reads and spools a multipart form before any dependency runs, so
the limit has to live below the router. Declared lengths are checked
from the header without touching the body; bodies without a usable
Content-Length are counted as they stream in and cut off once over the
limit.
"""

import logging

from fastapi import status
from fastapi.responses import ORJSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("signer.limits")


class BodyTooLarge(Exception):
    """Raised from the wrapped ``receive`` once the limit is crossed."""


class BodySizeLimitMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        *,
        max_body_bytes: int,
        detail: str,
        paths: tuple[str, ...] = ("/sign",),
    ) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes
        self.detail = detail
        self.paths = paths

    def _reject(self) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"error": self.detail},
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] not in self.paths:
            await self.app(scope, receive, send)
            return

        declared = _declared_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            logger.warning(
                "request_body_rejected",
                extra={"path": scope["path"], "declared_bytes": declared},
            )
            await self._reject()(scope, receive, send)
            return

        received = 0
        exceeded = False
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    exceeded = True
                    raise BodyTooLarge()
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            # Whatever the app renders for the aborted parse is replaced.
            if exceeded:
                return
            response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except BodyTooLarge:
            pass

        if exceeded and not response_started:
            logger.warning(
                "request_body_cut_off",
                extra={"path": scope["path"], "received_bytes": received},
            )
            await self._reject()(scope, receive, send)


def _declared_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-length":
            text = value.decode("latin-1").strip()
            return int(text) if text.isdigit() else None
    return None
