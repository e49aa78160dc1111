import logging
import time
from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from microloan.core import context

access_logger = logging.getLogger("microloan.access")


class RequestContextMiddleware:
    """Bind request and actor ids for the duration of a request and log its outcome."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode().strip() or uuid4().hex
        actor_id = headers.get(b"x-actor-id", b"").decode().strip()

        context.clear_context()
        context.set_request_id(request_id)
        if actor_id:
            context.set_actor_id(actor_id)

        started = time.perf_counter()
        status_code = 500

        async def send_tagged(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message["headers"] = [*message.get("headers", []), (b"x-request-id", request_id.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_tagged)
        finally:
            access_logger.info(
                "%s %s -> %s",
                scope["method"],
                scope["path"],
                status_code,
                extra={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
            )
