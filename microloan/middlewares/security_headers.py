from typing import Mapping

from starlette.types import ASGIApp, Message, Receive, Scope, Send

# The API only serves JSON; nothing should be framed, sniffed or cached.
BASE_HEADERS: dict[str, str] = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "referrer-policy": "no-referrer",
    "cache-control": "no-store",
}
HSTS_VALUE = "max-age=63072000; includeSubDomains"


class SecurityHeadersMiddleware:
    """Add default security headers unless the route already set them."""

    def __init__(self, app: ASGIApp, enable_hsts: bool = False, extra: Mapping[str, str] | None = None) -> None:
        self.app = app
        merged = dict(BASE_HEADERS)
        if enable_hsts:
            merged["strict-transport-security"] = HSTS_VALUE
        merged.update({key.lower(): value for key, value in (extra or {}).items()})
        self._headers = [(key.encode("latin-1"), value.encode("latin-1")) for key, value in merged.items()]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                current = list(message.get("headers", []))
                present = {key.lower() for key, _ in current}
                current.extend(item for item in self._headers if item[0] not in present)
                message["headers"] = current
            await send(message)

        await self.app(scope, receive, send_with_headers)
