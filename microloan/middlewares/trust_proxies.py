from typing import Optional

from starlette.types import ASGIApp, Receive, Scope, Send


def client_ip_from_forwarded(forwarded: str, proxies_count: int) -> Optional[str]:
    """Pick the caller out of ``client, proxy1, proxy2`` given N trusted hops.

    Returns None when the chain is shorter than the trusted hop count, which
    means the header was not written by our own proxies.
    """
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    if proxies_count <= 0 or len(hops) <= proxies_count:
        return None
    return hops[-(proxies_count + 1)]


class TrustedProxiesMiddleware:
    def __init__(self, app: ASGIApp, proxies_count: int = 0) -> None:
        self.app = app
        self.proxies_count = proxies_count

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.proxies_count > 0:
            forwarded = dict(scope.get("headers", [])).get(b"x-forwarded-for", b"").decode()
            client_ip = client_ip_from_forwarded(forwarded, self.proxies_count) if forwarded else None
            if client_ip:
                port = scope["client"][1] if scope.get("client") else 0
                scope["client"] = (client_ip, port)
        await self.app(scope, receive, send)
