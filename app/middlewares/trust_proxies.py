from starlette.types import ASGIApp, Receive, Scope, Send


def resolve_client_ip(forwarded_for: str, real_ip: str, proxies_count: int) -> str | None:
    """Pick the client address from proxy headers.

    ``X-Forwarded-For`` reads "client, proxy1, proxy2"; with N trusted proxies
    the client sits at index -(N+1). ``X-Real-IP`` is used when the chain is
    absent or shorter than the trusted hop count.
    """
    if forwarded_for:
        ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if len(ips) > proxies_count:
            return ips[-(proxies_count + 1)]
    return real_ip or None


class TrustedProxiesMiddleware:
    """Rewrite ``scope["client"]`` so rate limiting and audit rows see the caller's address."""

    def __init__(self, app: ASGIApp, proxies_count: int = 1) -> None:
        self.app = app
        self.proxies_count = proxies_count

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.proxies_count > 0:
            headers = dict(scope.get("headers", []))
            real_ip = resolve_client_ip(
                headers.get(b"x-forwarded-for", b"").decode(),
                headers.get(b"x-real-ip", b"").decode().strip(),
                self.proxies_count,
            )
            if real_ip:
                port = scope["client"][1] if scope.get("client") else 0
                scope["client"] = (real_ip, port)

        await self.app(scope, receive, send)
