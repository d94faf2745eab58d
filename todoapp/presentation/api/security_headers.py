from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

API_CSP = "default-src 'none'; frame-ancestors 'none'"
HSTS_HEADER = "max-age=31536000; includeSubDomains"

# Interactive docs load scripts and styles from a CDN.
_DOCS_PREFIXES = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds a fixed set of hardening headers to every API response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if not request.url.path.startswith(_DOCS_PREFIXES):
            response.headers.setdefault("Content-Security-Policy", API_CSP)
        if request.url.scheme == "https":
            response.headers.setdefault("Strict-Transport-Security", HSTS_HEADER)
        return response
