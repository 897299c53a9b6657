from __future__ import annotations

from typing import Any, Mapping

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


DEFAULT_HEADERS = ("Accept", "Content-Type", "Authorization", "X-Requested-With")
DEFAULT_METHODS = ("GET", "PUT", "POST", "PATCH", "DELETE")


class CorsPolicy:
    """Access-Control-* headers for a `cors` option.

    `cors` is either True (allow any origin) or a mapping with optional
    `headers`, `methods`, `origins` and `credentials` keys.
    """

    def __init__(self, cors: bool | Mapping[str, Any] = True) -> None:
        cfg: Mapping[str, Any] = cors if isinstance(cors, Mapping) else {}
        self.headers = list(cfg.get("headers") or DEFAULT_HEADERS)
        self.methods = [str(m).upper() for m in (cfg.get("methods") or DEFAULT_METHODS)]
        origins = cfg.get("origins") or "*"
        self.origins: str | list[str] = origins if origins == "*" else [str(o) for o in origins]
        credentials = cfg.get("credentials")
        self.credentials = True if credentials is None else bool(credentials)

    def allowed_origin(self, origin: str) -> str | None:
        if self.origins == "*":
            return "*"
        return origin if origin in self.origins else None

    def headers_for(self, request: Request) -> dict[str, str] | None:
        """Headers for the request's origin; None without an allowed origin."""
        origin = request.headers.get("origin")
        allowed = self.allowed_origin(origin) if origin else None
        if allowed is None:
            return None
        return {
            "Access-Control-Allow-Origin": allowed,
            "Access-Control-Allow-Headers": ", ".join(self.headers),
            "Access-Control-Allow-Methods": ", ".join(self.methods),
            "Access-Control-Allow-Credentials": "true" if self.credentials else "false",
        }


class CrossDomainMiddleware(BaseHTTPMiddleware):
    """Sets CORS headers on cross-origin requests and answers OPTIONS."""

    def __init__(self, app: ASGIApp, policy: CorsPolicy) -> None:
        super().__init__(app)
        self.policy = policy

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        headers = self.policy.headers_for(request)
        if headers is None:
            return await call_next(request)

        if request.method == "OPTIONS":
            return Response(status_code=200, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
