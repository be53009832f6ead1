"""Security middleware for FastAPI: auth and rate limiting.

Middleware ordering (outermost first):
1. Auth -- verify Bearer token, inject user claims
2. Rate limiting -- keyed by authenticated user id, else client IP
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from limits import parse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from src.security.auth import (
    PUBLIC_ALLOWLIST,
    SKIP_METHODS,
    extract_bearer_token,
    is_webhook_path,
    verify_token,
)

logger = logging.getLogger(__name__)


def _rate_limit_key(request: Request) -> str:
    """Authenticated user id when known, else the client IP."""
    claims = getattr(request.state, "user", None)
    if claims and claims.get("sub"):
        return f"user:{claims['sub']}"
    return get_remote_address(request)


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate all requests except public routes and webhooks.

    Runs BEFORE request body parsing (so unauthenticated POST returns 401 not 400).
    """

    def __init__(self, app, secret: str):
        super().__init__(app)
        self._secret = secret

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        if method in SKIP_METHODS or (method, path) in PUBLIC_ALLOWLIST:
            return await call_next(request)

        # Webhook endpoints: public, signature-verified by handler. POST only.
        if method == "POST" and is_webhook_path(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return JSONResponse(
                {"error": "Authentication required", "code": "UNAUTHORIZED"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            claims = verify_token(token, self._secret)
        except ValueError as e:
            logger.debug("Auth failed: %s", e)
            return JSONResponse(
                {"error": "Invalid or expired credentials", "code": "UNAUTHORIZED"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user = claims
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the default limit to every request except provider webhooks.

    Exemption is decided by path rather than by resolving the route, so it
    does not depend on how routers are mounted on the app.
    """

    def __init__(self, app, limiter: Limiter, rate_limit: str):
        super().__init__(app)
        self._limiter = limiter
        self._item = parse(rate_limit)

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST" and is_webhook_path(request.url.path):
            return await call_next(request)

        key = _rate_limit_key(request)
        if not self._limiter.limiter.hit(self._item, key):
            reset_at, _ = self._limiter.limiter.get_window_stats(self._item, key)
            retry_after = max(1, int(reset_at - time.time()))
            logger.info("Rate limit exceeded for %s on %s", key, request.url.path)
            return _rate_limited_response(retry_after)
        return await call_next(request)


def _rate_limited_response(retry_after: int) -> JSONResponse:
    return JSONResponse(
        {"error": "Rate limit exceeded", "code": "RATE_LIMITED", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_security_middleware(app: FastAPI, jwt_secret: str, rate_limit: str) -> None:
    """Install auth and rate limiting on the FastAPI app.

    Middleware is added in reverse order (last added = outermost = runs first).
    """
    # 2. Rate limiting (inner -- sees request.state.user set by auth).
    limiter = Limiter(key_func=_rate_limit_key, default_limits=[rate_limit])
    app.state.limiter = limiter
    app.add_middleware(RateLimitMiddleware, limiter=limiter, rate_limit=rate_limit)

    # 1. Auth (outermost)
    app.add_middleware(AuthMiddleware, secret=jwt_secret)
