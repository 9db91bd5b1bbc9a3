"""HTTP middleware wrapped around the task routes.

Installed by :func:`install_middleware`, outermost first: security headers,
request id, request logging, CORS, gzip, rate limit, body size limit.
"""

from __future__ import annotations

import math
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import ServiceSettings
from ..logging_utils import level_for_status

REQUEST_ID_HEADER = "X-Request-ID"
RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
BODY_TOO_LARGE_MESSAGE = "Request entity too large"

SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "cross-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def generate_request_id() -> str:
    """Return ``<epoch ms>-<6 hex>``."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def client_address(request: Request, trusted_proxy_hops: int = 0) -> str:
    """Client key for rate limiting and request logs.

    With no trusted proxies the socket peer is used and ``X-Forwarded-For`` is
    ignored. With *n* trusted hops, the address *n* entries back from the
    socket peer in the forwarded chain is used; entries further left were
    written by the client and are never trusted.
    """
    peer = request.client.host if request.client and request.client.host else "unknown"
    if trusted_proxy_hops <= 0:
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    chain = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    chain.append(peer)
    return chain[max(0, len(chain) - 1 - trusted_proxy_hops)]


# ---------------------------------------------------------------------------
# Request id + request logging
# ---------------------------------------------------------------------------

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to the request, its log lines, and the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id
        with logger.contextualize(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request; only failures unless ``log_all`` is set."""

    def __init__(self, app: ASGIApp, log_all: bool = False, trusted_proxy_hops: int = 0) -> None:
        super().__init__(app)
        self.log_all = log_all
        self.trusted_proxy_hops = trusted_proxy_hops

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        status = response.status_code
        if self.log_all or status >= 400:
            url = request.url.path
            if request.url.query:
                url = f"{url}?{request.url.query}"
            logger.bind(
                method=request.method,
                url=url,
                status=status,
                duration_ms=duration_ms,
                ip=client_address(request, self.trusted_proxy_hops),
                user_agent=request.headers.get("user-agent"),
                referer=request.headers.get("referer"),
            ).log(
                level_for_status(status),
                "[HTTP] {} {} {} in {}ms",
                request.method,
                url,
                status,
                duration_ms,
            )
        return response


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    def headers(self) -> dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_seconds)
        return headers


class FixedWindowRateLimiter:
    """Count hits per key in fixed windows of ``window_seconds``.

    Expired windows are swept at most once per window length, so a hit costs
    O(1) apart from that periodic sweep.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (window start, hits)
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._prune(now)
            start, hits = self._windows.get(key, (now, 0))
            if now - start >= self.window_seconds:
                start, hits = now, 0
            hits += 1
            self._windows[key] = (start, hits)

        reset = max(0, math.ceil(start + self.window_seconds - now))
        return RateLimitDecision(
            allowed=hits <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - hits),
            reset_seconds=reset,
        )

    def _prune(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        limiter: FixedWindowRateLimiter,
        trusted_proxy_hops: int = 0,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.trusted_proxy_hops = trusted_proxy_hops

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client = client_address(request, self.trusted_proxy_hops)
        decision = self.limiter.hit(client)
        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded for {} on {} {}", client, request.method, request.url.path
            )
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMIT_MESSAGE},
                headers=decision.headers(),
            )
        response = await call_next(request)
        response.headers.update(decision.headers())
        return response


# ---------------------------------------------------------------------------
# Body limit + security headers
# ---------------------------------------------------------------------------

class BodySizeLimitMiddleware:
    """Enforce ``max_bytes`` on request bodies.

    A declared ``Content-Length`` over the limit is rejected before the app
    runs. Bodies without one (chunked uploads) are counted as they are
    received, and reading past the limit raises a 413 ``HTTPException`` that
    the app's error handlers render.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _content_length(Headers(scope=scope))
        if declared is not None and declared > self.max_bytes:
            logger.warning("Rejected body of {} bytes (limit {})", declared, self.max_bytes)
            response = JSONResponse(status_code=413, content={"error": BODY_TOO_LARGE_MESSAGE})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning("Rejected streamed body over {} bytes", self.max_bytes)
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE_MESSAGE)
            return message

        await self.app(scope, limited_receive, send)


def _content_length(headers: Headers) -> Optional[int]:
    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        apply_security_headers(response)
        return response


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def install_middleware(app: FastAPI, settings: ServiceSettings) -> None:
    """Register the middleware stack on *app*.

    Starlette wraps in reverse registration order, so the innermost layer is
    added first. Outermost first the stack reads: security headers, request
    id, request logging, CORS, gzip, rate limit, body limit.
    """
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    if settings.rate_limit_enabled:
        limiter = FixedWindowRateLimiter(
            limit=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window_seconds,
        )
        app.add_middleware(
            RateLimitMiddleware,
            limiter=limiter,
            trusted_proxy_hops=settings.trusted_proxy_hops,
        )
    app.add_middleware(GZipMiddleware)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(
        RequestLoggingMiddleware,
        log_all=settings.log_requests,
        trusted_proxy_hops=settings.trusted_proxy_hops,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
