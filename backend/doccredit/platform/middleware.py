import time
import uuid
import logging
from collections import defaultdict
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from .config import settings
from .logging import bind_request_context

logger = logging.getLogger("doccredit.middleware")

# In-memory rate limit: key -> list of request timestamps (pruned to last window_sec)
_rate_limit_store = defaultdict(list)
_RATE_WINDOW_SEC = 60


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _rate_limit_key(client: str, method: str, path: str) -> str:
    if method != "POST":
        return ""
    if path.endswith("/api/v1/documents/generate"):
        return f"generate:{client}"
    if path.endswith("/api/v1/credits/purchase"):
        return f"purchase:{client}"
    return ""


def _rate_limit_max(key: str) -> int:
    if key.startswith("generate:"):
        return settings.RATE_LIMIT_GENERATE_PER_MINUTE
    if key.startswith("purchase:"):
        return settings.RATE_LIMIT_PURCHASE_PER_MINUTE
    return 0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Return 429 when a school or IP sends too many generate/purchase requests."""

    async def dispatch(self, request: Request, call_next):
        # Limit per tenant when identified, per IP otherwise.
        client = request.headers.get("x-school-id") or _get_client_ip(request)
        path = request.url.path
        key = _rate_limit_key(client, request.method, path)
        if not key:
            return await call_next(request)

        now = time.time()
        window_start = now - _RATE_WINDOW_SEC
        store = _rate_limit_store[key]
        store[:] = [t for t in store if t > window_start]
        max_allowed = _rate_limit_max(key)
        if len(store) >= max_allowed:
            logger.warning("Rate limit exceeded key=%s path=%s", key, path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later.", "code": "RATE_LIMITED"},
            )
        store.append(now)
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status, and duration."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id, request.headers.get("x-school-id"))
        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        if request.url.path != "/health":
            logger.info(
                "method=%s path=%s status=%d duration=%.1fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )

        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = request_id

        return response
