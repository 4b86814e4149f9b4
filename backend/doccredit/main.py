import logging as _logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse
from .platform.brand import BRAND_APP_DESCRIPTION, BRAND_NAME
from .platform.config import settings
from .platform.errors import DocCreditError
from .platform.logging import setup_logging
from .platform.middleware import RequestLoggingMiddleware, RateLimitMiddleware

# Set up logging
logger = setup_logging()

# ---------------------------------------------------------------------------
# Production safety: super-admin endpoints need a real shared secret
# ---------------------------------------------------------------------------
_INSECURE_DEFAULTS = {"", "changeme", "secret", "super-admin"}
_is_production = settings.is_production
if _is_production and settings.SUPER_ADMIN_KEY in _INSECURE_DEFAULTS:
    raise RuntimeError(
        "CRITICAL: SUPER_ADMIN_KEY is empty or an insecure default. "
        "Set a strong SUPER_ADMIN_KEY in your .env before running in production."
    )

# ---------------------------------------------------------------------------
# Disable interactive API docs in production (information disclosure)
# ---------------------------------------------------------------------------
_docs_url = None if _is_production else "/api/docs"
_openapi_url = None if _is_production else "/api/openapi.json"


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    logger.info("%s API started | env=%s", BRAND_NAME, settings.DEPLOYMENT_ENV)
    yield


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description=BRAND_APP_DESCRIPTION,
    version="1.0.0",
    docs_url=_docs_url,
    openapi_url=_openapi_url,
    lifespan=_lifespan,
)

_val_logger = _logging.getLogger("doccredit.validation")
_err_logger = _logging.getLogger("doccredit.errors")


def _sanitize_errors(errors: list) -> list:
    """Ensure validation error details are JSON-serializable."""

    def _json_safe(value):
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, dict):
            return {str(k): _json_safe(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [_json_safe(v) for v in value]
        return str(value)

    return [_json_safe(err) for err in errors]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with detail so we can diagnose 422s."""
    _val_logger.warning(
        "Validation error on %s %s: %s",
        request.method,
        request.url.path,
        exc.errors(),
    )
    return JSONResponse(
        status_code=422,
        content={"detail": _sanitize_errors(exc.errors()), "code": "VALIDATION_ERROR"},
    )


@app.exception_handler(DocCreditError)
async def doccredit_exception_handler(request: Request, exc: DocCreditError):
    level = _logging.ERROR if exc.status_code >= 500 else _logging.INFO
    _err_logger.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(SQLAlchemyError)
async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
    _err_logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage is temporarily unavailable", "code": "STORAGE_ERROR"},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security-hardening HTTP headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response: StarletteResponse = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if _is_production:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# CORS: frontend URL + localhost + any extra origins
_cors_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",
    "http://localhost:3000",
]
if settings.CORS_EXTRA_ORIGINS:
    _cors_origins.extend(o.strip() for o in settings.CORS_EXTRA_ORIGINS.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in _cors_origins if o],
    allow_origin_regex=settings.CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "X-Requested-With",
        "X-School-Id",
        "X-User-Id",
        "X-Super-Admin-Key",
    ],
)

# Rate limiting (generate and purchase endpoints)
app.add_middleware(RateLimitMiddleware)

# Request logging
app.add_middleware(RequestLoggingMiddleware)

# Sentry (optional)
if settings.SENTRY_DSN and settings.SENTRY_DSN.startswith("https://"):
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=settings.DEPLOYMENT_ENV,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
    )

# Include routers
from .api.v1.catalog import router as catalog_router, admin_router as catalog_admin_router
from .api.v1.permissions import router as permissions_router
from .api.v1.documents import router as documents_router, admin_router as documents_admin_router
from .api.v1.credits import router as credits_router, admin_router as credits_admin_router
from .api.v1.webhooks import router as webhooks_router

app.include_router(catalog_router, prefix="/api/v1")
app.include_router(catalog_admin_router, prefix="/api/v1")
app.include_router(permissions_router, prefix="/api/v1")
app.include_router(documents_router, prefix="/api/v1")
app.include_router(documents_admin_router, prefix="/api/v1")
app.include_router(credits_router, prefix="/api/v1")
app.include_router(credits_admin_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.get("/health")
def health_check():
    db_ok = False
    try:
        from sqlalchemy import text
        from .platform.database import SessionLocal
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        db_ok = False

    body = {
        "status": "healthy" if db_ok else "degraded",
        "service": "doccredit-api",
        "database": db_ok,
        "integrations": {
            "lemon_enabled": not settings.MVP_DISABLE_LEMON,
            "super_admin_configured": bool(settings.SUPER_ADMIN_KEY),
        },
    }
    return JSONResponse(status_code=200 if db_ok else 503, content=body)
