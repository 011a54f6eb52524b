# backend/gatehouse/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

# rate limiting
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from gatehouse.core.rate_limit import limiter
from gatehouse.core.settings import get_settings
from gatehouse.security.credentials import init_db
from gatehouse.security.filters import reject_request, strip_version_headers

APP_VERSION = "1.0.0"
GENERATOR_HEADER = f"Gatehouse/{APP_VERSION}"

ALLOWED_ORIGINS = get_settings().allowed_origins

# ---- Default security headers ----
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "frame-ancestors 'none'; "
        "object-src 'none'; "
        "base-uri 'self'; "
        "form-action 'self'"
    ),
}
# NOTE: HSTS only takes effect when served over HTTPS (enable at your reverse proxy in prod)
STRICT_TRANSPORT_SECURITY = "max-age=31536000; includeSubDomains"

app = FastAPI(title="Gatehouse", version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "content-type", "x-requested-with"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = JSONResponse(
        status_code=429,
        content={"error": "too_many_requests", "detail": "Try again later."},
    )
    for header, value in (getattr(exc, "headers", {}) or {}).items():
        response.headers.setdefault(header, value)
    return response


# Registered first so it runs innermost; the filters below may strip it.
@app.middleware("http")
async def advertise_version(request: Request, call_next):
    response: Response = await call_next(request)
    response.headers.setdefault("X-Generator", GENERATOR_HEADER)
    return response


# ---- Stateless hardening filters ----
@app.middleware("http")
async def hardening_filters(request: Request, call_next):
    toggles = get_settings().toggles
    rejected = reject_request(request, toggles)
    if rejected is not None:
        return strip_version_headers(rejected, toggles)
    response: Response = await call_next(request)
    return strip_version_headers(response, toggles)


# ---- Security headers middleware ----
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response: Response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    # HSTS (effective only when behind HTTPS)
    response.headers.setdefault("Strict-Transport-Security", STRICT_TRANSPORT_SECURITY)
    return response


# ---- Health endpoint (used by tests and curl) ----
@app.get("/health")
def health():
    return {"ok": True}


init_db()

# ---- Routers ----
from gatehouse.routers import auth, site  # noqa: E402

app.include_router(auth.router)
app.include_router(site.router)
