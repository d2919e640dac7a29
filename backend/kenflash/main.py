import logging
import time
from threading import Lock

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from kenflash.config import get_settings
from kenflash.database import engine, Base, SessionLocal
from kenflash.models import message as message_models  # noqa: F401 - import for table creation
from kenflash.models import subscription as subscription_models  # noqa: F401 - import for table creation
from kenflash.routers.chat import router as chat_router
from kenflash.routers.functions import (
    INITIALIZE_CHARGE_PATH,
    VERIFY_PAYMENT_PATH,
    router as functions_router,
)
from kenflash.routers.subscriptions import router as subscriptions_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple in-memory rate limiter for the payment functions.

    Limits requests per (client IP, path) using a sliding window. Settings
    come from RATE_LIMIT_PAYMENTS, RATE_LIMIT_WINDOW_SECONDS and
    RATE_LIMIT_DISABLED. The client IP is the socket peer unless
    TRUST_PROXY_HEADERS is set, in which case the first X-Forwarded-For
    entry is used.
    """

    def __init__(
        self,
        app,
        rate_limit: int | None = None,
        window_seconds: int | None = None,
        trust_proxy_headers: bool | None = None,
    ):
        super().__init__(app)
        settings = get_settings()
        self.disabled = settings.rate_limit_disabled
        self.rate_limit = rate_limit if rate_limit is not None else settings.rate_limit_payments
        self.window_seconds = window_seconds if window_seconds is not None else settings.rate_limit_window_seconds
        self.trust_proxy_headers = (
            trust_proxy_headers if trust_proxy_headers is not None else settings.trust_proxy_headers
        )
        self.requests: dict[tuple[str, str], list[float]] = {}
        self.lock = Lock()
        self._last_sweep = 0.0
        self.rate_limited_paths = {
            INITIALIZE_CHARGE_PATH: "POST",
            VERIFY_PAYMENT_PATH: "POST",
        }

    def _get_client_ip(self, request: Request) -> str:
        if self.trust_proxy_headers:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _sweep(self, cutoff: float) -> None:
        """Drop buckets with no request inside the window. Caller holds the lock."""
        stale = [bucket for bucket, times in self.requests.items() if not times or times[-1] <= cutoff]
        for bucket in stale:
            del self.requests[bucket]

    def _is_rate_limited(self, bucket: tuple[str, str]) -> bool:
        """Check if the (ip, path) bucket is over the limit and record the request."""
        current_time = time.time()
        cutoff = current_time - self.window_seconds
        with self.lock:
            if current_time - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = current_time
            recent = [t for t in self.requests.get(bucket, ()) if t > cutoff]
            if len(recent) >= self.rate_limit:
                self.requests[bucket] = recent
                return True
            recent.append(current_time)
            self.requests[bucket] = recent
            return False

    async def dispatch(self, request: Request, call_next):
        if self.disabled:
            return await call_next(request)

        path = request.url.path
        if self.rate_limited_paths.get(path) == request.method:
            client_ip = self._get_client_ip(request)
            if self._is_rate_limited((client_ip, path)):
                logger.warning("Rate limit exceeded for %s on %s", client_ip, path)
                return JSONResponse(
                    status_code=429,
                    content={
                        "success": False,
                        "error": f"Rate limit exceeded. Maximum {self.rate_limit} requests per {self.window_seconds} seconds.",
                    },
                    headers={"Retry-After": str(self.window_seconds)},
                )

        return await call_next(request)


class FunctionCorsMiddleware(BaseHTTPMiddleware):
    """CORS policy for the payment functions.

    Charge initialization accepts any origin. Verification only echoes origins
    from VERIFY_ALLOWED_ORIGINS and answers ``null`` to everyone else.
    """

    allow_methods = "POST, OPTIONS"
    allow_headers = "authorization, x-client-info, apikey, content-type"

    def _allow_origin(self, path: str, origin: str | None) -> str | None:
        if path == INITIALIZE_CHARGE_PATH:
            return "*"
        if path == VERIFY_PAYMENT_PATH:
            if origin and origin in get_settings().verify_allowed_origins:
                return origin
            return "null"
        return None

    def _cors_headers(self, allow_origin: str) -> dict[str, str]:
        headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": self.allow_methods,
            "Access-Control-Allow-Headers": self.allow_headers,
        }
        if allow_origin != "*":
            headers["Vary"] = "Origin"
        return headers

    async def dispatch(self, request: Request, call_next):
        allow_origin = self._allow_origin(request.url.path, request.headers.get("Origin"))
        if allow_origin is None:
            return await call_next(request)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=self._cors_headers(allow_origin))

        response = await call_next(request)
        for name, value in self._cors_headers(allow_origin).items():
            response.headers[name] = value
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # Entitlement answers must never be served from a cache
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
        response.headers["Pragma"] = "no-cache"

        return response


configure_logging()

Base.metadata.create_all(bind=engine)

app = FastAPI(title="KenFlash Subscription Service", version="0.1.0")

# CORS for the record and chat APIs; the payment functions carry their own policy below
# Example: CORS_ORIGINS=https://ken-flash.vercel.app,https://admin.example.com
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Inside the function CORS layer: 429 responses carry CORS headers too
app.add_middleware(RateLimitMiddleware)

app.add_middleware(FunctionCorsMiddleware)

app.add_middleware(SecurityHeadersMiddleware)

app.include_router(functions_router)
app.include_router(subscriptions_router)
app.include_router(chat_router)

@app.get("/")
def read_root():
    return {"message": "KenFlash Subscription Service", "version": "0.1.0"}

@app.get("/healthz")
async def healthz():
    """Health check endpoint that verifies database connectivity."""
    from sqlalchemy import text
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        finally:
            db.close()
    except Exception as e:
        from fastapi import HTTPException, status
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )
