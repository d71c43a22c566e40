"""FastAPI entrypoint for the cluster machine service."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from server.settings import settings
from server.observability import attach_instrumentation, init_logging
from server.app.routers import machines as machines_router

app = FastAPI(title="Cluster Machine API", version="0.1.0")

# ---- Rate limiting ----
_rate_limit = (
    f"{settings.RATE_LIMIT_REQUESTS}/{settings.RATE_LIMIT_WINDOW_SECONDS} seconds"
)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_rate_limit],
)
app.state.limiter = limiter


@app.middleware("http")
async def _apply_limits(request: Request, call_next):
    """Apply global request rate limits."""
    try:
        return await limiter.limit(_rate_limit)(call_next)(request)
    except RateLimitExceeded:  # pragma: no cover - depends on request volume
        return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


@app.exception_handler(RequestValidationError)
async def _validation_as_bad_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), not 422."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


init_logging(settings.LOG_LEVEL)
attach_instrumentation(app)

# Configure CORS differently for production vs development.
def _resolve_cors_origins() -> list[str]:
    if settings.ENVIRONMENT != "production":
        return ["*"]
    if not settings.ALLOWED_CORS_ORIGINS:
        raise RuntimeError(
            "ALLOWED_ORIGINS must be set when ENVIRONMENT=production"
        )
    return settings.ALLOWED_CORS_ORIGINS


app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.get("/health", tags=["ops"])
def health() -> dict[str, object]:
    """Simple readiness probe."""
    return {
        "status": "ok",
        "store": "json" if settings.MACHINE_STORE_PATH else "memory",
        "action_workers": settings.ACTION_MAX_WORKERS,
    }


app.include_router(machines_router.router)

__all__ = ["app"]
