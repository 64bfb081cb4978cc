import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

import backend.app.models.registry  # noqa: F401
from backend.app.api.v1.api import api_router
from backend.app.core.config import settings
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging_config import configure_logging
from backend.app.middleware.request_id import RequestIDMiddleware
from backend.app.middleware.security import SecurityHeadersMiddleware

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Time Capsule API")

# ─── CORS: restrict to configured origins ────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# ─── Custom middleware (outermost executes first) ─────────────────────────────
# Session cookie carries the pending 2FA enrollment secret
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie="tc_session",
    max_age=settings.SESSION_MAX_AGE_SECONDS,
    same_site="lax",
    https_only=settings.is_production,
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Server error", "code": "SERVER_ERROR"},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
