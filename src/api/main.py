"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import documents, health, users
from core.config import get_settings
from services.exceptions import (
    TransactionFailureError,
    VersionLifecycleError,
    VersionNotFoundError,
    VersionPermissionError,
    VersionValidationError,
)

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="Document Versions API",
    description="Versioned documents with a single active version and bounded drafts.",
    version="0.1.0",
)

# Lifecycle errors carry no HTTP knowledge; status codes are assigned here
_STATUS_CODES: dict[type[VersionLifecycleError], int] = {
    VersionNotFoundError: 404,
    VersionPermissionError: 403,
    VersionValidationError: 400,
    TransactionFailureError: 409,
}


@app.exception_handler(VersionLifecycleError)
async def version_lifecycle_exception_handler(
    request: Request, exc: VersionLifecycleError,
) -> JSONResponse:
    """Translate lifecycle errors into JSON error responses."""
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code >= 409:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(users.router)
app.include_router(documents.router)
