"""
FastAPI application serving the OAuth2 authorization code grant.

This module wires dependencies and configures the application.
Grant logic is in grantflow/core, adapters in grantflow/infrastructure.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

# Configure logging FIRST, before other local imports
from grantflow.logging_config import setup_global_logging

setup_global_logging()

# Now import other modules (they will use the configured logging)
from fastapi import FastAPI, Request, status  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from grantflow.core.exceptions import GrantFlowError  # noqa: E402
from grantflow.oauth import router as oauth_router  # noqa: E402
from grantflow.oauth.config import get_grant_config  # noqa: E402
from grantflow.oauth.router import NO_STORE_HEADERS  # noqa: E402

logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Validates configuration on startup and releases the Firestore client
    on shutdown.
    """
    config = get_grant_config()
    config.validate()
    logger.info(f"Application starting up ({config.storage_backend} storage)...")
    yield
    logger.info("Shutting down application...")
    if config.using_firestore:
        try:
            from grantflow.infrastructure.firestore import close_firestore_client

            close_firestore_client()
        except Exception as e:
            logger.warning(f"Error closing Firestore client during shutdown: {e}")


app = FastAPI(
    title="grantflow",
    description="OAuth2 authorization code grant service",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# Centralized Exception Handlers
# ============================================================================


@app.exception_handler(GrantFlowError)
async def grant_flow_error_handler(request: Request, exc: GrantFlowError):
    """
    Render grant errors as RFC 6749 error responses.

    The error code identifies the kind; the description is human-readable.
    Failed client authentication answers 401 with a Basic challenge.
    """
    logger.warning(
        f"Grant error {type(exc).__name__}: {exc}",
        extra={"error_code": exc.error_code, "path": request.url.path},
    )

    headers = dict(NO_STORE_HEADERS)
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = 'Basic realm="oauth"'

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "error_description": str(exc),
        },
        headers=headers,
    )


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "grantflow",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/health")
async def health():
    """Health check endpoint for Cloud Run."""
    return {"status": "healthy"}


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(oauth_router.router)


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
