import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from compliance_api.core.session_store import InMemorySessionStore, SessionStore
from compliance_api.core.settings import Settings, settings
from compliance_api.domains.integrations.xero.client import HttpClientFactory
from compliance_api.domains.integrations.xero.credentials import CredentialStore
from compliance_api.domains.integrations.xero.routes import router as xero_router
from compliance_api.domains.integrations.xero.session import XeroSessionRegistry
from compliance_api.shared.responses import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    configured = app.state.xero_sessions.credential_store.is_configured()
    logger.info(f"Compliance Hub API starting, Xero credentials configured: {configured}")
    yield
    # Shutdown
    logger.info("Compliance Hub API stopped")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render every HTTPException as the error envelope."""
    body = ErrorResponse(
        message=str(exc.detail),
        error=getattr(exc, "error_code", None),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=getattr(exc, "headers", None),
    )


def create_app(
    app_settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
    http_client_factory: HttpClientFactory = httpx.AsyncClient,
) -> FastAPI:
    app_settings = app_settings or settings
    logging.basicConfig(
        level=app_settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Compliance Hub API",
        description="Xero connection lifecycle and financial data for compliance",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.xero_sessions = XeroSessionRegistry(
        app_settings,
        CredentialStore.from_settings(app_settings),
        session_store or InMemorySessionStore(),
        http_client_factory=http_client_factory,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[app_settings.FRONTEND_URL] if app_settings.FRONTEND_URL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)

    # Include routers
    app.include_router(xero_router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"message": "Compliance Hub API is running"}

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
