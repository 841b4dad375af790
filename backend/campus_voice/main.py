from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from campus_voice.adapters.contracts import PortalBackend
from campus_voice.adapters.factory import build_backend
from campus_voice.api.routes import admin, auth, health, live, tickets
from campus_voice.core.config import settings
from campus_voice.core.exceptions import PortalError
from campus_voice.core.logging import configure_logging, get_logger
from campus_voice.services.tickets.upvotes import InFlightGuard

logger = get_logger(__name__)


def create_app(backend: Optional[PortalBackend] = None) -> FastAPI:
    """Build the API. `backend` overrides the adapters chosen by settings.BACKEND."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app.state.backend = backend or await build_backend(settings)
        app.state.upvote_guard = InFlightGuard()
        logger.info(f"{settings.PROJECT_NAME} is starting up ({app.state.backend.name} backend)...")
        try:
            yield
        finally:
            logger.info(f"{settings.PROJECT_NAME} is shutting down...")
            await app.state.backend.aclose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    if settings.BACKEND == "sql" and backend is None:
        # Local blob storage serves uploaded images itself
        app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    # CORS configuration
    allowed_origins = ["http://localhost:5173", "http://localhost:8080", "http://localhost:3000"]
    if settings.ALLOWED_ORIGINS and settings.ALLOWED_ORIGINS != "*":
        allowed_origins = [origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",")] + allowed_origins
    elif settings.ALLOWED_ORIGINS == "*":
        allowed_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    # Include routers
    app.include_router(health, tags=["Health"])
    app.include_router(health, prefix=settings.API_V1_STR, tags=["Health"], include_in_schema=False)
    app.include_router(auth, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
    app.include_router(tickets, prefix=f"{settings.API_V1_STR}/tickets", tags=["Tickets"])
    app.include_router(live, prefix=f"{settings.API_V1_STR}/tickets", tags=["Tickets"])
    app.include_router(admin, prefix=f"{settings.API_V1_STR}/admin", tags=["Admin"])

    return app


app = create_app()
