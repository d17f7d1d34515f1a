"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from otp_auth.api.router import router as auth_router
from otp_auth.config import settings
from otp_auth.database.engine import init_db
from otp_auth.errors import register_error_handlers

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
# aiosmtplib logs raw message data at DEBUG, passcodes included.
logging.getLogger("aiosmtplib").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    logger.info("Starting %s (app url %s) …", settings.app_name, settings.app_url)
    await init_db()
    logger.info("Database ready")
    yield
    logger.info("Shutting down %s …", settings.app_name)


def create_app() -> FastAPI:
    """Build the API: passcode auth routes, error handlers and a health check."""
    application = FastAPI(
        title=settings.app_name,
        description="Passwordless login and email verification with one-time passcodes",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_error_handlers(application)
    application.include_router(auth_router)

    @application.get("/health")
    async def health_check():
        """Simple liveness check."""
        return {"status": "healthy", "app": settings.app_name}

    return application


app = create_app()
