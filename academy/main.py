"""Main FastAPI application entry point.

Builds the application from explicit ``Settings``: CORS, the uniform error
envelope, the database handle, auth services and all routers.
"""

import logging
import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from academy.auth.security import PasswordHasher, TokenService
from academy.config import Settings
from academy.db.config import Database
from academy.routers import auth, courses, health, livestream, users

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "Live Academy API"
DESCRIPTION = """
Live Academy Backend API

## Features

* **Accounts**: phone-number registration, login and role management
* **Catalog**: courses, chapters and purchases
* **Live sessions**: Zoom / Google Meet sessions linked to courses, with
  derived `not_started` / `active` / `ended` status
* **Health**: liveness and readiness probes
"""

_ROOT_DIR = os.path.join(os.path.dirname(__file__), "..")


def _error_body(request, message) -> dict:
    return {
        "success": False,
        "error": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": str(request.url),
    }


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "missing":
        return f"{field} is required" if field else "Missing required fields"
    message = str(first.get("msg", "Invalid input"))
    message = message.removeprefix("Value error, ")
    return f"{field}: {message}" if field and first.get("type") != "value_error" else message


def run_migrations() -> None:
    logger.info("AUTO_MIGRATE enabled: running 'alembic upgrade head'")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=_ROOT_DIR,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        logger.error("Alembic not found - ensure it's installed in the environment")
        return
    if result.returncode != 0:
        logger.error(
            "Alembic upgrade failed (code %s): %s\n%s",
            result.returncode,
            result.stdout,
            result.stderr,
        )
    else:
        logger.info("Alembic migration applied successfully")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {APP_NAME} v{settings.version}")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"CORS Origins: {settings.cors_origins}")
        if settings.auto_migrate:
            run_migrations()
        yield
        logger.info(f"Shutting down {APP_NAME}")
        await app.state.database.dispose()

    app = FastAPI(
        title=APP_NAME,
        description=DESCRIPTION,
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = Database(settings)
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.token_service = TokenService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        """Handle HTTP exceptions with consistent error format"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        """Malformed or missing payload fields are a 400, not a 422"""
        return JSONResponse(
            status_code=400,
            content=_error_body(request, _validation_message(exc)),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        """Handle general exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "Internal server error"),
        )

    # Include routers
    app.include_router(health.router, prefix="/api/v1", tags=["Health"])
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(courses.router, prefix="/api/v1")
    app.include_router(livestream.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information"""
        return {
            "name": APP_NAME,
            "version": settings.version,
            "status": "running",
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "academy.main:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )
