import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .db import db_healthcheck, ensure_tables
from .errors import QRRedirectError, qrredirect_error_handler
from .logging_utils import configure_logging, new_request_id
from .qrcode_redirect import router as redirect_router
from .retry import retry
from .routes_auth import router as auth_router, user_router
from .routes_qr import router as qr_router

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def _log_startup_retry(error: Exception, attempt: int):
    logger.warning("database not ready (attempt %d): %s", attempt, error)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: make sure the schema exists, waiting briefly for the database
    retry(
        ensure_tables,
        max_attempts=5,
        initial_delay=0.5,
        max_delay=4.0,
        should_retry=lambda e: isinstance(e, OperationalError),
        on_retry=_log_startup_retry,
    )
    logger.info("database initialized")
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="QR Redirect API", version=VERSION, lifespan=lifespan)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = new_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(QRRedirectError, qrredirect_error_handler)

    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(qr_router)
    app.include_router(redirect_router)

    @app.get("/health")
    def health_check():
        """Liveness: the process is up."""
        return {"status": "ok", "service": app.title, "version": VERSION}

    @app.get("/api/health/database")
    def database_health():
        ok, response_time_ms, error = db_healthcheck()
        if response_time_ms > 500:
            logger.warning("slow database response: %sms", response_time_ms)
        body = {
            "status": "healthy" if ok else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {
                "database": {"status": "healthy" if ok else "unhealthy", "responseTimeMs": response_time_ms, "error": error}
            },
        }
        return JSONResponse(status_code=200 if ok else 503, content=body, headers={"Cache-Control": "no-store"})

    return app


app = create_app()
