from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy import text

from app.core.clock import Clock, utc_now
from app.core.config import Settings, settings as default_settings, validate_settings
from app.core.logging import setup_logging
from app.db.base import build_engine, build_session_factory
from app.dependencies import build_services, get_db
from app.routers import activities as activities_router
from app.routers import triggers as triggers_router
from app.routers import users as users_router
from app.core.errors import (
    LedgerException,
    ledger_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Build the API. Storage is wired in the lifespan: a caller-supplied
    session factory is used as-is, otherwise one is built from DATABASE_URL.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        problem = validate_settings(settings)
        if problem is not None:
            raise problem
        setup_logging(settings)

        engine = None
        factory = session_factory
        if factory is None:
            engine = build_engine(settings.DATABASE_URL, settings.DB_ISOLATION_LEVEL or None)
            factory = build_session_factory(engine)
        app.state.services = build_services(settings, factory, clock=clock)
        logger.info("app_started", env=settings.APP_ENV)
        try:
            yield
        finally:
            if engine is not None:
                engine.dispose()

    app = FastAPI(
        title="Marathon Ledger API",
        description=(
            "**Activity ledger and daily rotation engine**\n\n"
            "Tracks per-user habits with a daily streak counter, rotates each "
            "user's counters at their chosen UTC hour and reports users whose "
            "activities have stalled.\n\n"
            "All error responses follow the `{code, message, details}` envelope."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers (most specific first) ---
    app.add_exception_handler(LedgerException, ledger_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --- Routers ---
    app.include_router(users_router.router)
    app.include_router(activities_router.router)
    app.include_router(triggers_router.router)

    @app.get("/health", tags=["health"], summary="Health check")
    def health(db: Session = Depends(get_db)):
        """
        Returns `{"status": "ok", "db": "ok"}` when both the API and the database
        are reachable. Returns HTTP 503 if the DB is down.
        """
        try:
            db.execute(text("SELECT 1"))
            db_status = "ok"
        except Exception:
            logger.exception("health_db_unreachable")
            db_status = "unreachable"

        if db_status != "ok":
            return JSONResponse(
                status_code=503,
                content={"status": "error", "db": db_status},
            )
        return {"status": "ok", "db": "ok", "env": settings.APP_ENV}

    return app


app = create_app()
