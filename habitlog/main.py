from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from habitlog.context import AppContext
from habitlog.core.config import settings
from habitlog.core.logging_config import setup_logging
from habitlog.routers import habits as habits_router
from habitlog.routers import jobs as jobs_router
from habitlog.routers import logs as logs_router
from habitlog.routers import statistics as statistics_router
from habitlog.core.errors import (
    HabitLogException,
    habitlog_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = setup_logging()
    # Tests install their own context before startup.
    owned = getattr(app.state, "context", None) is None
    if owned:
        app.state.context = AppContext.create()
    logger.info("habitlog started (env=%s)", settings.APP_ENV)
    try:
        yield
    finally:
        if owned:
            app.state.context.close()
            app.state.context = None


app = FastAPI(
    title="Habit Log API",
    description=(
        "**Habit tracking engine**\n\n"
        "Dense per-day habit log windows, live change subscriptions, "
        "optimistic log edits and server-side statistics.\n\n"
        "Callers identify themselves with the `X-User-Id` header. "
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
app.add_exception_handler(HabitLogException, habitlog_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(habits_router.router)
app.include_router(logs_router.router)
app.include_router(statistics_router.router)
app.include_router(jobs_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health():
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    """
    ctx: AppContext = app.state.context
    try:
        with ctx.backend.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": ctx.config.APP_ENV}
