import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from moodsync.core.config import settings
from moodsync.core.errors import (
    MoodSyncException,
    moodsync_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from moodsync.db.base import create_local_schema, engine, get_session_factory
from moodsync.routers import entries as entries_router
from moodsync.routers import insights as insights_router
from moodsync.routers import journal as journal_router
from moodsync.routers import memory as memory_router
from moodsync.routers import profile as profile_router
from moodsync.services.memory import CompressionScheduler
from moodsync.services.remote_store import build_remote_store
from moodsync.services.summarizer import build_text_client

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_local_schema(engine)
    app.state.remote_store = build_remote_store(settings)
    app.state.text_client = build_text_client(settings)
    app.state.scheduler = CompressionScheduler(
        app.state.text_client,
        journal_threshold=settings.COMPRESS_JOURNAL_THRESHOLD,
        mood_threshold=settings.COMPRESS_MOOD_THRESHOLD,
        refresh_interval=timedelta(hours=settings.COMPRESS_REFRESH_HOURS),
    )
    logger.info("moodsync started (env=%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="MoodSync API",
    description=(
        "**Mood & journal context engine**\n\n"
        "Keeps mood entries, journal sessions, profile and memory in sync between "
        "the on-device store and the cloud store, maintains a long-term memory "
        "summary that never overwrites user edits, and builds token-bounded mood "
        "summaries for prompt builders.\n\n"
        "Send `X-User-Id` to enable cloud sync for that user.\n\n"
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
app.add_exception_handler(MoodSyncException, moodsync_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(entries_router.router)
app.include_router(journal_router.router)
app.include_router(memory_router.router)
app.include_router(profile_router.router)
app.include_router(insights_router.router)


@app.get("/health", tags=["health"], summary="Health check")
async def health():
    """
    Returns `{"status": "ok", "db": "ok"}` when the local store is reachable,
    HTTP 503 otherwise. `remote` reports whether cloud sync is configured.
    """
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception:
        logger.exception("local store health check failed")
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    remote = getattr(app.state, "remote_store", None) is not None
    return {"status": "ok", "db": "ok", "remote": remote, "env": settings.APP_ENV}
