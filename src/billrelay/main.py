import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from billrelay.config import settings
from billrelay.api.notices import router as notices_router
from billrelay.api.webhooks import router as webhooks_router
from billrelay.database import engine
from billrelay.integrations.artifact_store import ARTIFACT_URL_PREFIX, LocalArtifactStore
from billrelay.integrations.line_client import LineClient
from billrelay.middleware.request_logging import RequestLoggingMiddleware
from billrelay.services.artifact_cleanup import cleanup_loop

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Configure structlog
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        *(
            [structlog.dev.ConsoleRenderer()]
            if settings.APP_ENV == "development"
            else [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        ),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_LEVELS.get(settings.LOG_LEVEL.lower(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup -- collaborators are created once and only read afterwards
    log.info("starting_up", env=settings.APP_ENV, port=settings.PORT)
    if not settings.CHANNEL_SECRET:
        log.warning("channel_secret_missing")
    app.state.line_client = LineClient()
    app.state.artifact_store = LocalArtifactStore()
    sweep = asyncio.create_task(
        cleanup_loop(
            app.state.artifact_store,
            interval_seconds=settings.CLEANUP_INTERVAL_SECONDS,
            retention_days=settings.QR_RETENTION_DAYS,
        )
    )

    yield

    # Shutdown
    log.info("shutting_down")
    sweep.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweep
    await app.state.line_client.aclose()
    await engine.dispose()


app = FastAPI(
    title="LINE Bill Relay",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "development" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


app.include_router(webhooks_router)
app.include_router(notices_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.error(
        "unhandled_error",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "Something went wrong" if settings.is_production else str(exc),
        },
    )


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "port": settings.PORT,
    }


# Uploaded QR images; the directory is created by LocalArtifactStore at startup
app.mount(
    ARTIFACT_URL_PREFIX,
    StaticFiles(directory=settings.ARTIFACT_DIR, check_dir=False),
    name="artifacts",
)


def run() -> None:
    uvicorn.run("billrelay.main:app", host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
