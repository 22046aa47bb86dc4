"""Carebot HTTP host -- serves assistant conversations at localhost:8430.

FastAPI application exposing the conversation API (create, talk, attach,
stream, dispose) plus liveness and self-monitoring endpoints.
"""

from __future__ import annotations

import os
import platform
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carebot import __version__
from carebot.log import logger
from carebot.routes import error_response

_start_time: float = time.time()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

def _on_startup() -> None:
    global _start_time
    _start_time = time.time()

    from carebot.state import ConversationRegistry
    ConversationRegistry.get()
    logger.info("Carebot host started (pid %d)", os.getpid())


def _on_shutdown() -> None:
    """Dispose every open conversation so no reply timer outlives the loop."""
    try:
        from carebot.state import ConversationRegistry
        open_count = len(ConversationRegistry.get())
        ConversationRegistry.get().dispose_all()
        logger.info("Carebot host stopped, disposed %d conversation(s)", open_count)
    except Exception:
        logger.warning("Failed to dispose conversations on shutdown", exc_info=True)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    _on_startup()
    yield
    _on_shutdown()


# ---------------------------------------------------------------------------
# App creation + router mounting
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Carebot",
    description="Hospital portal assistant -- symptom triage, quick replies, human handoff",
    version=__version__,
    lifespan=_lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8430",
        "http://127.0.0.1:8430",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

from carebot.routes.chat import router as chat_router

app.include_router(chat_router)


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return structured JSON instead of HTML 500."""
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return error_response(500, "Internal server error")


@app.exception_handler(404)
async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(404, "Not found", f"{request.url.path} does not exist")


# ---------------------------------------------------------------------------
# Core endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/status")
def status() -> dict:
    from carebot.state import ConversationRegistry
    return {
        "agent": "carebot",
        "version": __version__,
        "hostname": platform.node(),
        "platform": platform.system(),
        "python_version": platform.python_version(),
        "open_conversations": len(ConversationRegistry.get()),
        "uptime_seconds": round(time.time() - _start_time, 1),
    }


@app.get("/metrics/self")
def metrics_self() -> dict:
    """Report the host's own resource footprint."""
    import psutil

    proc = psutil.Process(os.getpid())
    with proc.oneshot():
        mem = proc.memory_info()
        try:
            cpu = proc.cpu_percent(interval=0.1)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            cpu = 0.0
        threads = proc.num_threads()
        create_time = proc.create_time()

    return {
        "pid": os.getpid(),
        "cpu_percent": round(cpu, 1),
        "memory_rss_mb": round(mem.rss / (1024 * 1024), 1),
        "memory_vms_mb": round(mem.vms / (1024 * 1024), 1),
        "threads": threads,
        "uptime_seconds": round(time.time() - _start_time, 1),
        "create_time": create_time,
    }
