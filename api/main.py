"""FastAPI application entry point with lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import SESSION_HEADER, SessionPool
from notebook.auth import load_verifier
from notebook.config import AppConfig
from notebook.logger import setup_logger
from notebook.state import build_answer_engine, build_registry

setup_logger("api")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle.

    Startup:
        1. Initialize AppConfig singleton (paths, engine settings).
        2. Load the shared document registry from the data directory.
        3. Store the registry and the session pool on app.state.
    """
    logger.info("Starting Secure Notebook API...")

    config = AppConfig.get()
    logger.info("Config loaded: data_dir=%s", config.paths.data_dir)

    registry = build_registry(config)
    app.state.config = config
    app.state.registry = registry
    app.state.sessions = SessionPool(
        registry,
        build_answer_engine(config),
        load_verifier(),
        max_sessions=config.sessions.max_sessions,
        idle_seconds=config.sessions.idle_seconds,
    )

    logger.info("Startup complete: documents=%d", len(registry.list()))

    yield  # --- Application runs ---

    logger.info("Shutting down Secure Notebook API.")


app = FastAPI(
    title="Secure Notebook API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[SESSION_HEADER],
)

from api.routes.chat import router as chat_router
from api.routes.documents import router as documents_router

app.include_router(chat_router)
app.include_router(documents_router)


# --- Health check (validates lifespan worked) ---

@app.get("/api/v1/health")
async def health():
    """Report the loaded workspace and active sessions."""
    return {
        "status": "ok",
        "documents": len(app.state.registry.list()),
        "folders": len(app.state.registry.folders()),
        "sessions": len(app.state.sessions),
        "model": app.state.config.engine.model,
    }
