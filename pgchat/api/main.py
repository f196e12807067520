"""
FastAPI Application

Main FastAPI application for pgchat with:
- Lifespan management for the tool registry and chat storage
- CORS middleware for the browser client
- Exception handler mapping turn boundary failures to HTTP statuses

Usage:
    uvicorn pgchat.api.main:app --reload --port 8000
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pgchat import __version__
from pgchat.api.routes import chat, chats, health, sql, tools
from pgchat.config import get_settings
from pgchat.conversations import ChatStore
from pgchat.pipeline import TurnError
from pgchat.tools import initialize_tools

logger = logging.getLogger(__name__)

app_state = {
    "chat_store": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for startup and shutdown.

    Initializes:
    - Tool registry (and the optional YAML tool policy)
    - Chat store, when SYSTEM_DATABASE_URL is set
    """
    config = get_settings()
    logger.info("Starting pgchat API server...")

    try:
        initialize_tools(config.tools.policy_path)

        if config.system_database.url:
            logger.info("Initializing chat store...")
            try:
                store = ChatStore()
                await store.initialize()
                app_state["chat_store"] = store
            except Exception as e:
                logger.warning(f"Chat store unavailable: {e}")
                app_state["chat_store"] = None
        else:
            logger.warning("SYSTEM_DATABASE_URL not set; chats will not be persisted.")
            app_state["chat_store"] = None

        logger.info("pgchat API server started successfully")

        yield

    finally:
        logger.info("Shutting down pgchat API server...")
        if app_state["chat_store"]:
            try:
                await app_state["chat_store"].close()
                logger.info("Chat store closed")
            except Exception as e:
                logger.error(f"Error closing chat store: {e}")
            app_state["chat_store"] = None
        logger.info("pgchat API server shut down complete")


app = FastAPI(
    title="pgchat API",
    description="Chat with your PostgreSQL database",
    version=__version__,
    lifespan=lifespan,
)

cors_origins_env = os.getenv("CORS_ORIGINS", "")
cors_origins = (
    [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    if cors_origins_env
    else ["http://localhost:3000", "http://localhost:5005"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TurnError)
async def turn_error_handler(request: Request, exc: TurnError) -> JSONResponse:
    """Map a rejected turn to its HTTP status."""
    logger.info(f"Turn rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "turn_rejected", "message": exc.message},
    )


app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
app.include_router(chats.router, prefix="/api/v1", tags=["chats"])
app.include_router(sql.router, prefix="/api/v1", tags=["sql"])
app.include_router(tools.router, prefix="/api/v1", tags=["tools"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "pgchat API",
        "version": __version__,
        "docs": "/docs",
    }
