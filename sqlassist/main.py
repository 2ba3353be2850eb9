"""FastAPI application entry point: wires everything together.

Usage:
    python -m sqlassist.main

Serves the WebSocket gateway, the session-establishing HTTP routes and a
health check.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from sqlassist.channels.gateway import router as gateway_router
from sqlassist.channels.http import router as http_router
from sqlassist.config import settings
from sqlassist.db.engine import db_lifespan
from sqlassist.llm.client import generation_client
from sqlassist.security.middleware import SessionMiddleware

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting SQL assistant (env=%s)", settings.environment)

    async with db_lifespan():
        logger.info("Database initialized")

        missing = generation_client.missing_credentials()
        if missing:
            logger.warning(
                "No generation credential for mode(s): %s; those requests will fail",
                ", ".join(mode.value for mode in missing),
            )

        try:
            yield
        finally:
            logger.info("Shutting down SQL assistant...")
            await generation_client.close()
            logger.info("Generation client closed")

    logger.info("SQL assistant shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="SQL Assistant API",
    description="Natural-language-to-SQL assistant with a session-bound WebSocket gateway",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(SessionMiddleware)
app.include_router(http_router)
app.include_router(gateway_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "sqlassist.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
