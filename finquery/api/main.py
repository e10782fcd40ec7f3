"""
FinQuery FastAPI Application.

This module provides the REST API layer for FinQuery.
All business logic is delegated to the assistant; no provider or query logic here.

Endpoints:
- POST /query - Structured query over expenses or investments
- POST /chat - Free-text advisory answer
- POST /cards/benefits - Credit card reward rules via web search
- GET /metadata/{mode} - Metadata descriptor for a mode
- GET /session, DELETE /session - Inspect / reset the query session
- GET /health - Health check
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from configs import ConfigurationError, validate_configuration
from finquery import __version__

from .deps import logger, reset_assistant
from .routers import query, system


# ============================================================
# APP LIFECYCLE
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        settings = validate_configuration()
        logger.info("FinQuery API started. Providers: %s", ", ".join(settings.configured_providers()))
    except ConfigurationError as e:
        # Start anyway; /query and /chat report 503 until keys are configured
        logger.warning("FinQuery API started with configuration problems:%s", e)
    yield
    reset_assistant()
    logger.info("FinQuery API shutting down.")


# ============================================================
# FASTAPI APP
# ============================================================

app = FastAPI(
    title="FinQuery API",
    description="Natural-language questions over personal finance data",
    version=__version__,
    lifespan=lifespan,
)

# CORS for frontend - configurable via environment
allowed_origins = os.getenv("ALLOWED_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(query.router)


# ============================================================
# RUN DIRECTLY (for development)
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
