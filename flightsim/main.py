# flightsim/main.py
"""
Flight Scenario Engine - Main Application

Runs pilot-training scenarios: a simulated aircraft, a timed decision tree
whose branches can be generated on demand, scheduled radio traffic, and
performance scoring.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from . import __version__
from .api import ROUTERS
from .api.envelope import register_exception_handlers
from .db.engine import check_connection, init_db
from .logging import get_logger
from .settings import settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Creates the schema and checks the database on startup.
    """
    logger.info("service_starting", version=__version__)

    if not check_connection():
        logger.warning("database_unavailable")
    else:
        init_db()
        logger.info("database_ready")

    yield

    logger.info("service_stopping")


app = FastAPI(
    title="Flight Scenario Engine",
    description="""
    Pilot-training scenario engine.

    Key features:
    - Per-second aircraft parameter simulation
    - Decision trees with model-generated branches
    - Scored decision impacts and post-flight evaluation
    - Scheduled ATC and crew communications
    - Difficulty adaptation from recent performance
    """,
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add basic security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Server"] = "Flight Scenario Engine"
        return response


app.add_middleware(SecurityHeadersMiddleware)

register_exception_handlers(app)

for router in ROUTERS:
    app.include_router(router)


@app.get("/health")
async def health_check():
    """Basic health check."""
    return {"success": True, "data": {"status": "ok", "service": "flight-scenario-engine"}}


@app.get("/health/db")
async def db_health_check():
    """Database health check."""
    if check_connection():
        return {"success": True, "data": {"status": "ok", "database": "connected"}}
    raise HTTPException(status_code=503, detail="Database connection failed")


def run():
    """Run the server (entry point for CLI)."""
    import uvicorn
    uvicorn.run(
        "flightsim.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
