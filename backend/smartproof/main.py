"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartproof.api.v1 import workflows
from smartproof.core.config import settings
from smartproof.core.logging import get_logger, setup_logging
from smartproof.stages.factory import init_state_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else settings.LOG_LEVEL)
    logger = get_logger("startup")
    logger.info(
        "Application starting",
        env=settings.APP_ENV,
        state_backend=settings.STATE_BACKEND,
    )
    await init_state_store()
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="SmartProof Compliance API",
    description="Document compliance workflow: extraction, analysis, rule checks and reporting",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = "/api/v1"
app.include_router(workflows.router, prefix=API_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Public health-check endpoint."""
    return {"status": "ok", "env": settings.APP_ENV}
