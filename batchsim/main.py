"""Parallel batch submission simulator - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from batchsim.config import settings
from batchsim.api.v1.router import v1_router
from batchsim.api.v1.health import router as health_root_router
from batchsim.api.v1 import batch as batch_api
from batchsim.jobs.coordinator import LifecycleCoordinator
from batchsim.jobs.runner import JobRunner
from batchsim.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    configure_logging(settings)
    logger.info(
        "service.starting",
        port=settings.service_port,
        concurrency=settings.default_concurrency,
        latency_seconds=(settings.latency_min_seconds, settings.latency_max_seconds),
        failure_rate=settings.failure_rate,
    )

    coordinator = LifecycleCoordinator(
        runner=JobRunner.from_settings(settings),
        concurrency=settings.default_concurrency,
        auto_collect=settings.auto_collect,
    )
    batch_api.set_coordinator(coordinator)

    yield

    logger.info("service.stopping")
    await coordinator.stop()
    batch_api.set_coordinator(None)


app = FastAPI(
    title="Batch Submission Simulator",
    description="Pairs prompts with reference sets and simulates bounded-concurrency submission",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
