"""LeaseGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from leasegate.api import router
from leasegate.api.schemas import MetricsResponse
from leasegate.config import settings
from leasegate.engine.orchestrator import Orchestrator
from leasegate.observability.metrics import metrics

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("leasegate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting LeaseGate server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Soroban RPC: {settings.rpc_url}")

    # Tests install their own orchestrator before startup.
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = Orchestrator.from_settings()
        app.state.orchestrator = orchestrator

    await orchestrator.start()
    logger.info("Health monitor started")

    yield

    # Cleanup
    logger.info("Shutting down LeaseGate server...")
    await orchestrator.stop()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="LeaseGate",
    description="Lease and deployment orchestrator for a ledger-backed compute marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

# Include API router
app.include_router(router)


@app.get("/v1/metrics", response_model=MetricsResponse)
async def get_metrics():
    """Snapshot of in-process counters, gauges and histograms."""
    return metrics.snapshot()


def main():
    """Entry point for the application."""
    uvicorn.run(
        "leasegate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
