import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from aiexpense import __version__
from aiexpense.config import settings
from aiexpense.container import build_container
from aiexpense.database import async_session, init_db
from aiexpense.routers import ai_cost, messages, pricing


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database and run the cost meter worker for the app's lifetime."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()

    http_client = httpx.AsyncClient()
    container = build_container(async_session, http_client=http_client)
    app.state.container = container
    container.cost_meter.start()

    yield

    # Flush pending cost logs before shutting down
    await container.cost_meter.stop()
    await http_client.aclose()


app = FastAPI(
    title="aiexpense",
    description="Expense ingestion with AI parsing, currency normalization and AI cost metering",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(messages.router, tags=["expenses"])
app.include_router(pricing.router, tags=["pricing"])
app.include_router(ai_cost.router, tags=["ai-cost"])


@app.get("/health")
async def health_check(request: Request):
    """Health check with cost meter status."""
    container = getattr(request.app.state, "container", None)
    cost_meter_running = bool(container and container.cost_meter.running)
    return {
        "status": "healthy",
        "service": "aiexpense",
        "version": __version__,
        "ai_provider": getattr(container.ai_service, "provider", None) if container else None,
        "cost_meter": "running" if cost_meter_running else "stopped",
    }
