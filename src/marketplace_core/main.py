"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketplace_core.api.routes import router as core_router
from marketplace_core.bootstrap import build_services
from marketplace_core.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    services = getattr(app.state, "services", None) or build_services(settings)
    app.state.services = services
    services.start()
    yield
    logger.info("Shutting down %s …", settings.app_name)
    await services.stop()


app = FastAPI(
    title=settings.app_name,
    description="Phone verification and upload lifecycle for the marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(core_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


def run() -> None:
    """Serve the API with uvicorn (``marketplace-core`` console script)."""
    import uvicorn

    uvicorn.run(
        "marketplace_core.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
