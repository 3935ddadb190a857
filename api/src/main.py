import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager

from api.src.routes import health_router, runs_router, webhooks_router
from controller.src.config import get_settings as get_controller_settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=getattr(logging, get_controller_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting flowgate API")
    yield
    # Shutdown
    logger.info("Shutting down flowgate API")

app = FastAPI(
    title="flowgate",
    description="Declarative CI workflow runner",
    version="0.1.0",
    lifespan=lifespan
)

# Include routers
app.include_router(health_router)
app.include_router(runs_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "flowgate",
        "version": "0.1.0",
        "docs": "/docs"
    }
