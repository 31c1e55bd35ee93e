import os
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from .auth_middleware import WorkerAuthMiddleware
from .pipeline import pipeline_router
from .pipeline.client import API_BASE_URL
from . import metrics

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Pipeline worker starting up (services at {API_BASE_URL})")
    yield
    logger.info("Pipeline worker shutting down...")


app = FastAPI(lifespan=lifespan)
app.add_middleware(WorkerAuthMiddleware)
app.include_router(pipeline_router)


@app.get("/health")
def health_check():
    """Verify worker is running and env vars are configured."""
    return {
        "status": "ok",
        "api_base_url": API_BASE_URL,
        "worker_secret_set": bool(os.environ.get("WORKER_SHARED_SECRET")),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return call, stage and run metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("WORKER_PORT", "8080")))
