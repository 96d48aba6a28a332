"""
Main entry point for the Infosight API server.
"""

import asyncio
import json
import logging
import shutil
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from infosight import __version__
from infosight.api.dependencies import get_engine, limiter, validate_api_keys, verify_api_key
from infosight.api.routes import kpis_router, processing_router, submissions_router
from infosight.api.schemas import HealthCheckResponse, ReadinessCheckResponse
from infosight.api.websocket import feed
from infosight.config import get_config
from infosight.logging_setup import configure_logging
from infosight.worker.publisher import CHANNEL

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config = get_config()
    configure_logging(config)
    logger.info("Starting Infosight API...")

    # Creates directories and tables
    get_engine()

    redis_task = None
    if config.redis_url:
        redis_task = asyncio.create_task(redis_listener(config.redis_url))

    yield

    if redis_task:
        redis_task.cancel()
        try:
            await redis_task
        except asyncio.CancelledError:
            pass
    logger.info("Shutting down Infosight API...")


async def redis_listener(redis_url: str):
    """Subscribe to the status channel and relay updates to WebSocket clients."""
    while True:
        try:
            r = aioredis.Redis.from_url(redis_url)
            pubsub = r.pubsub()
            await pubsub.subscribe(CHANNEL)
            logger.info(f"Redis listener subscribed to {CHANNEL}")
            async for message in pubsub.listen():
                if message["type"] == "message":
                    data = json.loads(message["data"])
                    await feed.relay(data)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Redis listener error: {e}. Reconnecting in 5s...")
            await asyncio.sleep(5)


app = FastAPI(
    title="Infosight API",
    description="Turns video/document submissions into transcripts, key points, KPIs and quotes",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(submissions_router, dependencies=[Depends(verify_api_key)])
app.include_router(processing_router, dependencies=[Depends(verify_api_key)])
app.include_router(kpis_router, dependencies=[Depends(verify_api_key)])


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, submission_id: Optional[List[str]] = Query(None)):
    """Live status feed; answers "ping" with "pong"."""
    await feed.subscribe(websocket, submission_id)
    try:
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await feed.unsubscribe(websocket)


@app.get("/health", response_model=HealthCheckResponse, tags=["General"])
def health_check(engine=Depends(get_engine)):
    """
    Health check endpoint.

    Checks database connectivity and free disk space.
    """
    checks = {
        "api": True,
        "database": False,
        "disk_space": False,
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    # Require at least 1GB free
    try:
        stat = shutil.disk_usage(".")
        checks["disk_space"] = stat.free / (1024 ** 3) > 1.0
    except Exception as e:
        logger.error(f"Disk space check failed: {e}")

    return HealthCheckResponse(
        status="healthy" if all(checks.values()) else "degraded",
        service="infosight",
        checks=checks,
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/ready", response_model=ReadinessCheckResponse, tags=["General"])
def readiness_check():
    """Readiness check: the service can process submissions once API keys are configured."""
    checks = {"api": True}
    api_keys = validate_api_keys()
    checks.update(api_keys)
    missing_keys = [k for k, v in api_keys.items() if not v]

    return ReadinessCheckResponse(
        ready=all(checks.values()),
        checks=checks,
        missing_keys=missing_keys or None,
    )


def run():
    """Run the API server with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "infosight.main:app",
        host=config.api_host,
        port=config.api_port,
        reload=config.debug,
    )


if __name__ == "__main__":
    run()
