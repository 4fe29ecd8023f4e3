"""
FastAPI application hosting the relay engine.
Exposes liveness, engine health and Prometheus metrics; event delivery
to clients goes through the engine's broadcaster.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from chatbridge import __version__
from chatbridge.core.config import get_settings
from chatbridge.engine import BridgeEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("chatbridge.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Application startup...")
    settings = get_settings()
    app.state.settings = settings
    logging.getLogger("chatbridge").setLevel(settings.LOG_LEVEL)

    engine = getattr(app.state, "engine", None)
    if engine is None:
        engine = BridgeEngine.from_settings(settings)
        app.state.engine = engine
    await engine.start()

    yield

    # Shutdown
    logger.info("Application shutdown...")
    await app.state.engine.stop()


app = FastAPI(
    title="chatbridge",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/healthcheck")
async def healthcheck():
    return {"status": "healthy"}


@app.get("/health")
async def health(request: Request):
    """
    Engine health: watermarks, pin cache and loop state.

    Reports "initializing" until the change detector has a store baseline.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {"status": "initializing", "timestamp": int(time.time())}

    status = engine.status()
    detector = status["change_detector"]
    ready = (
        detector["message_watermark"] is not None
        and detector["tapback_watermark"] is not None
    )
    return {
        "status": "healthy" if ready and status["running"] else "initializing",
        "timestamp": int(time.time()),
        "engine": status,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "chatbridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
