import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter

from .api.routes import session, upload
from .config import CLEANUP_INTERVAL_SECONDS, CORS_ORIGINS, LOG_LEVEL, REDIS_URL
from .services.session_registry import SessionRegistry, run_periodic_sweep

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_instance = redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
    await FastAPILimiter.init(redis_instance)

    sweeper = asyncio.create_task(
        run_periodic_sweep(app.state.session_registry, CLEANUP_INTERVAL_SECONDS)
    )
    logger.info(f"Session sweep running every {CLEANUP_INTERVAL_SECONDS}s")
    yield
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await redis_instance.aclose()

def create_app(registry: Optional[SessionRegistry] = None):
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(lifespan=lifespan)
    app.state.session_registry = registry if registry is not None else SessionRegistry()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(session.router)
    app.include_router(upload.router)

    return app

app = create_app()
