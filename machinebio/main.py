from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from machinebio.core.cache import TTLCache
from machinebio.core.environment import get_nhtsa_base_url, get_nhtsa_cache_ttl_seconds
from machinebio.core.logging import setup_logging
from machinebio.exceptions import register_exception_handlers
from machinebio.middleware.rate_limit import limiter, custom_rate_limit_exceeded
from machinebio.routers import (
    admin,
    auth,
    cars,
    catalog,
    health,
    leaderboards,
    metrics,
    nhtsa,
    performance,
    spots,
)
from machinebio.services.nhtsa import NhtsaClient

setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient(timeout=10.0) as http:
        app.state.nhtsa_client = NhtsaClient(
            http=http,
            cache=TTLCache(ttl_seconds=get_nhtsa_cache_ttl_seconds()),
            base_url=get_nhtsa_base_url(),
        )
        logger.info("MachineBio API started")
        try:
            yield
        finally:
            app.state.nhtsa_client = None


def create_app() -> FastAPI:
    app = FastAPI(title="MachineBio API", lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],   # Allows POST, GET, OPTIONS, etc
        allow_headers=["*"],
    )

    for module in (health, auth, cars, catalog, leaderboards, performance, spots, nhtsa, admin, metrics):
        app.include_router(module.router)

    return app


app = create_app()
