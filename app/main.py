"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.disease_history import router as disease_history_router
from app.api.errors import register_error_handlers
from app.api.patients import router as patients_router
from app.config import settings
from app.db.connection import close_pool, create_pool
from app.db.queries import init_schema

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    pool = await create_pool()
    await init_schema(pool)
    app.state.db_pool = pool
    app.state.redis = redis.from_url(settings.REDIS_URL, decode_responses=True)
    yield
    # Shutdown
    await app.state.redis.aclose()
    await close_pool()


app = FastAPI(
    title="Patient Management",
    description="Patient records and disease history behind a Redis cache-aside layer",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(patients_router)
app.include_router(disease_history_router)
