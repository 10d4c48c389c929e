"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import AsyncGenerator

import asyncpg
import redis.asyncio as redis
from fastapi import Depends, Request

from app.config import settings
from app.db.queries import PatientStore
from app.services.cache_service import CacheStore
from app.services.patient_service import PatientService


async def get_db_pool(request: Request) -> asyncpg.Pool:
    return request.app.state.db_pool


async def get_redis(request: Request) -> AsyncGenerator[redis.Redis, None]:
    r: redis.Redis = request.app.state.redis
    yield r


async def get_patient_service(
    pool: asyncpg.Pool = Depends(get_db_pool),
    r: redis.Redis = Depends(get_redis),
) -> PatientService:
    return PatientService(
        PatientStore(pool),
        CacheStore(r),
        ttl_seconds=settings.PATIENT_CACHE_TTL_SECONDS,
        online_ttl_seconds=settings.ONLINE_STATUS_TTL_SECONDS,
    )
