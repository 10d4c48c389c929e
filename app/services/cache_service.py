"""Redis-backed cache store and the key namespace used for patient records."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.errors import CorruptCacheEntry, StoreUnavailable

PATIENT_LIST_REGISTRY = "patientListKeys"
DISEASE_HISTORY_LIST_REGISTRY = "diseaseHistoryListKeys"


# ── Key namespace ────────────────────────────────────────────────────────────


def _part(value: str | None) -> str:
    # Escaped so that distinct components never join into the same key.
    return (value or "").replace("\\", "\\\\").replace(":", "\\:")


def patient_key(patient_id: str) -> str:
    return f"patient:{_part(patient_id)}"


def patient_list_key(id_filter: str | None = None, phone_filter: str | None = None) -> str:
    return f"patients:{_part(id_filter)}:{_part(phone_filter)}"


def online_status_key(patient_id: str) -> str:
    return f"onlineStatus:{_part(patient_id)}"


def disease_history_key(patient_id: str, history_id: str) -> str:
    return f"diseaseHistory:{_part(patient_id)}:{_part(history_id)}"


def disease_history_list_key(history_id: str | None = None, patient_id: str | None = None) -> str:
    return f"diseaseHistory:{_part(history_id)}:{_part(patient_id)}"


def pending_tests_key(patient_id: str) -> str:
    return f"pendingTests:{_part(patient_id)}"


# ── Store ────────────────────────────────────────────────────────────────────


@contextmanager
def _translate_errors(key: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        raise StoreUnavailable(f"Cache unavailable: {exc}") from exc
    except ResponseError as exc:
        if str(exc).startswith("WRONGTYPE"):
            raise CorruptCacheEntry(key, "unexpected value type") from exc
        raise StoreUnavailable(f"Cache rejected command: {exc}") from exc
    except RedisError as exc:
        raise StoreUnavailable(f"Cache error: {exc}") from exc


class CacheStore:
    """Thin mechanical wrapper over a Redis client.

    Values are strings; serialization is the caller's job. Redis errors other
    than a wrong value type surface as ``StoreUnavailable`` so that an outage is
    never mistaken for a cache miss.
    """

    def __init__(self, r: redis.Redis) -> None:
        self._r = r

    async def get(self, key: str) -> str | None:
        with _translate_errors(key):
            return await self._r.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with _translate_errors(key):
            await self._r.set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        with _translate_errors(keys[0]):
            await self._r.delete(*keys)

    async def hash_get(self, key: str) -> dict[str, str]:
        with _translate_errors(key):
            return await self._r.hgetall(key) or {}

    async def hash_set(self, key: str, fields: dict[str, str], ttl_seconds: int | None = None) -> None:
        with _translate_errors(key):
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=fields)
                if ttl_seconds is not None:
                    pipe.expire(key, ttl_seconds)
                await pipe.execute()

    async def list_push(self, key: str, value: str) -> None:
        with _translate_errors(key):
            await self._r.rpush(key, value)

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Read ``key[start..end]`` inclusive; ``end=-1`` means through the last element."""
        with _translate_errors(key):
            return await self._r.lrange(key, start, end)

    async def track(self, registry_key: str, member: str, ttl_seconds: int) -> None:
        """Record ``member`` in a registry set so it can be invalidated with its group."""
        with _translate_errors(registry_key):
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.sadd(registry_key, member)
                pipe.expire(registry_key, ttl_seconds)
                await pipe.execute()

    async def members(self, registry_key: str) -> set[str]:
        with _translate_errors(registry_key):
            return set(await self._r.smembers(registry_key))
