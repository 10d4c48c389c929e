"""Cache-aside coordination between the patient store and the Redis cache.

Reads check the cache first and populate it on a miss. Writes always go to the
store first; the cache is only touched after the store write succeeded, and
failures at that point are logged rather than reported, since the store is
authoritative and every cached entry expires on its own.

Two concurrent creates for the same patient id can both pass the existence
check; the store's primary key rejects the second insert with ConflictError.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, TypeVar

from pydantic import TypeAdapter

from app.db.queries import PatientStore
from app.errors import ConflictError, CorruptCacheEntry, NotFoundError, StoreUnavailable, ValidationError
from app.schemas import (
    DiseaseHistory,
    DiseaseHistoryCreateRequest,
    DiseaseHistoryUpdateRequest,
    Patient,
    PatientCreateRequest,
    PatientUpdateRequest,
)
from app.services.cache_service import (
    DISEASE_HISTORY_LIST_REGISTRY,
    PATIENT_LIST_REGISTRY,
    CacheStore,
    disease_history_key,
    disease_history_list_key,
    online_status_key,
    patient_key,
    patient_list_key,
    pending_tests_key,
)

logger = logging.getLogger(__name__)

PATIENT_TTL_SECONDS = 300
ONLINE_STATUS_TTL_SECONDS = 3600

T = TypeVar("T")

_PATIENT_LIST = TypeAdapter(list[Patient])
_HISTORY_LIST = TypeAdapter(list[DiseaseHistory])


def _require(value: str | None, name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


class PatientService:
    def __init__(
        self,
        store: PatientStore,
        cache: CacheStore,
        *,
        ttl_seconds: int = PATIENT_TTL_SECONDS,
        online_ttl_seconds: int = ONLINE_STATUS_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl = ttl_seconds
        self._online_ttl = online_ttl_seconds

    # ── Cache helpers ────────────────────────────────────────────────────────

    async def _read_cached(self, key: str, parse: Callable[[str], T]) -> T | None:
        """Return the parsed cached value, or ``None`` on a miss or a corrupt entry."""
        try:
            raw = await self._cache.get(key)
            if raw is None:
                logger.info("Cache miss for %s", key)
                return None
            value = parse(raw)
        except (CorruptCacheEntry, ValueError) as exc:
            await self._discard(key, exc)
            return None
        logger.info("Cache hit for %s", key)
        return value

    async def _read_cached_history(self, patient_id: str, history_id: str) -> DiseaseHistory | None:
        key = disease_history_key(patient_id, history_id)
        try:
            fields = await self._cache.hash_get(key)
            if not fields:
                logger.info("Cache miss for %s", key)
                return None
            entry = DiseaseHistory.from_hash(fields)
            if entry.patient_id != patient_id or entry.history_id != history_id:
                raise CorruptCacheEntry(key, "identifier mismatch")
        except (CorruptCacheEntry, ValueError) as exc:
            await self._discard(key, exc)
            return None
        logger.info("Cache hit for %s", key)
        return entry

    async def _discard(self, key: str, exc: Exception) -> None:
        logger.warning("Discarding corrupt cache entry %s: %s", key, exc)
        await self._cache.delete(key)

    async def _best_effort(self, action: str, operation: Awaitable[None]) -> None:
        try:
            await operation
        except (StoreUnavailable, CorruptCacheEntry):
            logger.warning("Cache update after %s failed; stale entries expire within %ss", action, self._ttl, exc_info=True)

    async def _invalidate_lists(self, registry_key: str, canonical_key: str) -> None:
        keys = await self._cache.members(registry_key)
        keys.add(canonical_key)
        await self._cache.delete(*sorted(keys), registry_key)
        logger.info("Invalidated %d list cache keys tracked in %s", len(keys), registry_key)

    async def _after_write(
        self,
        action: str,
        *,
        cache_patient: Patient | None = None,
        cache_histories: Iterable[DiseaseHistory] = (),
        delete_keys: Iterable[str] = (),
        patient_lists: bool = False,
        history_lists: bool = False,
    ) -> None:
        """Bring the cache in line with a store write that has already succeeded."""
        if cache_patient is not None:
            await self._best_effort(
                action,
                self._cache.set(patient_key(cache_patient.patient_id), cache_patient.model_dump_json(), self._ttl),
            )
        for entry in cache_histories:
            await self._best_effort(
                action,
                self._cache.hash_set(disease_history_key(entry.patient_id, entry.history_id), entry.to_hash(), self._ttl),
            )
        keys = list(delete_keys)
        if keys:
            await self._best_effort(action, self._cache.delete(*keys))
        if patient_lists:
            await self._best_effort(action, self._invalidate_lists(PATIENT_LIST_REGISTRY, patient_list_key()))
        if history_lists:
            await self._best_effort(
                action, self._invalidate_lists(DISEASE_HISTORY_LIST_REGISTRY, disease_history_list_key())
            )

    # ── Patients ─────────────────────────────────────────────────────────────

    async def get_patient(self, patient_id: str) -> Patient:
        _require(patient_id, "Patient ID")
        key = patient_key(patient_id)

        def parse(raw: str) -> Patient:
            patient = Patient.model_validate_json(raw)
            if patient.patient_id != patient_id:
                raise CorruptCacheEntry(key, "identifier mismatch")
            return patient

        cached = await self._read_cached(key, parse)
        if cached is not None:
            return cached

        patient = await self._store.get_patient(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        await self._cache.set(key, patient.model_dump_json(), self._ttl)
        return patient

    async def list_patients(
        self,
        *,
        id_filter: str | None = None,
        phone_filter: str | None = None,
    ) -> list[Patient]:
        key = patient_list_key(id_filter, phone_filter)
        cached = await self._read_cached(key, _PATIENT_LIST.validate_json)
        if cached is not None:
            return cached

        patients = await self._store.find_patients(id_filter=id_filter, phone_filter=phone_filter)
        await self._cache.set(key, _PATIENT_LIST.dump_json(patients).decode(), self._ttl)
        await self._cache.track(PATIENT_LIST_REGISTRY, key, self._ttl)
        return patients

    async def create_patient(self, data: PatientCreateRequest) -> Patient:
        patient_id = _require(data.patient_id, "Patient ID")
        entries = []
        for item in data.disease_history:
            if item.patient_id and item.patient_id != patient_id:
                raise ValidationError(f"Disease history entry belongs to patient {item.patient_id}")
            entries.append(
                DiseaseHistory(
                    history_id=_require(item.history_id, "History ID"),
                    patient_id=patient_id,
                    diseases_name=item.diseases_name,
                )
            )

        # Uniqueness is decided by the store, never by the cache.
        if await self._store.get_patient(patient_id) is not None:
            raise ConflictError(f"Patient ID {patient_id} already exists")

        patient = Patient(
            **data.model_dump(exclude={"patient_id", "disease_history"}),
            patient_id=patient_id,
            disease_history=entries,
        )
        created = await self._store.insert_patient(patient)
        logger.info("Created patient %s", patient_id)

        await self._after_write(
            "create patient",
            cache_patient=created,
            cache_histories=created.disease_history,
            patient_lists=True,
            history_lists=bool(created.disease_history),
        )
        return created

    async def update_patient(self, patient_id: str, data: PatientUpdateRequest) -> Patient:
        _require(patient_id, "Patient ID")
        updated = await self._store.update_patient(patient_id, updates=data.model_dump(exclude_none=True))
        if updated is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        logger.info("Updated patient %s", patient_id)

        await self._after_write("update patient", cache_patient=updated, patient_lists=True)
        return updated

    async def delete_patient(self, patient_id: str) -> None:
        _require(patient_id, "Patient ID")
        deleted = await self._store.delete_patient(patient_id)
        if deleted is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        logger.info("Deleted patient %s", patient_id)

        keys = [patient_key(patient_id), pending_tests_key(patient_id)]
        keys.extend(disease_history_key(patient_id, e.history_id) for e in deleted.disease_history)
        await self._after_write("delete patient", delete_keys=keys, patient_lists=True, history_lists=True)

    # ── Disease history ──────────────────────────────────────────────────────

    async def get_disease_history(self, patient_id: str, history_id: str) -> DiseaseHistory:
        _require(patient_id, "Patient ID")
        _require(history_id, "History ID")
        cached = await self._read_cached_history(patient_id, history_id)
        if cached is not None:
            return cached

        patient = await self.get_patient(patient_id)
        entry = patient.find_history(history_id)
        if entry is None:
            raise NotFoundError(f"Disease history {history_id} not found")
        await self._cache.hash_set(disease_history_key(patient_id, history_id), entry.to_hash(), self._ttl)
        return entry

    async def find_disease_history_entry(self, history_id: str) -> DiseaseHistory:
        """Look up an entry when only its history id is known."""
        _require(history_id, "History ID")
        owner = await self._store.find_history_owner(history_id)
        if owner is None:
            raise NotFoundError(f"Disease history {history_id} not found")
        return await self.get_disease_history(owner.patient_id, history_id)

    async def warm_disease_history(self, patient_id: str) -> list[DiseaseHistory]:
        """Cache every entry of a patient as its own hash and return them."""
        _require(patient_id, "Patient ID")
        patient = await self._store.get_patient(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        for entry in patient.disease_history:
            await self._cache.hash_set(disease_history_key(patient_id, entry.history_id), entry.to_hash(), self._ttl)
        logger.info("Cached %d disease history entries for patient %s", len(patient.disease_history), patient_id)
        return patient.disease_history

    async def list_disease_history(
        self,
        *,
        history_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[DiseaseHistory]:
        key = disease_history_list_key(history_id, patient_id)
        cached = await self._read_cached(key, _HISTORY_LIST.validate_json)
        if cached is not None:
            return cached

        entries = await self._store.find_disease_history(history_id=history_id or None, patient_id=patient_id or None)
        await self._cache.set(key, _HISTORY_LIST.dump_json(entries).decode(), self._ttl)
        await self._cache.track(DISEASE_HISTORY_LIST_REGISTRY, key, self._ttl)
        return entries

    async def add_disease_history(self, data: DiseaseHistoryCreateRequest) -> DiseaseHistory:
        entry = DiseaseHistory(
            history_id=_require(data.history_id, "History ID"),
            patient_id=_require(data.patient_id, "Patient ID"),
            diseases_name=data.diseases_name,
        )
        if await self._store.find_history_owner(entry.history_id) is not None:
            raise ConflictError("History ID already exists")

        owner = await self._store.push_disease_history(entry)
        if owner is None:
            raise NotFoundError(f"Patient {entry.patient_id} not found")
        logger.info("Added disease history %s to patient %s", entry.history_id, entry.patient_id)

        await self._after_write(
            "add disease history",
            cache_histories=[entry],
            delete_keys=[patient_key(entry.patient_id)],
            patient_lists=True,
            history_lists=True,
        )
        return entry

    async def update_disease_history(self, history_id: str, data: DiseaseHistoryUpdateRequest) -> DiseaseHistory:
        _require(history_id, "History ID")
        patient_id = data.patient_id
        if not patient_id:
            owner = await self._store.find_history_owner(history_id)
            if owner is None:
                raise NotFoundError(f"Disease history {history_id} not found")
            patient_id = owner.patient_id

        updated = await self._store.update_disease_history(patient_id, history_id, diseases_name=data.diseases_name)
        entry = updated.find_history(history_id) if updated is not None else None
        if entry is None:
            raise NotFoundError(f"Disease history {history_id} not found for patient {patient_id}")
        logger.info("Updated disease history %s of patient %s", history_id, patient_id)

        await self._after_write(
            "update disease history",
            cache_histories=[entry],
            delete_keys=[patient_key(patient_id)],
            patient_lists=True,
            history_lists=True,
        )
        return entry

    async def delete_disease_history(self, history_id: str) -> None:
        _require(history_id, "History ID")
        owner = await self._store.pull_disease_history(history_id)
        if owner is None:
            raise NotFoundError(f"Disease history {history_id} not found")
        logger.info("Deleted disease history %s of patient %s", history_id, owner.patient_id)

        await self._after_write(
            "delete disease history",
            delete_keys=[disease_history_key(owner.patient_id, history_id), patient_key(owner.patient_id)],
            patient_lists=True,
            history_lists=True,
        )

    # ── Cache-native patient state ───────────────────────────────────────────

    async def set_online_status(self, patient_id: str, online: bool) -> None:
        _require(patient_id, "Patient ID")
        await self._cache.set(online_status_key(patient_id), "true" if online else "false", self._online_ttl)
        logger.info("Patient %s online status set to %s", patient_id, online)

    async def is_online(self, patient_id: str) -> bool:
        """An expired or never-set flag reads as offline."""
        _require(patient_id, "Patient ID")
        key = online_status_key(patient_id)
        try:
            return await self._cache.get(key) == "true"
        except CorruptCacheEntry as exc:
            await self._discard(key, exc)
            return False

    async def add_pending_test(self, patient_id: str, test_name: str) -> None:
        _require(patient_id, "Patient ID")
        _require(test_name, "Test name")
        await self._cache.list_push(pending_tests_key(patient_id), test_name)
        logger.info("Added pending test %r for patient %s", test_name, patient_id)

    async def get_pending_tests(self, patient_id: str) -> list[str]:
        _require(patient_id, "Patient ID")
        return await self._cache.list_range(pending_tests_key(patient_id), 0, -1)
