"""In-memory doubles for PatientStore and CacheStore."""

from __future__ import annotations

from app.errors import ConflictError, CorruptCacheEntry, StoreUnavailable
from app.schemas import DiseaseHistory, Patient


class InMemoryCacheStore:
    """Mimics CacheStore, including TTL expiry against a manual clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self.unavailable = False
        self._data: dict[str, tuple[str, object, float | None]] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self) -> None:
        if self.unavailable:
            raise StoreUnavailable("Cache unavailable: connection refused")

    def _entry(self, key: str, kind: str):
        entry = self._data.get(key)
        if entry is None:
            return None
        entry_kind, value, expires_at = entry
        if expires_at is not None and self.now >= expires_at:
            del self._data[key]
            return None
        if entry_kind != kind:
            raise CorruptCacheEntry(key, "unexpected value type")
        return value

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        return None if ttl_seconds is None else self.now + ttl_seconds

    def keys(self) -> set[str]:
        return {k for k in list(self._data) if self._alive(k)}

    def _alive(self, key: str) -> bool:
        _, _, expires_at = self._data[key]
        return expires_at is None or self.now < expires_at

    def put_raw(self, key: str, value: str) -> None:
        self._data[key] = ("string", value, None)

    def put_hash(self, key: str, fields: dict[str, str]) -> None:
        self._data[key] = ("hash", dict(fields), None)

    async def get(self, key: str) -> str | None:
        self._check()
        return self._entry(key, "string")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check()
        self._data[key] = ("string", value, self._expiry(ttl_seconds))

    async def delete(self, *keys: str) -> None:
        self._check()
        for key in keys:
            self._data.pop(key, None)

    async def hash_get(self, key: str) -> dict[str, str]:
        self._check()
        return dict(self._entry(key, "hash") or {})

    async def hash_set(self, key: str, fields: dict[str, str], ttl_seconds: int | None = None) -> None:
        self._check()
        current = dict(self._entry(key, "hash") or {})
        current.update(fields)
        self._data[key] = ("hash", current, self._expiry(ttl_seconds))

    async def list_push(self, key: str, value: str) -> None:
        self._check()
        items = list(self._entry(key, "list") or [])
        items.append(value)
        self._data[key] = ("list", items, None)

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        self._check()
        items = list(self._entry(key, "list") or [])
        return items[start:] if end == -1 else items[start : end + 1]

    async def track(self, registry_key: str, member: str, ttl_seconds: int) -> None:
        self._check()
        members = set(self._entry(registry_key, "set") or set())
        members.add(member)
        self._data[registry_key] = ("set", members, self._expiry(ttl_seconds))

    async def members(self, registry_key: str) -> set[str]:
        self._check()
        return set(self._entry(registry_key, "set") or set())


class InMemoryPatientStore:
    """Mimics PatientStore with the same uniqueness rules as the SQL schema."""

    def __init__(self) -> None:
        self.unavailable = False
        self.reads = 0
        self.writes = 0
        self._patients: dict[str, Patient] = {}

    def _check(self) -> None:
        if self.unavailable:
            raise StoreUnavailable("Document store unavailable: connection refused")

    def _history_ids(self) -> set[str]:
        return {e.history_id for p in self._patients.values() for e in p.disease_history}

    def seed(self, patient: Patient) -> None:
        self._patients[patient.patient_id] = patient.model_copy(deep=True)

    async def get_patient(self, patient_id: str) -> Patient | None:
        self._check()
        self.reads += 1
        patient = self._patients.get(patient_id)
        return patient.model_copy(deep=True) if patient else None

    async def find_patients(self, *, id_filter: str | None = None, phone_filter: str | None = None) -> list[Patient]:
        self._check()
        self.reads += 1
        return [
            p.model_copy(deep=True)
            for pid, p in sorted(self._patients.items())
            if (not id_filter or id_filter.lower() in pid.lower())
            and (not phone_filter or phone_filter.lower() in p.phone.lower())
        ]

    async def insert_patient(self, patient: Patient) -> Patient:
        self._check()
        if patient.patient_id in self._patients:
            raise ConflictError(f"Patient ID {patient.patient_id} already exists")
        ids = [e.history_id for e in patient.disease_history]
        if len(set(ids)) != len(ids) or self._history_ids() & set(ids):
            raise ConflictError("History ID already exists")
        self.writes += 1
        self.seed(patient)
        return patient.model_copy(deep=True)

    async def update_patient(self, patient_id: str, *, updates: dict) -> Patient | None:
        self._check()
        patient = self._patients.get(patient_id)
        if patient is None:
            return None
        self.writes += 1
        self._patients[patient_id] = patient.model_copy(update=updates, deep=True)
        return self._patients[patient_id].model_copy(deep=True)

    async def delete_patient(self, patient_id: str) -> Patient | None:
        self._check()
        patient = self._patients.pop(patient_id, None)
        if patient is not None:
            self.writes += 1
        return patient

    async def find_history_owner(self, history_id: str) -> Patient | None:
        self._check()
        self.reads += 1
        for patient in self._patients.values():
            if patient.find_history(history_id):
                return patient.model_copy(deep=True)
        return None

    async def find_disease_history(
        self, *, history_id: str | None = None, patient_id: str | None = None
    ) -> list[DiseaseHistory]:
        self._check()
        self.reads += 1
        return [
            e.model_copy()
            for _, p in sorted(self._patients.items())
            for e in p.disease_history
            if (history_id is None or e.history_id == history_id)
            and (patient_id is None or e.patient_id == patient_id)
        ]

    async def push_disease_history(self, entry: DiseaseHistory) -> Patient | None:
        self._check()
        patient = self._patients.get(entry.patient_id)
        if patient is None:
            return None
        if entry.history_id in self._history_ids():
            raise ConflictError("History ID already exists")
        self.writes += 1
        patient.disease_history.append(entry.model_copy())
        return patient.model_copy(deep=True)

    async def update_disease_history(self, patient_id: str, history_id: str, *, diseases_name: str) -> Patient | None:
        self._check()
        patient = self._patients.get(patient_id)
        entry = patient.find_history(history_id) if patient else None
        if entry is None:
            return None
        self.writes += 1
        entry.diseases_name = diseases_name
        return patient.model_copy(deep=True)

    async def pull_disease_history(self, history_id: str) -> Patient | None:
        self._check()
        for patient in self._patients.values():
            if patient.find_history(history_id):
                self.writes += 1
                patient.disease_history = [e for e in patient.disease_history if e.history_id != history_id]
                return patient.model_copy(deep=True)
        return None
