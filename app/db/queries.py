"""SQL access to the patients table, the store of record.

Disease-history entries live inside ``patients.disease_history`` (a JSONB
array); ``disease_history_ids`` mirrors their identifiers so that uniqueness is
enforced by the database rather than by a read-then-write check.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import asyncpg

from app.errors import ConflictError, StoreUnavailable
from app.schemas.patient import DiseaseHistory, Patient

PATIENT_COLUMNS = ("first_name", "last_name", "phone", "dob", "address", "gender")

_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
)


async def init_schema(pool: asyncpg.Pool) -> None:
    sql = (Path(__file__).parent / "schema.sql").read_text()
    async with pool.acquire() as conn:
        await conn.execute(sql)


@asynccontextmanager
async def _connection(pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
    try:
        async with pool.acquire() as conn:
            yield conn
    except _CONNECTION_ERRORS as exc:
        raise StoreUnavailable(f"Document store unavailable: {exc}") from exc


def _row_to_patient(row) -> Patient:
    data = dict(row)
    history = data.get("disease_history") or []
    if isinstance(history, str):
        history = json.loads(history)
    data["disease_history"] = history
    return Patient.model_validate(data)


def _conflict(exc: asyncpg.UniqueViolationError, patient_id: str) -> ConflictError:
    if exc.constraint_name == "disease_history_ids_pkey":
        return ConflictError("History ID already exists")
    return ConflictError(f"Patient ID {patient_id} already exists")


class PatientStore:
    """CRUD over patient documents and their embedded disease history."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_patient(self, patient_id: str) -> Patient | None:
        async with _connection(self._pool) as conn:
            row = await conn.fetchrow("SELECT * FROM patients WHERE patient_id = $1", patient_id)
        return _row_to_patient(row) if row else None

    async def find_patients(
        self,
        *,
        id_filter: str | None = None,
        phone_filter: str | None = None,
    ) -> list[Patient]:
        conditions = []
        params: list = []

        if id_filter:
            params.append(id_filter)
            conditions.append(f"strpos(lower(patient_id), lower(${len(params)})) > 0")
        if phone_filter:
            params.append(phone_filter)
            conditions.append(f"strpos(lower(phone), lower(${len(params)})) > 0")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        async with _connection(self._pool) as conn:
            rows = await conn.fetch(f"SELECT * FROM patients {where} ORDER BY patient_id", *params)  # noqa: S608
        return [_row_to_patient(r) for r in rows]

    async def insert_patient(self, patient: Patient) -> Patient:
        now = datetime.now(timezone.utc)
        history = [entry.model_dump() for entry in patient.disease_history]
        try:
            async with _connection(self._pool) as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        INSERT INTO patients (patient_id, first_name, last_name, phone, dob, address,
                                              gender, disease_history, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10)
                        RETURNING *
                        """,
                        patient.patient_id,
                        patient.first_name,
                        patient.last_name,
                        patient.phone,
                        patient.dob,
                        patient.address,
                        patient.gender,
                        json.dumps(history),
                        now,
                        now,
                    )
                    for entry in patient.disease_history:
                        await conn.execute(
                            "INSERT INTO disease_history_ids (history_id, patient_id) VALUES ($1, $2)",
                            entry.history_id,
                            patient.patient_id,
                        )
        except asyncpg.UniqueViolationError as exc:
            raise _conflict(exc, patient.patient_id) from exc
        return _row_to_patient(row)

    async def update_patient(self, patient_id: str, *, updates: dict) -> Patient | None:
        set_clauses = []
        params: list = []
        for key, value in updates.items():
            if key not in PATIENT_COLUMNS:
                raise ValueError(f"Unknown patient field: {key}")
            params.append(value)
            set_clauses.append(f"{key} = ${len(params)}")

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")

        params.append(patient_id)
        sql = f"UPDATE patients SET {', '.join(set_clauses)} WHERE patient_id = ${len(params)} RETURNING *"  # noqa: S608

        async with _connection(self._pool) as conn:
            row = await conn.fetchrow(sql, *params)
        return _row_to_patient(row) if row else None

    async def delete_patient(self, patient_id: str) -> Patient | None:
        async with _connection(self._pool) as conn:
            row = await conn.fetchrow("DELETE FROM patients WHERE patient_id = $1 RETURNING *", patient_id)
        return _row_to_patient(row) if row else None

    # ── Disease history (embedded) ───────────────────────────────────────────

    async def find_history_owner(self, history_id: str) -> Patient | None:
        async with _connection(self._pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT p.* FROM patients p
                JOIN disease_history_ids d ON d.patient_id = p.patient_id
                WHERE d.history_id = $1
                """,
                history_id,
            )
        return _row_to_patient(row) if row else None

    async def find_disease_history(
        self,
        *,
        history_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[DiseaseHistory]:
        async with _connection(self._pool) as conn:
            rows = await conn.fetch(
                """
                SELECT t.entry
                FROM patients p,
                     jsonb_array_elements(p.disease_history) WITH ORDINALITY AS t(entry, ord)
                WHERE ($1::text IS NULL OR t.entry->>'history_id' = $1)
                  AND ($2::text IS NULL OR t.entry->>'patient_id' = $2)
                ORDER BY p.patient_id, t.ord
                """,
                history_id,
                patient_id,
            )
        entries = []
        for r in rows:
            entry = r["entry"]
            if isinstance(entry, str):
                entry = json.loads(entry)
            entries.append(DiseaseHistory.model_validate(entry))
        return entries

    async def push_disease_history(self, entry: DiseaseHistory) -> Patient | None:
        """Append ``entry`` to its owner's history; ``None`` when the owner is absent."""
        try:
            async with _connection(self._pool) as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "SELECT 1 FROM patients WHERE patient_id = $1 FOR UPDATE",
                        entry.patient_id,
                    )
                    if not exists:
                        return None
                    await conn.execute(
                        "INSERT INTO disease_history_ids (history_id, patient_id) VALUES ($1, $2)",
                        entry.history_id,
                        entry.patient_id,
                    )
                    row = await conn.fetchrow(
                        """
                        UPDATE patients
                        SET disease_history = disease_history || jsonb_build_array($2::jsonb),
                            updated_at = $3
                        WHERE patient_id = $1
                        RETURNING *
                        """,
                        entry.patient_id,
                        json.dumps(entry.model_dump()),
                        datetime.now(timezone.utc),
                    )
        except asyncpg.UniqueViolationError as exc:
            raise _conflict(exc, entry.patient_id) from exc
        return _row_to_patient(row)

    async def update_disease_history(
        self,
        patient_id: str,
        history_id: str,
        *,
        diseases_name: str,
    ) -> Patient | None:
        async with _connection(self._pool) as conn:
            row = await conn.fetchrow(
                """
                UPDATE patients
                SET disease_history = (
                        SELECT jsonb_agg(
                                   CASE WHEN t.entry->>'history_id' = $2
                                        THEN jsonb_set(t.entry, '{diseases_name}', to_jsonb($3::text))
                                        ELSE t.entry END
                                   ORDER BY t.ord)
                        FROM jsonb_array_elements(disease_history) WITH ORDINALITY AS t(entry, ord)
                    ),
                    updated_at = $4
                WHERE patient_id = $1
                  AND disease_history @> jsonb_build_array(jsonb_build_object('history_id', $2::text))
                RETURNING *
                """,
                patient_id,
                history_id,
                diseases_name,
                datetime.now(timezone.utc),
            )
        return _row_to_patient(row) if row else None

    async def pull_disease_history(self, history_id: str) -> Patient | None:
        """Remove the entry from whichever patient owns it and return that patient."""
        async with _connection(self._pool) as conn:
            async with conn.transaction():
                owner_id = await conn.fetchval(
                    "DELETE FROM disease_history_ids WHERE history_id = $1 RETURNING patient_id",
                    history_id,
                )
                if owner_id is None:
                    return None
                row = await conn.fetchrow(
                    """
                    UPDATE patients
                    SET disease_history = COALESCE(
                            (SELECT jsonb_agg(t.entry ORDER BY t.ord)
                             FROM jsonb_array_elements(disease_history) WITH ORDINALITY AS t(entry, ord)
                             WHERE t.entry->>'history_id' <> $2),
                            '[]'::jsonb),
                        updated_at = $3
                    WHERE patient_id = $1
                    RETURNING *
                    """,
                    owner_id,
                    history_id,
                    datetime.now(timezone.utc),
                )
        return _row_to_patient(row)
