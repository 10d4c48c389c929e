"""Shared test fixtures."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.deps import get_patient_service
from app.api.disease_history import router as disease_history_router
from app.api.errors import register_error_handlers
from app.api.patients import router as patients_router
from app.schemas import DiseaseHistory, Patient, PatientCreateRequest
from app.services.patient_service import PatientService
from tests.fakes import InMemoryCacheStore, InMemoryPatientStore


@pytest.fixture()
def sample_patient_data() -> dict:
    """Patient 000002 as submitted by the add-patient form."""
    return {
        "patient_id": "000002",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "phone": "555-1234",
        "dob": "1815-12-10",
        "address": "12 St James's Square",
        "gender": "female",
    }


@pytest.fixture()
def sample_patient(sample_patient_data: dict) -> Patient:
    return Patient.model_validate(sample_patient_data)


@pytest.fixture()
def sample_create_request(sample_patient_data: dict) -> PatientCreateRequest:
    return PatientCreateRequest.model_validate(sample_patient_data)


@pytest.fixture()
def flu_history() -> DiseaseHistory:
    return DiseaseHistory(history_id="h1", patient_id="000002", diseases_name="Flu")


@pytest.fixture()
def store() -> InMemoryPatientStore:
    return InMemoryPatientStore()


@pytest.fixture()
def cache() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture()
def service(store: InMemoryPatientStore, cache: InMemoryCacheStore) -> PatientService:
    return PatientService(store, cache)


@pytest.fixture()
def mock_redis():
    r = AsyncMock()
    r.get = AsyncMock(return_value=None)
    r.set = AsyncMock()
    r.delete = AsyncMock()
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.execute = AsyncMock(return_value=[])
    r.pipeline = MagicMock(return_value=pipe)
    return r


@pytest.fixture()
def mock_conn():
    conn = AsyncMock()
    conn.transaction = MagicMock()
    return conn


@pytest.fixture()
def mock_pool(mock_conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = mock_conn
    return pool


@pytest.fixture()
def client(service: PatientService) -> TestClient:
    @asynccontextmanager
    async def noop_lifespan(app: FastAPI):
        yield

    test_app = FastAPI(lifespan=noop_lifespan)
    register_error_handlers(test_app)
    test_app.include_router(patients_router)
    test_app.include_router(disease_history_router)
    test_app.dependency_overrides[get_patient_service] = lambda: service

    with TestClient(test_app, raise_server_exceptions=True) as c:
        yield c
