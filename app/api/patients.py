"""Patients API router — /api/v1/patients."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from app.api.deps import get_patient_service
from app.schemas import (
    DiseaseHistory,
    OnlineStatusRequest,
    OnlineStatusResponse,
    Patient,
    PatientCreateRequest,
    PatientUpdateRequest,
    PendingTestRequest,
    PendingTestsResponse,
)
from app.services.patient_service import PatientService

router = APIRouter(prefix="/api/v1/patients", tags=["patients"])


# ── CRUD ───────────────────────────────────────────────────────────────────────

@router.post("/", response_model=Patient, status_code=201)
async def create_patient(
    body: PatientCreateRequest,
    service: PatientService = Depends(get_patient_service),
):
    return await service.create_patient(body)


@router.get("/", response_model=list[Patient])
async def list_patients(
    id_filter: str | None = Query(None, alias="id"),
    number: str | None = None,
    service: PatientService = Depends(get_patient_service),
):
    return await service.list_patients(id_filter=id_filter, phone_filter=number)


@router.get("/{patient_id}", response_model=Patient)
async def get_patient(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return await service.get_patient(patient_id)


@router.put("/{patient_id}", response_model=Patient)
async def update_patient(
    patient_id: str,
    body: PatientUpdateRequest,
    service: PatientService = Depends(get_patient_service),
):
    return await service.update_patient(patient_id, body)


@router.delete("/{patient_id}", status_code=204)
async def delete_patient(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    await service.delete_patient(patient_id)
    return Response(status_code=204)


# ── Disease history held by a patient ─────────────────────────────────────────

@router.post("/{patient_id}/disease-history/cache", response_model=list[DiseaseHistory])
async def cache_disease_history(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return await service.warm_disease_history(patient_id)


@router.get("/{patient_id}/disease-history/{history_id}", response_model=DiseaseHistory)
async def get_disease_history(
    patient_id: str,
    history_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return await service.get_disease_history(patient_id, history_id)


# ── Cache-native state ─────────────────────────────────────────────────────────

@router.get("/{patient_id}/online-status", response_model=OnlineStatusResponse)
async def get_online_status(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return OnlineStatusResponse(patient_id=patient_id, online=await service.is_online(patient_id))


@router.put("/{patient_id}/online-status", response_model=OnlineStatusResponse)
async def set_online_status(
    patient_id: str,
    body: OnlineStatusRequest,
    service: PatientService = Depends(get_patient_service),
):
    await service.set_online_status(patient_id, body.online)
    return OnlineStatusResponse(patient_id=patient_id, online=body.online)


@router.get("/{patient_id}/pending-tests", response_model=PendingTestsResponse)
async def get_pending_tests(
    patient_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return PendingTestsResponse(patient_id=patient_id, tests=await service.get_pending_tests(patient_id))


@router.post("/{patient_id}/pending-tests", response_model=PendingTestsResponse, status_code=201)
async def add_pending_test(
    patient_id: str,
    body: PendingTestRequest,
    service: PatientService = Depends(get_patient_service),
):
    await service.add_pending_test(patient_id, body.test_name)
    return PendingTestsResponse(patient_id=patient_id, tests=await service.get_pending_tests(patient_id))
