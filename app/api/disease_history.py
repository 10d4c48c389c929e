"""Disease history API router — /api/v1/disease-history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from app.api.deps import get_patient_service
from app.schemas import DiseaseHistory, DiseaseHistoryCreateRequest, DiseaseHistoryUpdateRequest
from app.services.patient_service import PatientService

router = APIRouter(prefix="/api/v1/disease-history", tags=["disease-history"])


@router.get("/", response_model=list[DiseaseHistory])
async def list_disease_history(
    history_id: str | None = Query(None, alias="Id"),
    patient_id: str | None = Query(None, alias="patientId"),
    service: PatientService = Depends(get_patient_service),
):
    return await service.list_disease_history(history_id=history_id, patient_id=patient_id)


@router.get("/{history_id}", response_model=DiseaseHistory)
async def get_disease_history(
    history_id: str,
    service: PatientService = Depends(get_patient_service),
):
    return await service.find_disease_history_entry(history_id)


@router.post("/", response_model=DiseaseHistory, status_code=201)
async def add_disease_history(
    body: DiseaseHistoryCreateRequest,
    service: PatientService = Depends(get_patient_service),
):
    return await service.add_disease_history(body)


@router.put("/{history_id}", response_model=DiseaseHistory)
async def update_disease_history(
    history_id: str,
    body: DiseaseHistoryUpdateRequest,
    service: PatientService = Depends(get_patient_service),
):
    return await service.update_disease_history(history_id, body)


@router.delete("/{history_id}", status_code=204)
async def delete_disease_history(
    history_id: str,
    service: PatientService = Depends(get_patient_service),
):
    await service.delete_disease_history(history_id)
    return Response(status_code=204)
