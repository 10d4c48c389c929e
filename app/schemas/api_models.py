"""API request and response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DiseaseHistoryCreateRequest(BaseModel):
    # Identifiers are checked by the service so that a missing one is a 400, not a 422.
    history_id: str | None = None
    patient_id: str | None = None
    diseases_name: str = ""


class DiseaseHistoryUpdateRequest(BaseModel):
    diseases_name: str
    patient_id: str | None = None


class PatientCreateRequest(BaseModel):
    patient_id: str | None = None
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    dob: str = ""
    address: str = ""
    gender: str = ""
    disease_history: list[DiseaseHistoryCreateRequest] = Field(default_factory=list)


class PatientUpdateRequest(BaseModel):
    """Partial update — all fields optional."""

    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    dob: str | None = None
    address: str | None = None
    gender: str | None = None


# ── Cache-native patient state ───────────────────────────────────────────────


class OnlineStatusRequest(BaseModel):
    online: bool


class OnlineStatusResponse(BaseModel):
    patient_id: str
    online: bool


class PendingTestRequest(BaseModel):
    test_name: str = Field(..., min_length=1)


class PendingTestsResponse(BaseModel):
    patient_id: str
    tests: list[str]
