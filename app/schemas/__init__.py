"""Schema re-exports for convenient imports."""

from app.schemas.api_models import (
    DiseaseHistoryCreateRequest,
    DiseaseHistoryUpdateRequest,
    OnlineStatusRequest,
    OnlineStatusResponse,
    PatientCreateRequest,
    PatientUpdateRequest,
    PendingTestRequest,
    PendingTestsResponse,
)
from app.schemas.patient import DiseaseHistory, Patient

__all__ = [
    "DiseaseHistory",
    "DiseaseHistoryCreateRequest",
    "DiseaseHistoryUpdateRequest",
    "OnlineStatusRequest",
    "OnlineStatusResponse",
    "Patient",
    "PatientCreateRequest",
    "PatientUpdateRequest",
    "PendingTestRequest",
    "PendingTestsResponse",
]
