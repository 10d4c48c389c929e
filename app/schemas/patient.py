"""Patient records and their embedded disease-history entries."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DiseaseHistory(BaseModel):
    """One disease-history entry, stored inside its owning patient document."""

    history_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)
    diseases_name: str = ""

    def to_hash(self) -> dict[str, str]:
        return {
            "history_id": self.history_id,
            "patient_id": self.patient_id,
            "diseases_name": self.diseases_name,
        }

    @classmethod
    def from_hash(cls, fields: dict[str, str]) -> DiseaseHistory:
        return cls.model_validate(fields)


class Patient(BaseModel):
    patient_id: str = Field(..., min_length=1)
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    dob: str = ""
    address: str = ""
    gender: str = ""
    disease_history: list[DiseaseHistory] = Field(default_factory=list)

    def find_history(self, history_id: str) -> DiseaseHistory | None:
        for entry in self.disease_history:
            if entry.history_id == history_id:
                return entry
        return None
