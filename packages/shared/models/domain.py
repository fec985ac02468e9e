from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .common import RxLine, ToothDetail
from .enums import PatientSex, VisitTag


class Visit(BaseModel):
    visit_id: str = Field(min_length=1)
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    anchor_visit_id: Optional[str] = None
    tag: Optional[VisitTag] = None
    created_at: Optional[int] = None  # epoch ms
    updated_at: Optional[int] = None
    visit_date: Optional[date] = None
    reason: Optional[str] = None
    opd_no: Optional[str] = None

    @model_validator(mode="after")
    def _drop_self_anchor(self) -> "Visit":
        # A visit is never its own anchor
        if self.anchor_visit_id == self.visit_id:
            self.anchor_visit_id = None
        return self

    @property
    def is_followup(self) -> bool:
        # Untagged legacy records only carry an anchor when they are follow-ups
        if self.tag is None:
            return self.anchor_visit_id is not None
        return self.tag == VisitTag.FOLLOWUP

    def chronology_key(self) -> tuple[int, int]:
        """Sort key used for chain ordering: created_at (falling back to updated_at), then updated_at."""
        primary = self.created_at if self.created_at is not None else (self.updated_at or 0)
        return (primary, self.updated_at or 0)


class Prescription(BaseModel):
    visit_id: str = Field(min_length=1)
    lines: list[RxLine] = Field(default_factory=list)
    tooth_details: list[ToothDetail] = Field(default_factory=list)
    doctor_notes: Optional[str] = None
    reception_notes: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


class PatientSummary(BaseModel):
    """Patient header fields printed on the first page."""
    patient_id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=130)
    sex: Optional[PatientSex] = None
    sd_id: Optional[str] = None
    registered_on: Optional[date] = None

    def age_sex_label(self) -> str:
        age = str(self.age) if self.age else ""
        sex = self.sex.value if self.sex else ""
        if age and sex:
            return f"{age}/{sex}"
        return age or sex or "—"


class DoctorSummary(BaseModel):
    name: str
    registration_label: Optional[str] = None
