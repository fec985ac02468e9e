from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from packages.shared.models import DoctorSummary, PatientSummary, RxLine, ToothDetail


class PageMeasurements(BaseModel):
    """Settled heights (points, A4 coordinate space) from one measurement pass."""
    first_page_capacity: float = Field(gt=0)
    next_page_capacity: float = Field(gt=0)
    notes_height: float = Field(default=0.0, ge=0)
    block_heights: list[float] = Field(default_factory=list)
    key: str = ""


class PagePlan(BaseModel):
    chain_ids: list[str] = Field(default_factory=list)
    anchor_id: str | None = None
    current_visit_id: str
    pages: list[list[str]] = Field(default_factory=list)
    has_notes: bool = False
    history_enabled: bool = True
    degraded: bool = False
    degraded_reason: str | None = None
    measurements: PageMeasurements | None = None
    input_key: str = ""

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_of(self, visit_id: str) -> int | None:
        for idx, page in enumerate(self.pages):
            if visit_id in page:
                return idx
        return None


class CurrentOnlyProjection(BaseModel):
    page_index: int = 0
    page_ids: list[str] = Field(default_factory=list)
    current_visit_id: str

    @property
    def visible_ids(self) -> set[str]:
        return {self.current_visit_id} if self.current_visit_id in self.page_ids else set()

    def is_visible(self, visit_id: str) -> bool:
        return visit_id in self.visible_ids


class VisitBlock(BaseModel):
    """Renderable content for one chain entry."""
    visit_id: str
    is_current: bool = False
    is_anchor: bool = False
    visit_date: date | None = None
    reason: str | None = None
    opd_inline: str | None = None
    lines: list[RxLine] = Field(default_factory=list)
    tooth_details: list[ToothDetail] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.lines or self.tooth_details or self.reason or self.visit_date)


class ClinicInfo(BaseModel):
    name: str = ""
    contact: str = ""
    address: str = ""
    hours: str = ""


class PrintContext(BaseModel):
    """Page chrome: letterhead, doctor header and patient header fields."""
    clinic: ClinicInfo = Field(default_factory=ClinicInfo)
    doctors: list[DoctorSummary] = Field(default_factory=list)
    patient: PatientSummary = Field(default_factory=PatientSummary)
    header_opd_no: str | None = None
    visit_date: date | None = None
    reception_notes: str | None = None

    @property
    def has_notes(self) -> bool:
        return bool(self.reception_notes and self.reception_notes.strip())
