from .enums import (
    FREQUENCY_LABELS,
    TIMING_LABELS,
    Frequency,
    PatientSex,
    Timing,
    ToothPosition,
    VisitTag,
)
from .common import RxLine, ToothDetail
from .domain import DoctorSummary, PatientSummary, Prescription, Visit

__all__ = [
    "FREQUENCY_LABELS",
    "TIMING_LABELS",
    "Frequency",
    "PatientSex",
    "Timing",
    "ToothPosition",
    "VisitTag",
    "RxLine",
    "ToothDetail",
    "DoctorSummary",
    "PatientSummary",
    "Prescription",
    "Visit",
]
