"""
Record normalization for visit and prescription payloads.

The clinic API has shipped the same concepts under several field names over
time (opdNo / opdNumber / opd_no, anchorVisitId / anchorId, camelCase vs
snake_case). Everything that enters the print pipeline goes through here so
downstream code only ever sees the canonical `Visit` / `Prescription` shape.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from packages.shared.models import (
    DoctorSummary,
    PatientSex,
    PatientSummary,
    Prescription,
    RxLine,
    ToothDetail,
    ToothPosition,
    Visit,
    VisitTag,
)

logger = logging.getLogger(__name__)


class RecordNormalizationError(ValueError):
    """Raised when a raw record cannot be mapped onto the canonical shape."""


VISIT_ID_KEYS = ("visitId", "visit_id", "id")
PATIENT_ID_KEYS = ("patientId", "patient_id")
DOCTOR_ID_KEYS = ("doctorId", "doctor_id")
ANCHOR_KEYS = ("anchorVisitId", "anchorId", "anchor_visit_id", "anchor_id")
OPD_KEYS = ("opdNo", "opdNumber", "opdId", "opd", "opd_no", "opd_no_str")
CREATED_KEYS = ("createdAt", "created_at")
UPDATED_KEYS = ("updatedAt", "updated_at")
VISIT_DATE_KEYS = ("visitDate", "visit_date")
TOOTH_DETAIL_KEYS = ("toothDetails", "tooth_details")
TOOTH_NUMBER_KEYS = ("toothNumbers", "tooth_numbers")
RECEPTION_NOTES_KEYS = ("receptionNotes", "reception_notes")
DOCTOR_NOTES_KEYS = ("doctorNotes", "doctor_notes")

_TAG_ALIASES = {
    "N": VisitTag.NEW,
    "NEW": VisitTag.NEW,
    "F": VisitTag.FOLLOWUP,
    "FU": VisitTag.FOLLOWUP,
    "FOLLOWUP": VisitTag.FOLLOWUP,
    "FOLLOW_UP": VisitTag.FOLLOWUP,
    "Z": VisitTag.ZERO_BILLED,
    "ZERO_BILLED": VisitTag.ZERO_BILLED,
}


def first_value(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the first non-None value among *keys*."""
    for k in keys:
        val = record.get(k)
        if val is not None:
            return val
    return None


def _clean_str(val: Any) -> Optional[str]:
    if val is None:
        return None
    if isinstance(val, (str, int, float)) and not isinstance(val, bool):
        s = str(val).strip()
        return s or None
    return None


def _to_epoch_ms(val: Any) -> Optional[int]:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return int(val)
    if isinstance(val, datetime):
        dt = val if val.tzinfo else val.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    s = str(val).strip()
    if not s:
        return None
    if s.lstrip("-").isdigit():
        return int(s)
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp {s!r}; ignoring")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _to_date(val: Any) -> Optional[date]:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        logger.debug(f"Unparseable visit date {s!r}; ignoring")
        return None


def normalize_tag(val: Any) -> Optional[VisitTag]:
    s = _clean_str(val)
    if not s:
        return None
    return _TAG_ALIASES.get(s.upper().replace("-", "_"))


def normalize_visit_record(raw: dict[str, Any]) -> Visit:
    """Map a loosely-typed visit record onto `Visit`."""
    if not isinstance(raw, dict):
        raise RecordNormalizationError(f"Visit record must be a mapping, got {type(raw).__name__}")

    visit_id = _clean_str(first_value(raw, VISIT_ID_KEYS))
    if not visit_id:
        raise RecordNormalizationError("Visit record has no visit id")

    try:
        return Visit(
            visit_id=visit_id,
            patient_id=_clean_str(first_value(raw, PATIENT_ID_KEYS)),
            doctor_id=_clean_str(first_value(raw, DOCTOR_ID_KEYS)),
            anchor_visit_id=_clean_str(first_value(raw, ANCHOR_KEYS)),
            tag=normalize_tag(raw.get("tag")),
            created_at=_to_epoch_ms(first_value(raw, CREATED_KEYS)),
            updated_at=_to_epoch_ms(first_value(raw, UPDATED_KEYS)),
            visit_date=_to_date(first_value(raw, VISIT_DATE_KEYS)),
            reason=_clean_str(raw.get("reason")),
            opd_no=_clean_str(first_value(raw, OPD_KEYS)),
        )
    except ValidationError as exc:
        raise RecordNormalizationError(f"Invalid visit record {visit_id}: {exc}") from exc


def normalize_tooth_details(raw_details: Any) -> list[ToothDetail]:
    """Drop entries with unknown positions or no tooth numbers instead of failing the whole record."""
    if not isinstance(raw_details, list):
        return []
    out: list[ToothDetail] = []
    for item in raw_details:
        if not isinstance(item, dict):
            continue
        pos = (_clean_str(item.get("position")) or "").upper()
        if pos not in ToothPosition.__members__:
            continue
        numbers = first_value(item, TOOTH_NUMBER_KEYS) or []
        if not isinstance(numbers, list):
            numbers = [numbers]
        cleaned = [str(n).strip() for n in numbers if str(n).strip()]
        if not cleaned:
            continue
        try:
            out.append(
                ToothDetail(
                    position=ToothPosition(pos),
                    tooth_numbers=cleaned[:8],
                    notes=_clean_str(item.get("notes")),
                    procedure=_clean_str(item.get("procedure")),
                    advice=_clean_str(item.get("advice")),
                    block_id=_clean_str(first_value(item, ("blockId", "block_id"))),
                )
            )
        except ValidationError as exc:
            logger.debug(f"Skipping tooth detail {item!r}: {exc}")
    return out


def normalize_rx_lines(raw_lines: Any) -> list[RxLine]:
    if not isinstance(raw_lines, list):
        return []
    out: list[RxLine] = []
    for item in raw_lines:
        if not isinstance(item, dict):
            continue
        try:
            out.append(RxLine.model_validate(item))
        except ValidationError as exc:
            logger.debug(f"Skipping rx line {item!r}: {exc}")
    return out


def normalize_prescription_record(raw: dict[str, Any], visit_id: str | None = None) -> Prescription:
    """Map a prescription payload onto `Prescription`. *visit_id* wins over the payload's own id."""
    if not isinstance(raw, dict):
        raise RecordNormalizationError(f"Prescription record must be a mapping, got {type(raw).__name__}")

    vid = visit_id or _clean_str(first_value(raw, ("visitId", "visit_id")))
    if not vid:
        raise RecordNormalizationError("Prescription record has no visit id")

    try:
        return Prescription(
            visit_id=vid,
            lines=normalize_rx_lines(raw.get("lines")),
            tooth_details=normalize_tooth_details(first_value(raw, TOOTH_DETAIL_KEYS)),
            doctor_notes=_clean_str(first_value(raw, DOCTOR_NOTES_KEYS)),
            reception_notes=_clean_str(first_value(raw, RECEPTION_NOTES_KEYS)),
            created_at=_to_epoch_ms(first_value(raw, CREATED_KEYS)),
            updated_at=_to_epoch_ms(first_value(raw, UPDATED_KEYS)),
        )
    except ValidationError as exc:
        raise RecordNormalizationError(f"Invalid prescription record for {vid}: {exc}") from exc


PATIENT_ID_ONLY_KEYS = ("patientId", "patient_id", "id")
DOB_KEYS = ("dob", "dateOfBirth", "birthDate", "dobIso", "date_of_birth")
SEX_KEYS = ("sex", "gender", "patientSex")
SD_ID_KEYS = ("sdId", "sd_id")

_SEX_ALIASES = {
    "M": PatientSex.MALE,
    "MALE": PatientSex.MALE,
    "F": PatientSex.FEMALE,
    "FEMALE": PatientSex.FEMALE,
    "O": PatientSex.OTHER,
    "OTHER": PatientSex.OTHER,
    "U": PatientSex.UNKNOWN,
    "UNKNOWN": PatientSex.UNKNOWN,
}


def age_on(dob: date, when: date) -> int:
    years = when.year - dob.year
    if (when.month, when.day) < (dob.month, dob.day):
        years -= 1
    return max(0, years)


def normalize_patient_record(raw: dict[str, Any], as_of: date | None = None) -> PatientSummary:
    """
    Patient header fields. Age is computed from the date of birth as of *as_of*
    (the visit date) when a DOB is on file, else the stored age is used.
    """
    if not isinstance(raw, dict):
        raise RecordNormalizationError(f"Patient record must be a mapping, got {type(raw).__name__}")

    dob = _to_date(first_value(raw, DOB_KEYS))
    age: Optional[int] = None
    if dob is not None:
        age = age_on(dob, as_of or date.today())
    else:
        stored = raw.get("age")
        if isinstance(stored, (int, float)) and not isinstance(stored, bool) and 0 <= stored <= 130:
            age = int(stored)

    sex_raw = _clean_str(first_value(raw, SEX_KEYS))
    registered = first_value(raw, ("registeredOn", "registered_on", "createdAt", "created_at"))
    registered_on = None
    if isinstance(registered, (int, float)) and not isinstance(registered, bool) and registered > 0:
        registered_on = datetime.fromtimestamp(registered / 1000, tz=timezone.utc).date()
    elif registered is not None:
        registered_on = _to_date(registered)

    try:
        return PatientSummary(
            patient_id=_clean_str(first_value(raw, PATIENT_ID_ONLY_KEYS)),
            name=_clean_str(raw.get("name")),
            phone=_clean_str(raw.get("phone")),
            age=age,
            sex=_SEX_ALIASES.get(sex_raw.upper()) if sex_raw else None,
            sd_id=_clean_str(first_value(raw, SD_ID_KEYS)),
            registered_on=registered_on,
        )
    except ValidationError as exc:
        raise RecordNormalizationError(f"Invalid patient record: {exc}") from exc


def normalize_doctor_record(raw: dict[str, Any]) -> Optional[DoctorSummary]:
    """Doctor header entry; None when the record carries no usable name."""
    if not isinstance(raw, dict):
        return None
    name = _clean_str(first_value(raw, ("fullName", "name", "displayName")))
    if not name:
        return None
    label = _clean_str(first_value(raw, ("registrationLabel", "registration_label")))
    reg_no = _clean_str(first_value(raw, ("registrationNumber", "registration_number")))
    if not label and reg_no:
        label = f"B.D.S Regd. - {reg_no}"
    return DoctorSummary(name=name, registration_label=label)
