"""
SQLAlchemy-backed Visit Store.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from packages.db.models import Doctor, Patient, PrescriptionRecord, VisitRecord
from packages.shared.models import DoctorSummary, PatientSummary, Prescription, Visit
from packages.shared.normalize import (
    RecordNormalizationError,
    normalize_doctor_record,
    normalize_patient_record,
    normalize_prescription_record,
    normalize_visit_record,
)

logger = logging.getLogger(__name__)


class SqlVisitStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Writes (raw records in, canonical records out) ───────────────────

    def upsert_visit(self, raw: dict[str, Any]) -> Visit:
        visit = normalize_visit_record(raw)
        row = self.db.get(VisitRecord, visit.visit_id)
        if row is None:
            row = VisitRecord(id=visit.visit_id)
            self.db.add(row)
        row.patient_id = visit.patient_id
        row.created_at_ms = visit.created_at
        row.payload_json = dict(raw)
        self.db.flush()
        return visit

    def upsert_prescription(self, visit_id: str, raw: dict[str, Any]) -> Prescription:
        rx = normalize_prescription_record(raw, visit_id=visit_id)
        row = self.db.get(PrescriptionRecord, visit_id)
        if row is None:
            row = PrescriptionRecord(visit_id=visit_id)
            self.db.add(row)
        row.payload_json = dict(raw)
        self.db.flush()
        return rx

    def upsert_patient(self, patient_id: str, raw: dict[str, Any]) -> None:
        row = self.db.get(Patient, patient_id)
        if row is None:
            row = Patient(id=patient_id)
            self.db.add(row)
        row.payload_json = dict(raw)
        self.db.flush()

    def upsert_doctor(self, doctor_id: str, raw: dict[str, Any]) -> None:
        row = self.db.get(Doctor, doctor_id)
        if row is None:
            row = Doctor(id=doctor_id)
            self.db.add(row)
        row.payload_json = dict(raw)
        self.db.flush()

    # ── Reads ────────────────────────────────────────────────────────────

    def list_visits(self, patient_id: str) -> list[Visit]:
        rows = (
            self.db.query(VisitRecord)
            .filter(VisitRecord.patient_id == patient_id)
            .order_by(VisitRecord.created_at_ms.asc(), VisitRecord.id.asc())
            .all()
        )
        visits: list[Visit] = []
        for row in rows:
            try:
                visits.append(normalize_visit_record(row.payload_json))
            except RecordNormalizationError as exc:
                logger.warning(f"Skipping unreadable visit row {row.id}: {exc}")
        return visits

    def get_visit(self, visit_id: str) -> Optional[Visit]:
        row = self.db.get(VisitRecord, visit_id)
        if row is None:
            return None
        return normalize_visit_record(row.payload_json)

    def get_prescription(self, visit_id: str) -> Optional[Prescription]:
        row = self.db.get(PrescriptionRecord, visit_id)
        if row is None:
            return None
        return normalize_prescription_record(row.payload_json, visit_id=visit_id)

    def get_patient(self, patient_id: str, as_of: date | None = None) -> Optional[PatientSummary]:
        row = self.db.get(Patient, patient_id)
        if row is None:
            return None
        payload = dict(row.payload_json)
        payload.setdefault("patientId", patient_id)
        return normalize_patient_record(payload, as_of=as_of)

    def get_doctor(self, doctor_id: str) -> Optional[DoctorSummary]:
        row = self.db.get(Doctor, doctor_id)
        if row is None:
            return None
        return normalize_doctor_record(row.payload_json)
