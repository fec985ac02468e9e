"""
API route: Visits (record ingest and chain lookup)
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from apps.worker.lib.visit_chain import resolve_chain
from packages.db.database import get_db
from packages.db.visit_store import SqlVisitStore
from packages.shared.models import Prescription, Visit
from packages.shared.normalize import RecordNormalizationError

router = APIRouter(tags=["visits"])


class ChainResponse(BaseModel):
    visit_id: str
    anchor_id: Optional[str]
    chain_ids: list[str]


class StoredResponse(BaseModel):
    id: str
    status: str = "stored"


def get_store(db: Session = Depends(get_db)) -> SqlVisitStore:
    return SqlVisitStore(db)


def load_visit_or_404(store: SqlVisitStore, visit_id: str) -> Visit:
    visit = store.get_visit(visit_id)
    if visit is None:
        raise HTTPException(status_code=404, detail="Visit not found")
    return visit


@router.post("/visits", response_model=Visit, status_code=201)
def ingest_visit(payload: dict[str, Any] = Body(...), store: SqlVisitStore = Depends(get_store)):
    """Store a visit record as delivered by the clinic API."""
    try:
        return store.upsert_visit(payload)
    except RecordNormalizationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.put("/visits/{visit_id}/prescription", response_model=Prescription)
def put_prescription(
    visit_id: str,
    payload: dict[str, Any] = Body(...),
    store: SqlVisitStore = Depends(get_store),
):
    load_visit_or_404(store, visit_id)
    try:
        return store.upsert_prescription(visit_id, payload)
    except RecordNormalizationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.put("/patients/{patient_id}", response_model=StoredResponse)
def put_patient(patient_id: str, payload: dict[str, Any] = Body(...), store: SqlVisitStore = Depends(get_store)):
    store.upsert_patient(patient_id, payload)
    return StoredResponse(id=patient_id)


@router.put("/doctors/{doctor_id}", response_model=StoredResponse)
def put_doctor(doctor_id: str, payload: dict[str, Any] = Body(...), store: SqlVisitStore = Depends(get_store)):
    store.upsert_doctor(doctor_id, payload)
    return StoredResponse(id=doctor_id)


@router.get("/patients/{patient_id}/visits", response_model=list[Visit])
def list_patient_visits(patient_id: str, store: SqlVisitStore = Depends(get_store)):
    return store.list_visits(patient_id)


@router.get("/visits/{visit_id}/chain", response_model=ChainResponse)
def get_visit_chain(visit_id: str, store: SqlVisitStore = Depends(get_store)):
    """Anchor visit plus follow-ups up to and including this visit."""
    visit = load_visit_or_404(store, visit_id)
    history = store.list_visits(visit.patient_id) if visit.patient_id else []
    chain = resolve_chain(history, visit, visit_id)
    return ChainResponse(visit_id=visit_id, anchor_id=chain.anchor_id, chain_ids=chain.chain_ids)
