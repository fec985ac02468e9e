"""
API route: Prescription print (page plan + PDF)
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from apps.api.routes.visits import get_store, load_visit_or_404
from apps.worker.lib.visit_chain import ChainResult, resolve_chain
from apps.worker.project.content import StoreContentProvider
from apps.worker.project.models import ClinicInfo, PagePlan, PrintContext
from apps.worker.project.page_plan import PrintBundle, header_opd_no, prepare_print_bundle
from apps.worker.steps.export_render import generate_prescription_pdf
from apps.worker.steps.export_render.constants import (
    CLINIC_ADDRESS,
    CLINIC_CONTACT,
    CLINIC_HOURS,
    CLINIC_NAME,
)
from packages.db.visit_store import SqlVisitStore
from packages.shared.models import Visit

router = APIRouter(tags=["prescriptions"])
logger = logging.getLogger(__name__)


def _clinic_info() -> ClinicInfo:
    return ClinicInfo(name=CLINIC_NAME, contact=CLINIC_CONTACT, address=CLINIC_ADDRESS, hours=CLINIC_HOURS)


def _build_bundle(
    store: SqlVisitStore,
    visit: Visit,
    history: bool,
) -> tuple[PrintBundle, PrintContext]:
    history_visits = store.list_visits(visit.patient_id) if (history and visit.patient_id) else []
    current_rx = store.get_prescription(visit.visit_id)

    # Header OPD comes from the anchor, so resolve the chain before measuring the chrome
    if history:
        chain = resolve_chain(history_visits, visit, visit.visit_id)
    else:
        chain = ChainResult(chain_ids=[visit.visit_id], anchor_id=None, visits={visit.visit_id: visit})

    doctors = []
    if visit.doctor_id:
        doctor = store.get_doctor(visit.doctor_id)
        if doctor is not None:
            doctors.append(doctor)
        else:
            logger.info(f"Doctor {visit.doctor_id} not on file; printing without doctor header")

    patient = store.get_patient(visit.patient_id, as_of=visit.visit_date) if visit.patient_id else None

    context = PrintContext(
        clinic=_clinic_info(),
        doctors=doctors,
        header_opd_no=header_opd_no(chain, visit.visit_id, history),
        visit_date=visit.visit_date,
        reception_notes=current_rx.reception_notes if current_rx else None,
    )
    if patient is not None:
        context.patient = patient

    bundle = prepare_print_bundle(
        history_visits,
        visit.visit_id,
        StoreContentProvider(store, current_rx),
        context=context,
        visit_meta_override=visit,
        history_enabled=history,
    )
    return bundle, context


@router.get("/visits/{visit_id}/prescription/page-plan", response_model=PagePlan)
def get_page_plan(
    visit_id: str,
    history: bool = Query(True),
    store: SqlVisitStore = Depends(get_store),
):
    """Chain, measurements and page assignment for a history print."""
    visit = load_visit_or_404(store, visit_id)
    bundle, _ = _build_bundle(store, visit, history=history)
    return bundle.plan


@router.get("/visits/{visit_id}/prescription.pdf")
def get_prescription_pdf(
    visit_id: str,
    history: bool = Query(True),
    current_only: bool = Query(False),
    store: SqlVisitStore = Depends(get_store),
):
    """
    Render the prescription print.

    `current_only` prints only the current visit on its page from the history
    layout, for reprinting onto the same sheet. Reception notes still take
    part in pagination so the visit lands where the history print put it;
    they are not drawn.
    """
    visit = load_visit_or_404(store, visit_id)
    bundle, context = _build_bundle(store, visit, history=history)
    pdf_bytes = generate_prescription_pdf(bundle, context, current_only=current_only)

    headers = {
        "Content-Disposition": f'inline; filename="prescription_{visit_id}.pdf"',
        "X-Page-Count": str(bundle.plan.page_count),
    }
    if bundle.plan.degraded:
        headers["X-Page-Plan-Degraded"] = "1"
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)
