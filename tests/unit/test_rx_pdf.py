from io import BytesIO

from pypdf import PdfReader

from apps.worker.project.content import StaticContentProvider
from apps.worker.project.models import ClinicInfo, PageMeasurements, PrintContext
from apps.worker.project.page_plan import prepare_print_bundle
from apps.worker.steps.export_render import generate_prescription_pdf
from apps.worker.steps.export_render.rx_flowables import tooth_detail_rows
from packages.shared.models import (
    DoctorSummary,
    PatientSummary,
    Prescription,
    RxLine,
    ToothDetail,
    ToothPosition,
    Visit,
)


def mk_visits():
    return [
        Visit(visit_id="A", patient_id="p", created_at=100, opd_no="OPD-100", reason="Toothache"),
        Visit(visit_id="B", patient_id="p", created_at=200, anchor_visit_id="A", opd_no="OPD-101"),
        Visit(visit_id="C", patient_id="p", created_at=300, anchor_visit_id="A", opd_no="OPD-102"),
    ]


def mk_context(notes=None):
    return PrintContext(
        clinic=ClinicInfo(name="Smile Dental Care", contact="+91 98000 00000"),
        doctors=[DoctorSummary(name="Dr. R. Mehta", registration_label="B.D.S Regd. - A-1234")],
        patient=PatientSummary(name="Asha Rao", age=33),
        header_opd_no="OPD-100",
        reception_notes=notes,
    )


def mk_content(lines_per_visit=2):
    history = {
        vid: Prescription(
            visit_id=vid,
            lines=[RxLine(medicine=f"{vid} med {i}", dose="250mg", duration=3) for i in range(lines_per_visit)],
        )
        for vid in ("A", "B", "C")
    }
    return StaticContentProvider(current_lines=history["C"].lines, history=history)


def page_count(pdf_bytes):
    return len(PdfReader(BytesIO(pdf_bytes)).pages)


def page_text(pdf_bytes, index):
    return PdfReader(BytesIO(pdf_bytes)).pages[index].extract_text()


def forced_two_page_bundle(context):
    # A on page 1; B and C share page 2
    measurements = PageMeasurements(first_page_capacity=300, next_page_capacity=700, block_heights=[250, 200, 200])
    return prepare_print_bundle(mk_visits(), "C", mk_content(), measurements, context=context, safety_margin=0)


def test_single_page_pdf():
    context = mk_context()
    bundle = prepare_print_bundle(mk_visits(), "C", mk_content(), context=context)
    pdf = generate_prescription_pdf(bundle, context)
    assert pdf.startswith(b"%PDF")
    assert page_count(pdf) == bundle.plan.page_count == 1
    text = page_text(pdf, 0)
    assert "Smile Dental Care" in text
    assert "C med 0" in text
    assert "A med 1" in text


def test_one_pdf_page_per_plan_page():
    context = mk_context()
    bundle = forced_two_page_bundle(context)
    assert bundle.plan.pages == [["A"], ["B", "C"]]
    pdf = generate_prescription_pdf(bundle, context)
    assert page_count(pdf) == 2
    assert "1/2" in page_text(pdf, 0)
    assert "Smile Dental Care" not in page_text(pdf, 1)


def test_reception_notes_only_on_last_page():
    context = mk_context(notes="Next appointment Monday")
    bundle = forced_two_page_bundle(context)
    pdf = generate_prescription_pdf(bundle, context)
    assert "Next appointment Monday" not in page_text(pdf, 0)
    assert "Next appointment Monday" in page_text(pdf, bundle.plan.page_count - 1)


def test_current_only_emits_current_page_without_chrome():
    context = mk_context()
    bundle = forced_two_page_bundle(context)
    pdf = generate_prescription_pdf(bundle, context, current_only=True)
    assert page_count(pdf) == 1
    text = page_text(pdf, 0)
    assert "C med 0" in text
    assert "B med 0" not in text
    assert "2/2" not in text


def test_current_only_on_first_page_hides_chrome():
    context = mk_context()
    bundle = prepare_print_bundle(mk_visits(), "C", mk_content(), context=context)
    pdf = generate_prescription_pdf(bundle, context, current_only=True)
    text = page_text(pdf, 0)
    assert "Smile Dental Care" not in text
    assert "A med 0" not in text
    assert "C med 0" in text


def test_inline_opd_for_followups():
    context = mk_context()
    bundle = prepare_print_bundle(mk_visits(), "C", mk_content(), context=context)
    text = page_text(generate_prescription_pdf(bundle, context), 0)
    assert "OPD-101" in text
    assert "OPD-102" in text


def test_degraded_plan_still_renders():
    context = mk_context()
    measurements = PageMeasurements(first_page_capacity=300, next_page_capacity=700, block_heights=[1])
    bundle = prepare_print_bundle(mk_visits(), "C", mk_content(), measurements, context=context)
    assert bundle.plan.degraded
    assert page_count(generate_prescription_pdf(bundle, context)) == 1


def test_tooth_detail_rows_grouped_by_quadrant():
    details = [
        ToothDetail(position=ToothPosition.LR, tooth_numbers=["6"], procedure="Extraction"),
        ToothDetail(position=ToothPosition.UL, tooth_numbers=["7", "6"], procedure="Extraction"),
        ToothDetail(position=ToothPosition.UL, tooth_numbers=["6"], advice="Soft diet"),
    ]
    assert tooth_detail_rows(details) == ["UL: 6, 7", "LR: 6", "Extraction", "Soft diet"]
