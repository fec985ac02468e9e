"""
Flowable builders for prescription pages.

The same builders feed both the off-screen measurement pass and the PDF
renderer, so a block is measured exactly as it is drawn.
"""
from __future__ import annotations

from typing import Any, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Flowable, HRFlowable, Paragraph, Spacer, Table, TableStyle

from apps.worker.project.models import PrintContext, VisitBlock
from apps.worker.steps.export_render.constants import PageGeometry
from packages.shared.models import ToothDetail, ToothPosition

EMERALD = colors.HexColor("#059669")
GREY_TEXT = colors.HexColor("#374151")
LIGHT_RULE = colors.HexColor("#E5E7EB")

_POSITION_ORDER = [ToothPosition.UL, ToothPosition.UR, ToothPosition.LL, ToothPosition.LR]


def build_styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()["Normal"]
    return {
        "clinic": ParagraphStyle("RxClinic", parent=base, fontName="Helvetica-Bold", fontSize=15, leading=18, alignment=TA_CENTER),
        "label": ParagraphStyle("RxLabel", parent=base, fontName="Helvetica-Bold", fontSize=8, leading=10, alignment=TA_CENTER, textColor=EMERALD),
        "contact": ParagraphStyle("RxContact", parent=base, fontName="Helvetica-Bold", fontSize=10, leading=12, alignment=TA_CENTER),
        "address": ParagraphStyle("RxAddress", parent=base, fontSize=7.5, leading=10, alignment=TA_CENTER, textColor=GREY_TEXT),
        "hours": ParagraphStyle("RxHours", parent=base, fontSize=7.5, leading=10, alignment=TA_CENTER, textColor=colors.HexColor("#F87171")),
        "doctor": ParagraphStyle("RxDoctor", parent=base, fontName="Helvetica-Bold", fontSize=9.5, leading=12),
        "doctor_right": ParagraphStyle("RxDoctorRight", parent=base, fontName="Helvetica-Bold", fontSize=9.5, leading=12, alignment=TA_RIGHT),
        "regd": ParagraphStyle("RxRegd", parent=base, fontSize=8, leading=10, textColor=GREY_TEXT),
        "regd_right": ParagraphStyle("RxRegdRight", parent=base, fontSize=8, leading=10, textColor=GREY_TEXT, alignment=TA_RIGHT),
        "field": ParagraphStyle("RxField", parent=base, fontSize=9, leading=12, textColor=GREY_TEXT),
        "block_date": ParagraphStyle("RxBlockDate", parent=base, fontName="Helvetica-Bold", fontSize=9, leading=12),
        "block_reason": ParagraphStyle("RxBlockReason", parent=base, fontSize=8.5, leading=12, alignment=TA_RIGHT, textColor=GREY_TEXT),
        "block_opd": ParagraphStyle("RxBlockOpd", parent=base, fontName="Helvetica-Bold", fontSize=8.5, leading=12, alignment=TA_RIGHT),
        "line": ParagraphStyle("RxLine", parent=base, fontName="Helvetica", fontSize=10, leading=14, leftIndent=18, bulletIndent=0, spaceAfter=2),
        "empty": ParagraphStyle("RxEmpty", parent=base, fontSize=9, leading=12, textColor=colors.grey),
        "tooth": ParagraphStyle("RxTooth", parent=base, fontSize=9, leading=12),
        "notes_title": ParagraphStyle("RxNotesTitle", parent=base, fontName="Helvetica-Bold", fontSize=7.5, leading=10, textColor=GREY_TEXT),
        "notes": ParagraphStyle("RxNotes", parent=base, fontSize=7.5, leading=10),
    }


def _p(text: str | None, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or ""), style)


def _rule(color=LIGHT_RULE, thickness: float = 0.6, space_before: float = 6, space_after: float = 0) -> HRFlowable:
    return HRFlowable(width="100%", thickness=thickness, color=color, spaceBefore=space_before, spaceAfter=space_after)


def _date_label(block: VisitBlock) -> str:
    return block.visit_date.strftime("%d %b %Y") if block.visit_date else "—"


# ── Page chrome ───────────────────────────────────────────────────────────

def build_letterhead(context: PrintContext, styles: dict[str, ParagraphStyle], width: float) -> list[Flowable]:
    clinic = context.clinic
    rows: list[Flowable] = [_p(clinic.name, styles["clinic"])]
    if clinic.contact:
        rows.append(_p("CONTACT", styles["label"]))
        rows.append(_p(clinic.contact, styles["contact"]))
    if clinic.address:
        rows.append(_p(clinic.address, styles["address"]))
    if clinic.hours:
        rows.append(_p(clinic.hours.upper(), styles["hours"]))
    return rows + [_rule(color=EMERALD, thickness=0.8)]


def build_doctor_header(context: PrintContext, styles: dict[str, ParagraphStyle], width: float) -> list[Flowable]:
    if not context.doctors:
        return []
    left = context.doctors[0]
    right = context.doctors[1] if len(context.doctors) > 1 else None
    left_cell = [_p(left.name, styles["doctor"]), _p(left.registration_label or "", styles["regd"])]
    right_cell: Any = ""
    if right is not None:
        right_cell = [_p(right.name, styles["doctor_right"]), _p(right.registration_label or "", styles["regd_right"])]
    table = Table([[left_cell, right_cell]], colWidths=[width / 2, width / 2])
    table.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 0),
        ("TOPPADDING", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
    ]))
    return [table]


def build_patient_header(context: PrintContext, styles: dict[str, ParagraphStyle], width: float) -> list[Flowable]:
    patient = context.patient
    regd = context.visit_date or patient.registered_on
    left_rows = [
        ("Patient Name", patient.name or "—"),
        ("Contact No.", patient.phone or "—"),
        ("Age/Sex", patient.age_sex_label()),
    ]
    right_rows = [
        ("Regd. Date", regd.isoformat() if regd else "—"),
        ("SD. ID", patient.sd_id or "—"),
        ("OPD. No", context.header_opd_no or "—"),
    ]
    field = styles["field"]
    data = []
    for (ll, lv), (rl, rv) in zip(left_rows, right_rows):
        data.append([
            _p(ll, field), _p(":", field), Paragraph(f"<b>{escape(lv)}</b>", field),
            _p(rl, field), _p(":", field), Paragraph(f"<b>{escape(rv)}</b>", field),
        ])
    label_w = 62
    colon_w = 8
    value_w = (width - 2 * (label_w + colon_w)) / 2
    table = Table(data, colWidths=[label_w, colon_w, value_w, label_w, colon_w, value_w])
    table.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 2),
        ("TOPPADDING", (0, 0), (-1, -1), 1),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 1),
    ]))
    return [Spacer(1, 6), table, _rule(color=colors.HexColor("#9CA3AF"), thickness=0.6, space_before=8)]


def build_first_page_chrome(context: PrintContext, styles: dict[str, ParagraphStyle], width: float) -> list[Flowable]:
    """Everything above the block area on page 1."""
    return (
        build_letterhead(context, styles, width)
        + build_doctor_header(context, styles, width)
        + build_patient_header(context, styles, width)
    )


def build_notes(notes: str | None, styles: dict[str, ParagraphStyle], width: float, geometry: PageGeometry) -> list[Flowable]:
    if not notes or not notes.strip():
        return []
    body = "<br/>".join(escape(line) for line in notes.strip().splitlines())
    box = Table(
        [[_p("Reception Notes", styles["notes_title"])], [Paragraph(body, styles["notes"])]],
        colWidths=[width],
    )
    box.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.6, LIGHT_RULE),
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F9FAFB")),
        ("LEFTPADDING", (0, 0), (-1, -1), 8),
        ("RIGHTPADDING", (0, 0), (-1, -1), 8),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]))
    return [Spacer(1, geometry.block_gap), box, Spacer(1, geometry.notes_pad_bottom)]


# ── Visit blocks ──────────────────────────────────────────────────────────

def tooth_detail_rows(details: Sequence[ToothDetail]) -> list[str]:
    """One row per quadrant (UL, UR, LL, LR) plus unique procedure/advice/notes text."""
    by_pos: dict[ToothPosition, list[str]] = {p: [] for p in _POSITION_ORDER}
    extras: list[str] = []
    for d in details:
        for n in d.tooth_numbers:
            if n not in by_pos[d.position]:
                by_pos[d.position].append(n)
        for text in (d.procedure, d.advice, d.notes):
            if text and text not in extras:
                extras.append(text)
    rows = [f"{p.value}: {', '.join(sorted(nums))}" for p, nums in by_pos.items() if nums]
    return rows + extras


def build_block_flowables(block: VisitBlock, styles: dict[str, ParagraphStyle], width: float, geometry: PageGeometry) -> list[Flowable]:
    if block.is_empty:
        return [Spacer(1, 6)]

    right_text = block.reason or ""
    header_cells: list[Any] = [_p(_date_label(block), styles["block_date"]), _p(right_text, styles["block_reason"])]
    col_widths = [width * 0.3, width * 0.7]
    if block.opd_inline:
        header_cells.append(_p(block.opd_inline, styles["block_opd"]))
        col_widths = [width * 0.25, width * 0.45, width * 0.3]
    header = Table([header_cells], colWidths=col_widths)
    header.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "BOTTOM"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 0),
        ("TOPPADDING", (0, 0), (-1, -1), 0),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    out: list[Flowable] = [header]

    teeth = tooth_detail_rows(block.tooth_details)
    if teeth:
        out.extend(_p(row, styles["tooth"]) for row in teeth)
        out.append(Spacer(1, 4))

    if not block.lines:
        out.append(_p("No medicines recorded.", styles["empty"]))
    else:
        for idx, line in enumerate(block.lines, start=1):
            out.append(Paragraph(escape(line.display_text()), styles["line"], bulletText=f"{idx}."))

    out.append(_rule(space_before=8))
    out.append(Spacer(1, geometry.block_gap))
    return out


# ── Stack helpers (shared by measurement and drawing) ────────────────────

def stack_height(flowables: Sequence[Flowable], canv: Any, width: float, avail_height: float) -> float:
    total = 0.0
    for f in flowables:
        _, h = f.wrapOn(canv, width, avail_height)
        total += f.getSpaceBefore() + h + f.getSpaceAfter()
    return total


def draw_stack(
    flowables: Sequence[Flowable],
    canv: Any,
    x: float,
    top: float,
    width: float,
    avail_height: float,
    visible: bool = True,
) -> float:
    """Lay *flowables* downward from *top*. Hidden stacks advance identically but draw nothing."""
    y = top
    for f in flowables:
        _, h = f.wrapOn(canv, width, avail_height)
        y -= f.getSpaceBefore() + h
        if visible:
            f.drawOn(canv, x, y)
        y -= f.getSpaceAfter()
    return top - y
