"""
Prescription PDF rendering from a page plan.
"""
from __future__ import annotations

import logging
from io import BytesIO
from typing import TYPE_CHECKING, Optional

from reportlab.pdfgen import canvas as pdf_canvas

from apps.worker.lib.rx_pagination import project_current_only
from apps.worker.steps.export_render.constants import DEFAULT_GEOMETRY, PageGeometry
from apps.worker.steps.export_render.rx_flowables import (
    build_block_flowables,
    build_first_page_chrome,
    build_notes,
    build_styles,
    draw_stack,
    stack_height,
)

if TYPE_CHECKING:
    from apps.worker.project.models import PrintContext, VisitBlock
    from apps.worker.project.page_plan import PrintBundle

logger = logging.getLogger(__name__)


def _draw_page(
    c: pdf_canvas.Canvas,
    page_index: int,
    page_ids: list[str],
    blocks_by_id: dict[str, VisitBlock],
    context: PrintContext,
    geometry: PageGeometry,
    styles: dict,
    total_pages: int,
    is_last: bool,
    visible_ids: Optional[set[str]],
) -> None:
    """*visible_ids* of None draws everything; otherwise only those blocks, and no page chrome."""
    chrome_visible = visible_ids is None
    width = geometry.content_width
    x = geometry.content_left
    avail = geometry.frame_height
    top = geometry.frame_top

    if chrome_visible and total_pages > 1:
        c.saveState()
        c.setFont("Helvetica-Bold", 7.5)
        c.setFillGray(0.45)
        c.drawRightString(geometry.page_width - geometry.margin, top - 8, f"{page_index + 1}/{total_pages}")
        c.restoreState()

    if page_index == 0:
        top -= geometry.first_page_top_pad
        chrome = build_first_page_chrome(context, styles, width)
        top -= draw_stack(chrome, c, x, top, width, avail, visible=chrome_visible)
    else:
        top -= geometry.next_page_top_pad

    for vid in page_ids:
        block = blocks_by_id.get(vid)
        if block is None:
            logger.warning(f"Page plan references unknown block {vid}; skipping")
            continue
        visible = visible_ids is None or vid in visible_ids
        top -= draw_stack(build_block_flowables(block, styles, width, geometry), c, x, top, width, avail, visible=visible)

    if is_last and context.has_notes:
        notes = build_notes(context.reception_notes, styles, width, geometry)
        notes_h = stack_height(notes, c, width, avail)
        draw_stack(notes, c, x, geometry.margin + notes_h, width, avail, visible=chrome_visible)


def generate_prescription_pdf(
    bundle: PrintBundle,
    context: PrintContext,
    current_only: bool = False,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
) -> bytes:
    """
    Render the bundle's page plan to PDF bytes.

    In current-only mode just the page holding the current visit is emitted.
    Every other block on it, plus letterhead, headers, separators and notes,
    still takes up its space but is not drawn, so the current visit lands at
    the same position as in the full history print.
    """
    plan = bundle.plan
    buffer = BytesIO()
    c = pdf_canvas.Canvas(buffer, pagesize=(geometry.page_width, geometry.page_height))
    c.setTitle(f"Prescription {plan.current_visit_id}")
    styles = build_styles()
    blocks_by_id = {b.visit_id: b for b in bundle.blocks}
    pages = plan.pages or [[plan.current_visit_id]]
    last_index = len(pages) - 1

    if current_only:
        projection = project_current_only(pages, plan.current_visit_id)
        targets = [projection.page_index]
        visible_ids: Optional[set[str]] = projection.visible_ids
    else:
        targets = list(range(len(pages)))
        visible_ids = None

    for idx in targets:
        _draw_page(
            c,
            idx,
            pages[idx],
            blocks_by_id,
            context,
            geometry,
            styles,
            total_pages=len(pages),
            is_last=idx == last_index,
            visible_ids=visible_ids,
        )
        c.showPage()

    c.save()
    logger.info(
        f"Rendered prescription {plan.current_visit_id}: {len(targets)} page(s)"
        f"{' (current only)' if current_only else ''}{' [degraded]' if plan.degraded else ''}"
    )
    return buffer.getvalue()
