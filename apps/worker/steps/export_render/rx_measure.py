"""
Off-screen height measurement for prescription pages.

Blocks, notes and the two page skeletons are laid out on a throwaway reportlab
canvas of the print page size. Results are keyed by a snapshot of their
inputs; see apps.worker.lib.measurement for staleness rules.
"""
from __future__ import annotations

import asyncio
import logging
import math
from io import BytesIO
from typing import Optional, Sequence

from reportlab.pdfgen import canvas as pdf_canvas

from apps.worker.lib.measurement import (
    MeasurementTracker,
    MeasurementUnavailable,
    measure_key,
    settle,
)
from apps.worker.project.models import PageMeasurements, PrintContext, VisitBlock
from apps.worker.steps.export_render.constants import (
    DEFAULT_GEOMETRY,
    RX_MEASURE_MAX_PASSES,
    PageGeometry,
)
from apps.worker.steps.export_render.rx_flowables import (
    build_block_flowables,
    build_first_page_chrome,
    build_notes,
    build_styles,
    stack_height,
)

logger = logging.getLogger(__name__)


def blocks_measure_key(blocks: Sequence[VisitBlock], notes: str | None, history_enabled: bool = True) -> str:
    return measure_key(
        chain_ids=[b.visit_id for b in blocks],
        line_counts=[len(b.lines) for b in blocks],
        tooth_detail_counts=[len(b.tooth_details) for b in blocks],
        notes_length=len((notes or "").strip()),
        history_enabled=history_enabled,
    )


def _measure_once(
    blocks: Sequence[VisitBlock],
    context: PrintContext,
    geometry: PageGeometry,
    history_enabled: bool,
) -> tuple[float, float, float, tuple[float, ...]]:
    surface = pdf_canvas.Canvas(BytesIO(), pagesize=(geometry.page_width, geometry.page_height))
    styles = build_styles()
    width = geometry.content_width
    avail = geometry.frame_height

    chrome_h = stack_height(build_first_page_chrome(context, styles, width), surface, width, avail)
    first_cap = geometry.frame_height - geometry.first_page_top_pad - chrome_h
    if history_enabled:
        next_cap = geometry.frame_height - geometry.next_page_top_pad
    else:
        # Without history there is only ever one page
        next_cap = first_cap

    notes_h = 0.0
    if context.has_notes:
        notes_h = stack_height(build_notes(context.reception_notes, styles, width, geometry), surface, width, avail)

    heights = tuple(
        float(math.ceil(stack_height(build_block_flowables(b, styles, width, geometry), surface, width, avail)))
        for b in blocks
    )
    return (math.floor(first_cap), math.floor(next_cap), float(math.ceil(notes_h)), heights)


def measure_page_inputs(
    blocks: Sequence[VisitBlock],
    context: PrintContext,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    history_enabled: bool = True,
    max_passes: int = RX_MEASURE_MAX_PASSES,
) -> PageMeasurements:
    """
    Measure page capacities, notes height and per-block heights.

    Raises MeasurementUnavailable when the layout engine cannot produce
    settled, usable numbers.
    """
    def _pass():
        return _measure_once(blocks, context, geometry, history_enabled)

    try:
        first_cap, next_cap, notes_h, heights = settle(_pass, max_passes=max_passes)
    except MeasurementUnavailable:
        raise
    except Exception as exc:
        raise MeasurementUnavailable(f"Layout engine failed while measuring: {exc}") from exc

    if first_cap <= 0 or next_cap <= 0:
        raise MeasurementUnavailable(
            f"Page chrome leaves no room for content (first={first_cap}, next={next_cap})"
        )

    return PageMeasurements(
        first_page_capacity=first_cap,
        next_page_capacity=next_cap,
        notes_height=notes_h,
        block_heights=list(heights),
        key=blocks_measure_key(blocks, context.reception_notes, history_enabled),
    )


class HeightMeasurementAdapter:
    """
    Measures one print target and keeps the newest accepted result.

    `measure()` is synchronous. `measure_async()` runs the layout pass off the
    event loop; if inputs change while it runs, its result is discarded and
    None is returned.
    """

    def __init__(self, geometry: PageGeometry = DEFAULT_GEOMETRY, max_passes: int = RX_MEASURE_MAX_PASSES) -> None:
        self.geometry = geometry
        self.max_passes = max_passes
        self.tracker: MeasurementTracker[PageMeasurements] = MeasurementTracker()

    def cached(self, blocks: Sequence[VisitBlock], context: PrintContext, history_enabled: bool = True) -> Optional[PageMeasurements]:
        return self.tracker.result_for(blocks_measure_key(blocks, context.reception_notes, history_enabled))

    def measure(self, blocks: Sequence[VisitBlock], context: PrintContext, history_enabled: bool = True) -> PageMeasurements:
        key = blocks_measure_key(blocks, context.reception_notes, history_enabled)
        ticket = self.tracker.begin(key)
        result = measure_page_inputs(blocks, context, self.geometry, history_enabled, self.max_passes)
        self.tracker.complete(ticket, result)
        return result

    async def measure_async(
        self,
        blocks: Sequence[VisitBlock],
        context: PrintContext,
        history_enabled: bool = True,
    ) -> Optional[PageMeasurements]:
        key = blocks_measure_key(blocks, context.reception_notes, history_enabled)
        ticket = self.tracker.begin(key)
        result = await asyncio.to_thread(
            measure_page_inputs, list(blocks), context, self.geometry, history_enabled, self.max_passes
        )
        if not self.tracker.complete(ticket, result):
            logger.info(f"Measurement for key={key} superseded; result dropped")
            return None
        return result
