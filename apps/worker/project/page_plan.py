"""
Composed entry point: visits + current visit + content -> page plan.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from apps.worker.lib.rx_pagination import paginate, single_page_plan
from apps.worker.lib.visit_chain import ChainResult, resolve_chain
from apps.worker.lib.measurement import MeasurementUnavailable
from apps.worker.project.content import PrescriptionContentProvider, build_blocks
from apps.worker.project.models import PageMeasurements, PagePlan, PrintContext, VisitBlock
from apps.worker.steps.export_render.constants import (
    DEFAULT_GEOMETRY,
    RX_BACKFILL_PASSES,
    RX_SAFETY_MARGIN,
    PageGeometry,
)
from apps.worker.steps.export_render.rx_measure import (
    HeightMeasurementAdapter,
    blocks_measure_key,
)
from packages.shared.models import Visit

logger = logging.getLogger(__name__)


@dataclass
class PrintBundle:
    plan: PagePlan
    chain: ChainResult
    blocks: list[VisitBlock] = field(default_factory=list)

    def block(self, visit_id: str) -> Optional[VisitBlock]:
        for b in self.blocks:
            if b.visit_id == visit_id:
                return b
        return None


def header_opd_no(chain: ChainResult, current_visit_id: str, history_enabled: bool) -> Optional[str]:
    """With history on, the anchor visit's OPD number heads the print; otherwise the current visit's."""
    if history_enabled and chain.anchor_id and chain.anchor_id in chain.visits:
        anchor_opd = chain.visits[chain.anchor_id].opd_no
        if anchor_opd:
            return anchor_opd
    return chain.visit(current_visit_id).opd_no


def _degraded(plan_kwargs: dict, chain_ids: list[str], reason: str) -> PagePlan:
    logger.info(f"Page plan degraded to a single page: {reason}")
    return PagePlan(**plan_kwargs, pages=single_page_plan(chain_ids), degraded=True, degraded_reason=reason)


def prepare_print_bundle(
    visits: Iterable[Visit],
    current_visit_id: str,
    content: PrescriptionContentProvider,
    measurements: Optional[PageMeasurements] = None,
    *,
    context: Optional[PrintContext] = None,
    visit_meta_override: Optional[Visit] = None,
    history_enabled: bool = True,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    adapter: Optional[HeightMeasurementAdapter] = None,
    safety_margin: float = RX_SAFETY_MARGIN,
    backfill_passes: int = RX_BACKFILL_PASSES,
) -> PrintBundle:
    context = context or PrintContext()

    if history_enabled:
        chain = resolve_chain(visits, visit_meta_override, current_visit_id)
    else:
        # History off: no chain build, no continuation pages
        meta = {v.visit_id: v for v in visits}
        if visit_meta_override is not None:
            meta[visit_meta_override.visit_id] = visit_meta_override
        chain = ChainResult(chain_ids=[current_visit_id], anchor_id=None, visits=meta)

    blocks = build_blocks(chain, current_visit_id, content)
    key = blocks_measure_key(blocks, context.reception_notes, history_enabled)
    plan_kwargs = dict(
        chain_ids=list(chain.chain_ids),
        anchor_id=chain.anchor_id,
        current_visit_id=current_visit_id,
        has_notes=context.has_notes,
        history_enabled=history_enabled,
        input_key=key,
    )

    if not history_enabled:
        plan = PagePlan(**plan_kwargs, pages=single_page_plan(chain.chain_ids))
        return PrintBundle(plan=plan, chain=chain, blocks=blocks)

    if measurements is None:
        adapter = adapter or HeightMeasurementAdapter(geometry)
        try:
            measurements = adapter.measure(blocks, context, history_enabled=True)
        except MeasurementUnavailable as exc:
            return PrintBundle(plan=_degraded(plan_kwargs, chain.chain_ids, str(exc)), chain=chain, blocks=blocks)
    elif measurements.key and measurements.key != key:
        reason = "measurements were taken for different inputs"
        return PrintBundle(plan=_degraded(plan_kwargs, chain.chain_ids, reason), chain=chain, blocks=blocks)

    if len(measurements.block_heights) != len(chain.chain_ids):
        reason = f"{len(measurements.block_heights)} heights for {len(chain.chain_ids)} blocks"
        return PrintBundle(plan=_degraded(plan_kwargs, chain.chain_ids, reason), chain=chain, blocks=blocks)

    pages = paginate(
        chain.chain_ids,
        measurements.block_heights,
        measurements.first_page_capacity,
        measurements.next_page_capacity,
        notes_height=measurements.notes_height,
        has_notes=context.has_notes,
        safety_margin=safety_margin,
        backfill_passes=backfill_passes,
    )
    plan = PagePlan(**plan_kwargs, pages=pages, measurements=measurements)
    logger.debug(f"Page plan for {current_visit_id}: {len(pages)} page(s), chain={chain.chain_ids}")
    return PrintBundle(plan=plan, chain=chain, blocks=blocks)


def compute_page_plan(
    visits: Iterable[Visit],
    current_visit_id: str,
    content: PrescriptionContentProvider,
    measurements: Optional[PageMeasurements] = None,
    **kwargs,
) -> PagePlan:
    """Chain resolution, measurement and pagination in one call. See prepare_print_bundle for options."""
    return prepare_print_bundle(visits, current_visit_id, content, measurements, **kwargs).plan
