"""
Page packing for prescription history prints.

Blocks are atomic: a visit's block is never split across pages. Heights come
from the measurement pass (see export_render.rx_measure); everything here is
pure and idempotent.
"""
from __future__ import annotations

import logging
from typing import Sequence

from apps.worker.project.models import CurrentOnlyProjection

logger = logging.getLogger(__name__)

DEFAULT_BACKFILL_PASSES = 3


def single_page_plan(chain_ids: Sequence[str]) -> list[list[str]]:
    """Unpaginated fallback: the whole chain on one page."""
    return [list(chain_ids)]


def _page_cap(page_index: int, first_cap: float, next_cap: float) -> float:
    return first_cap if page_index == 0 else next_cap


def _greedy_pages(
    chain_ids: Sequence[str],
    heights: dict[str, float],
    first_cap: float,
    next_cap: float,
    safety_margin: float,
) -> list[list[str]]:
    pages: list[list[str]] = []
    cur: list[str] = []
    used = 0.0
    cap = first_cap

    for vid in chain_ids:
        h = heights[vid]
        if cur and used + h > cap - safety_margin:
            pages.append(cur)
            cur = []
            used = 0.0
            cap = next_cap
        # Oversized single blocks still get placed; they overflow their own page
        cur.append(vid)
        used += h

    if cur:
        pages.append(cur)
    return pages


def _backfill(
    pages: list[list[str]],
    heights: dict[str, float],
    first_cap: float,
    next_cap: float,
    safety_margin: float,
    passes: int,
) -> list[list[str]]:
    pages = [list(p) for p in pages]
    for _ in range(max(0, passes)):
        moved = False
        for p in range(len(pages) - 1):
            limit = _page_cap(p, first_cap, next_cap) - safety_margin
            used = sum(heights[v] for v in pages[p])
            nxt = pages[p + 1]
            while nxt and used + heights[nxt[0]] <= limit:
                vid = nxt.pop(0)
                pages[p].append(vid)
                used += heights[vid]
                moved = True
        pages = [p for p in pages if p]
        if not moved:
            break
    return pages


def _place_notes(
    pages: list[list[str]],
    heights: dict[str, float],
    first_cap: float,
    next_cap: float,
    notes_height: float,
    safety_margin: float,
) -> list[list[str]]:
    pages = [list(p) for p in pages] or [[]]
    while True:
        last = pages[-1]
        limit = _page_cap(len(pages) - 1, first_cap, next_cap) - safety_margin
        used = sum(heights[v] for v in last)
        if not last or used + notes_height <= limit:
            return pages

        overflow: list[str] = []
        while last and used + notes_height > limit:
            vid = last.pop()
            used -= heights[vid]
            overflow.insert(0, vid)

        if not last:
            # Nothing fits beside the notes; keep the page whole and give the notes their own page
            pages[-1] = overflow
            pages.append([])
            return pages
        pages.append(overflow)


def paginate(
    chain_ids: Sequence[str],
    block_heights: Sequence[float],
    first_cap: float,
    next_cap: float,
    notes_height: float = 0.0,
    has_notes: bool = False,
    safety_margin: float = 0.0,
    backfill_passes: int = DEFAULT_BACKFILL_PASSES,
) -> list[list[str]]:
    """
    Split *chain_ids* into pages, greedy first and then backfilled.

    Page 0 is checked against *first_cap*; every later page against *next_cap*.
    When *has_notes*, the last page keeps room for *notes_height* below its
    blocks. Mismatched height data (a chain still being measured) yields a
    single unpaginated page.
    """
    ids = list(chain_ids)
    if not ids:
        return [[]]
    if len(block_heights) != len(ids):
        logger.debug(
            f"Pagination: {len(block_heights)} heights for {len(ids)} blocks; using single page"
        )
        return single_page_plan(ids)

    heights = {vid: float(h) for vid, h in zip(ids, block_heights)}

    pages = _greedy_pages(ids, heights, first_cap, next_cap, safety_margin)
    pages = _backfill(pages, heights, first_cap, next_cap, safety_margin, backfill_passes)
    if has_notes:
        pages = _place_notes(pages, heights, first_cap, next_cap, notes_height, safety_margin)
    return pages


def project_current_only(pages: Sequence[Sequence[str]], current_visit_id: str) -> CurrentOnlyProjection:
    """Locate the page holding the current visit. Falls back to page 0."""
    for idx, page in enumerate(pages):
        if current_visit_id in page:
            return CurrentOnlyProjection(
                page_index=idx, page_ids=list(page), current_visit_id=current_visit_id
            )
    logger.info(f"Current-only: {current_visit_id} not on any page; using page 0")
    first = list(pages[0]) if pages else []
    return CurrentOnlyProjection(page_index=0, page_ids=first, current_visit_id=current_visit_id)
