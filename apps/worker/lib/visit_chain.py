from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from packages.shared.models import Visit

logger = logging.getLogger(__name__)


@dataclass
class ChainResult:
    chain_ids: list[str] = field(default_factory=list)
    anchor_id: str | None = None
    visits: dict[str, Visit] = field(default_factory=dict)

    @property
    def current_visit_id(self) -> str | None:
        return self.chain_ids[-1] if self.chain_ids else None

    def visit(self, visit_id: str) -> Visit:
        """Metadata for a chain id, or a bare placeholder when the store never returned it."""
        return self.visits.get(visit_id) or Visit(visit_id=visit_id)


def resolve_chain(
    all_visits: Iterable[Visit],
    visit_meta_override: Visit | None,
    current_visit_id: str,
    deterministic: bool = False,
) -> ChainResult:
    """
    Build the continuity chain for *current_visit_id*: the anchor visit plus its
    follow-ups, oldest first, ending at the current visit.

    - Follow-ups created after the current visit are cut off.
    - Missing anchor/current metadata never fails resolution; the current visit
      is synthesized as a placeholder.
    - With *deterministic*, equal timestamps are ordered by visit id instead of
      source order.
    """
    meta: dict[str, Visit] = {}
    for v in all_visits:
        meta[v.visit_id] = v
    if visit_meta_override is not None:
        meta[visit_meta_override.visit_id] = visit_meta_override

    current = meta.get(current_visit_id)
    if current is not None and current.is_followup:
        anchor_id = current.anchor_visit_id
    else:
        anchor_id = current_visit_id

    if not anchor_id:
        logger.info(f"Chain: follow-up {current_visit_id} has no anchor; printing it alone")
        return ChainResult(chain_ids=[current_visit_id], anchor_id=None, visits=meta)

    def sort_key(v: Visit):
        if deterministic:
            return (*v.chronology_key(), v.visit_id)
        return v.chronology_key()

    chain: list[Visit] = []
    anchor = meta.get(anchor_id)
    if anchor is not None:
        chain.append(anchor)
    else:
        logger.debug(f"Chain: anchor {anchor_id} unavailable; follow-ups only")

    followups = [
        v for v in meta.values()
        if v.anchor_visit_id == anchor_id and v.visit_id != anchor_id
    ]
    followups.sort(key=sort_key)
    chain.extend(followups)

    if not any(v.visit_id == current_visit_id for v in chain):
        chain.append(current if current is not None else Visit(visit_id=current_visit_id))

    chain.sort(key=sort_key)

    seen: set[str] = set()
    ordered: list[str] = []
    for v in chain:
        if v.visit_id in seen:
            continue
        seen.add(v.visit_id)
        ordered.append(v.visit_id)

    idx = ordered.index(current_visit_id)
    limited = ordered[: idx + 1]

    if current is None:
        meta[current_visit_id] = Visit(visit_id=current_visit_id)

    return ChainResult(chain_ids=limited, anchor_id=anchor_id, visits=meta)
