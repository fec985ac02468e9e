"""
Prescription content for chain blocks.

The current visit's lines come straight from the prescription being printed;
every other chain entry is looked up lazily through the visit store.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from apps.worker.lib.visit_chain import ChainResult
from apps.worker.project.models import VisitBlock
from packages.shared.models import Prescription, RxLine, ToothDetail
from packages.shared.visit_store import VisitStore

logger = logging.getLogger(__name__)


class PrescriptionContentProvider(Protocol):
    def get_current_lines(self) -> list[RxLine]: ...

    def get_current_tooth_details(self) -> list[ToothDetail]: ...

    def get_lines_for_visit(self, visit_id: str) -> list[RxLine]: ...

    def get_tooth_details_for_visit(self, visit_id: str) -> list[ToothDetail]: ...


class StoreContentProvider:
    """Content for one print: the current prescription plus store lookups for history."""

    def __init__(self, store: VisitStore, current: Optional[Prescription]) -> None:
        self.store = store
        self.current = current
        self._fetched: dict[str, Optional[Prescription]] = {}

    def _historical(self, visit_id: str) -> Optional[Prescription]:
        if visit_id not in self._fetched:
            self._fetched[visit_id] = self.store.get_prescription(visit_id)
            if self._fetched[visit_id] is None:
                logger.debug(f"No prescription on file for history visit {visit_id}")
        return self._fetched[visit_id]

    def get_current_lines(self) -> list[RxLine]:
        return list(self.current.lines) if self.current else []

    def get_current_tooth_details(self) -> list[ToothDetail]:
        return list(self.current.tooth_details) if self.current else []

    def get_lines_for_visit(self, visit_id: str) -> list[RxLine]:
        rx = self._historical(visit_id)
        return list(rx.lines) if rx else []

    def get_tooth_details_for_visit(self, visit_id: str) -> list[ToothDetail]:
        rx = self._historical(visit_id)
        return list(rx.tooth_details) if rx else []


class StaticContentProvider:
    """Content supplied up front, keyed by visit id."""

    def __init__(
        self,
        current_lines: Sequence[RxLine] = (),
        current_tooth_details: Sequence[ToothDetail] = (),
        history: dict[str, Prescription] | None = None,
    ) -> None:
        self._current_lines = list(current_lines)
        self._current_teeth = list(current_tooth_details)
        self._history = history or {}

    def get_current_lines(self) -> list[RxLine]:
        return list(self._current_lines)

    def get_current_tooth_details(self) -> list[ToothDetail]:
        return list(self._current_teeth)

    def get_lines_for_visit(self, visit_id: str) -> list[RxLine]:
        rx = self._history.get(visit_id)
        return list(rx.lines) if rx else []

    def get_tooth_details_for_visit(self, visit_id: str) -> list[ToothDetail]:
        rx = self._history.get(visit_id)
        return list(rx.tooth_details) if rx else []


def build_blocks(chain: ChainResult, current_visit_id: str, content: PrescriptionContentProvider) -> list[VisitBlock]:
    """One block per chain id. Non-anchor blocks carry their own OPD number inline."""
    blocks: list[VisitBlock] = []
    for vid in chain.chain_ids:
        visit = chain.visit(vid)
        is_current = vid == current_visit_id
        is_anchor = chain.anchor_id is not None and vid == chain.anchor_id
        if is_current:
            lines = content.get_current_lines()
            teeth = content.get_current_tooth_details()
        else:
            lines = content.get_lines_for_visit(vid)
            teeth = content.get_tooth_details_for_visit(vid)
        blocks.append(
            VisitBlock(
                visit_id=vid,
                is_current=is_current,
                is_anchor=is_anchor,
                visit_date=visit.visit_date,
                reason=visit.reason,
                opd_inline=None if is_anchor else visit.opd_no,
                lines=lines,
                tooth_details=teeth,
            )
        )
    return blocks
