"""
Visit Store contract and an in-memory implementation.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol

from packages.shared.models import Prescription, Visit
from packages.shared.normalize import normalize_prescription_record, normalize_visit_record


class VisitStore(Protocol):
    """Read-only visit lookups the print pipeline depends on."""

    def list_visits(self, patient_id: str) -> list[Visit]: ...

    def get_visit(self, visit_id: str) -> Optional[Visit]: ...

    def get_prescription(self, visit_id: str) -> Optional[Prescription]: ...


class InMemoryVisitStore:
    """Dict-backed store. Raw records are normalized on the way in."""

    def __init__(
        self,
        visits: Iterable[Visit | dict[str, Any]] = (),
        prescriptions: Iterable[Prescription | dict[str, Any]] = (),
    ) -> None:
        self._visits: dict[str, Visit] = {}
        self._prescriptions: dict[str, Prescription] = {}
        for v in visits:
            self.add_visit(v)
        for rx in prescriptions:
            self.add_prescription(rx)

    def add_visit(self, visit: Visit | dict[str, Any]) -> Visit:
        if not isinstance(visit, Visit):
            visit = normalize_visit_record(visit)
        self._visits[visit.visit_id] = visit
        return visit

    def add_prescription(self, rx: Prescription | dict[str, Any]) -> Prescription:
        if not isinstance(rx, Prescription):
            rx = normalize_prescription_record(rx)
        self._prescriptions[rx.visit_id] = rx
        return rx

    def list_visits(self, patient_id: str) -> list[Visit]:
        return [v for v in self._visits.values() if v.patient_id == patient_id]

    def get_visit(self, visit_id: str) -> Optional[Visit]:
        return self._visits.get(visit_id)

    def get_prescription(self, visit_id: str) -> Optional[Prescription]:
        return self._prescriptions.get(visit_id)
