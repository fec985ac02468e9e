"""
Measurement bookkeeping: input keys, generations and convergence.

A measurement is only trusted when it was started for the inputs that are
current *now*. Every `begin()` bumps a generation counter; a completion whose
ticket is not the newest generation, or whose key no longer matches the
latest inputs, is dropped.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MeasurementUnavailable(RuntimeError):
    """The rendering surface cannot produce settled heights right now."""


def measure_key(
    chain_ids: Sequence[str],
    line_counts: Sequence[int],
    tooth_detail_counts: Sequence[int],
    notes_length: int,
    history_enabled: bool = True,
) -> str:
    """Snapshot of everything that can change a block or notes height."""
    raw = "|".join(
        [
            "H" if history_enabled else "N",
            ",".join(chain_ids),
            ",".join(str(n) for n in line_counts),
            ",".join(str(n) for n in tooth_detail_counts),
            str(notes_length),
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class MeasurementTicket:
    generation: int
    key: str


class MeasurementTracker(Generic[T]):
    """Holds the latest accepted measurement for one render target."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._current_key: Optional[str] = None
        self._result: Optional[T] = None
        self._result_key: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self, key: str) -> MeasurementTicket:
        with self._lock:
            self._generation += 1
            self._current_key = key
            if self._result_key != key:
                self._result = None
                self._result_key = None
            return MeasurementTicket(generation=self._generation, key=key)

    def is_stale(self, ticket: MeasurementTicket) -> bool:
        return ticket.generation != self._generation or ticket.key != self._current_key

    def complete(self, ticket: MeasurementTicket, result: T) -> bool:
        """Apply *result* if *ticket* is still current. Returns whether it was applied."""
        with self._lock:
            if self.is_stale(ticket):
                logger.debug(
                    f"Discarding stale measurement gen={ticket.generation} (current gen={self._generation})"
                )
                return False
            self._result = result
            self._result_key = ticket.key
            return True

    def result_for(self, key: str) -> Optional[T]:
        """Last accepted result, only if it was measured for *key*."""
        if self._result_key == key:
            return self._result
        return None


def settle(measure: Callable[[], T], max_passes: int = 3) -> T:
    """
    Run *measure* until two consecutive passes agree.

    The first pass is never trusted on its own; layout that is still settling
    (fonts, late content) shows up as disagreement between passes.
    """
    if max_passes < 2:
        raise ValueError("settle() needs at least two passes to compare")
    previous = measure()
    for attempt in range(2, max_passes + 1):
        current = measure()
        if current == previous:
            logger.debug(f"Measurement settled after {attempt} passes")
            return current
        previous = current
    raise MeasurementUnavailable(f"Measurement did not settle within {max_passes} passes")
