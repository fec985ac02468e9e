"""
Print geometry and clinic letterhead settings for prescription export.

The physical page is fixed (A4); all heights are reportlab points in that
page's coordinate space.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


RX_SAFETY_MARGIN = _float_env("RX_SAFETY_MARGIN", 6.0)
RX_BACKFILL_PASSES = max(0, _int_env("RX_BACKFILL_PASSES", 3))
RX_MEASURE_MAX_PASSES = max(2, _int_env("RX_MEASURE_MAX_PASSES", 3))
RX_PAGE_MARGIN_MM = _float_env("RX_PAGE_MARGIN_MM", 8.0)

CLINIC_NAME = os.getenv("CLINIC_NAME", "Dental Clinic").strip()
CLINIC_CONTACT = os.getenv("CLINIC_CONTACT", "").strip()
CLINIC_ADDRESS = os.getenv("CLINIC_ADDRESS", "").strip()
CLINIC_HOURS = os.getenv("CLINIC_HOURS", "").strip()


@dataclass(frozen=True)
class PageGeometry:
    page_width: float = A4[0]
    page_height: float = A4[1]
    margin: float = RX_PAGE_MARGIN_MM * mm
    content_pad_x: float = 18.0
    first_page_top_pad: float = 12.0
    next_page_top_pad: float = 18.0
    block_gap: float = 12.0
    notes_pad_bottom: float = 6.0

    @property
    def frame_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def frame_height(self) -> float:
        return self.page_height - 2 * self.margin

    @property
    def content_width(self) -> float:
        return self.frame_width - 2 * self.content_pad_x

    @property
    def content_left(self) -> float:
        return self.margin + self.content_pad_x

    @property
    def frame_top(self) -> float:
        return self.page_height - self.margin


DEFAULT_GEOMETRY = PageGeometry()
