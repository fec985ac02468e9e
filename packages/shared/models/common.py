from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .enums import FREQUENCY_LABELS, TIMING_LABELS, Frequency, Timing, ToothPosition


class RxLine(BaseModel):
    medicine: str = Field(min_length=1)
    dose: str = ""
    frequency: Optional[Frequency] = None
    duration: Optional[int] = Field(default=None, ge=1, le=365)
    sig: Optional[str] = None
    timing: Optional[Timing] = None
    notes: Optional[str] = None

    def display_text(self) -> str:
        """Single printable line, e.g. 'Amoxicillin 500mg - TID(Thrice Daily) After food For 5 days.'"""
        parts: list[str] = []
        med = " ".join(p for p in (self.medicine, self.dose) if p).strip()
        if med:
            parts.append(med)

        freq = f"{self.frequency.value}({FREQUENCY_LABELS[self.frequency]})" if self.frequency else ""
        timing = TIMING_LABELS[self.timing] if self.timing else ""
        freq_timing = " ".join(p for p in (freq, timing) if p).strip()
        if freq_timing:
            parts.append(f"- {freq_timing}")

        if self.duration:
            parts.append(f"For {self.duration} days.")
        if self.notes and self.notes.strip():
            parts.append(self.notes.strip())
        return " ".join(parts)


class ToothDetail(BaseModel):
    position: ToothPosition
    tooth_numbers: list[str] = Field(min_length=1, max_length=8)
    notes: Optional[str] = None
    procedure: Optional[str] = None
    advice: Optional[str] = None
    block_id: Optional[str] = None

    @field_validator("tooth_numbers")
    @classmethod
    def _clean_numbers(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for n in v:
            s = str(n).strip()
            if s and s not in out:
                out.append(s)
        if not out:
            raise ValueError("tooth_numbers must contain at least one non-blank entry")
        return out
