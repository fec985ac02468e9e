"""
SQLAlchemy ORM models for the clinic records the print pipeline reads.

Rows keep the record exactly as the clinic API delivered it (`payload_json`);
normalization to the canonical shape happens on read.
"""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow():
    return datetime.now(dt_timezone.utc)


class Base(DeclarativeBase):
    pass


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(120), primary_key=True)
    payload_json = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(String(120), primary_key=True)
    payload_json = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class VisitRecord(Base):
    __tablename__ = "visits"

    id = Column(String(120), primary_key=True)
    patient_id = Column(String(120), nullable=True, index=True)
    created_at_ms = Column(BigInteger, nullable=True)
    payload_json = Column(JSON, nullable=False)
    stored_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    prescription = relationship(
        "PrescriptionRecord", back_populates="visit", uselist=False, cascade="all, delete-orphan"
    )


class PrescriptionRecord(Base):
    __tablename__ = "prescriptions"

    visit_id = Column(String(120), ForeignKey("visits.id"), primary_key=True)
    payload_json = Column(JSON, nullable=False)
    stored_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    visit = relationship("VisitRecord", back_populates="prescription")
