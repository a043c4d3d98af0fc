"""SQLAlchemy models for accounts, role profiles and patient health records."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    PENDING = "pending"
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class MedicationStatus(str, enum.Enum):
    ACTIVE = "Active"
    STOPPED = "Stopped"


SELF_ADDED = "Self"


class User(Base):
    __tablename__ = "users"

    id = sa.Column(String, primary_key=True, default=_uuid)
    name = sa.Column(String, nullable=True)
    email = sa.Column(String, nullable=False, unique=True, index=True)
    email_verified = sa.Column(DateTime(timezone=True), nullable=True)
    image = sa.Column(String, nullable=True)
    password_hash = sa.Column(String, nullable=True)
    role = sa.Column(String, nullable=False, default=UserRole.PENDING.value)
    is_onboarded = sa.Column(Boolean, nullable=False, default=False, server_default=sa.false())
    custom_id = sa.Column(String, nullable=True, unique=True)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = sa.Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    patient = relationship(
        "Patient", back_populates="user", uselist=False, cascade="all, delete"
    )
    doctor = relationship(
        "Doctor", back_populates="user", uselist=False, cascade="all, delete"
    )
    timeline_events = relationship(
        "TimelineEvent", back_populates="user", cascade="all, delete"
    )


class Patient(Base):
    __tablename__ = "patients"

    id = sa.Column(String, primary_key=True, default=_uuid)
    user_id = sa.Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    date_of_birth = sa.Column("dob", String, nullable=True)
    age = sa.Column(Integer, nullable=True)
    gender = sa.Column(String, nullable=True)
    phone_number = sa.Column(String, nullable=True, index=True)
    address = sa.Column(Text, nullable=True)
    city = sa.Column(String, nullable=True)
    marital_status = sa.Column(String, nullable=True)
    emergency_contact_name = sa.Column(String, nullable=True)
    emergency_contact_phone = sa.Column(String, nullable=True)
    guardian_name = sa.Column(String, nullable=True)
    guardian_relation = sa.Column(String, nullable=True)

    blood_group = sa.Column(String, nullable=True)
    height = sa.Column(String, nullable=True)
    weight = sa.Column(String, nullable=True)
    allergies = sa.Column(Text, nullable=True)
    current_medications = sa.Column(Text, nullable=True)
    past_surgeries = sa.Column(Text, nullable=True)
    chronic_conditions = sa.Column(Text, nullable=True)
    lifestyle = sa.Column(Text, nullable=True)
    medical_history = sa.Column(Text, nullable=True)

    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User", back_populates="patient")
    medications = relationship(
        "Medication", back_populates="patient", cascade="all, delete"
    )
    lab_reports = relationship(
        "LabReport", back_populates="patient", cascade="all, delete"
    )
    health_parameters = relationship(
        "HealthParameter", back_populates="patient", cascade="all, delete"
    )


class Doctor(Base):
    __tablename__ = "doctors"

    id = sa.Column(String, primary_key=True, default=_uuid)
    user_id = sa.Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    date_of_birth = sa.Column("dob", String, nullable=True)
    age = sa.Column(Integer, nullable=True)
    gender = sa.Column(String, nullable=True)
    phone_number = sa.Column(String, nullable=True, index=True)
    address = sa.Column(Text, nullable=True)
    city = sa.Column(String, nullable=True)
    marital_status = sa.Column(String, nullable=True)
    emergency_contact_name = sa.Column(String, nullable=True)
    emergency_contact_phone = sa.Column(String, nullable=True)
    guardian_name = sa.Column(String, nullable=True)
    guardian_relation = sa.Column(String, nullable=True)

    specialization = sa.Column(String, nullable=False)
    clinic_name = sa.Column(String, nullable=True)
    license_number = sa.Column(String, nullable=False)
    experience_years = sa.Column(Integer, nullable=True)
    degree = sa.Column(String, nullable=True)
    hospital_timing = sa.Column(String, nullable=True)
    working_days = sa.Column(String, nullable=True)
    bio = sa.Column(Text, nullable=True)

    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User", back_populates="doctor")


class Medication(Base):
    __tablename__ = "medications"

    id = sa.Column(String, primary_key=True, default=_uuid)
    patient_id = sa.Column(
        String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = sa.Column(String, nullable=False)
    dosage = sa.Column(String, nullable=True)
    purpose = sa.Column(String, nullable=True)
    start_date = sa.Column(String, nullable=True)
    frequency = sa.Column(String, nullable=True)
    status = sa.Column(String, nullable=False, default=MedicationStatus.ACTIVE.value)
    added_by = sa.Column(String, nullable=False, default=SELF_ADDED)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    patient = relationship("Patient", back_populates="medications")


class DeletedAccount(Base):
    """Archive of removed users; keeps their custom ID out of circulation."""

    __tablename__ = "deleted_accounts"

    id = sa.Column(String, primary_key=True, default=_uuid)
    original_user_id = sa.Column(String, nullable=True)
    name = sa.Column(String, nullable=True)
    email = sa.Column(String, nullable=True)
    role = sa.Column(String, nullable=True)
    custom_id = sa.Column(String, nullable=True, index=True)
    reason = sa.Column(Text, nullable=True)
    deleted_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    profile_snapshot = sa.Column(JSON, nullable=True)


class LabReport(Base):
    __tablename__ = "lab_reports"

    id = sa.Column(String, primary_key=True, default=_uuid)
    patient_id = sa.Column(
        String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = sa.Column(String, nullable=False)
    report_date = sa.Column(String, nullable=True)
    lab_name = sa.Column(String, nullable=True)
    patient_name = sa.Column(String, nullable=True)
    doctor_name = sa.Column(String, nullable=True)
    extracted_data = sa.Column(JSON, nullable=False, default=dict)
    raw_text = sa.Column(Text, nullable=True)
    file_size = sa.Column(Integer, nullable=True)
    page_count = sa.Column(Integer, nullable=True)
    file_data = sa.Column(Text, nullable=True)
    uploaded_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    patient = relationship("Patient", back_populates="lab_reports")
    health_parameters = relationship(
        "HealthParameter", back_populates="lab_report", cascade="all, delete"
    )


class HealthParameter(Base):
    __tablename__ = "health_parameters"

    id = sa.Column(String, primary_key=True, default=_uuid)
    patient_id = sa.Column(
        String, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    lab_report_id = sa.Column(
        String, ForeignKey("lab_reports.id", ondelete="CASCADE"), nullable=True
    )
    parameter_name = sa.Column(String, nullable=False)
    value = sa.Column(String, nullable=False)
    unit = sa.Column(String, nullable=True)
    reference_range = sa.Column(String, nullable=True)
    status = sa.Column(String, nullable=True)
    test_date = sa.Column(String, nullable=True)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    patient = relationship("Patient", back_populates="health_parameters")
    lab_report = relationship("LabReport", back_populates="health_parameters")

    __table_args__ = (
        sa.Index("idx_health_parameters_patient_date", "patient_id", "test_date"),
    )


class TimelineEvent(Base):
    __tablename__ = "timeline_events"

    id = sa.Column(String, primary_key=True, default=_uuid)
    user_id = sa.Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = sa.Column(String, nullable=False)
    description = sa.Column(Text, nullable=True)
    event_date = sa.Column(String, nullable=False)
    event_type = sa.Column(String, nullable=False)
    status = sa.Column(String, nullable=True, default="pending")
    report_id = sa.Column(String, nullable=True)
    doctor_id = sa.Column(String, nullable=True)
    created_by = sa.Column(String, nullable=True)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("User", back_populates="timeline_events")


__all__ = [
    "Base",
    "UserRole",
    "MedicationStatus",
    "SELF_ADDED",
    "User",
    "Patient",
    "Doctor",
    "Medication",
    "DeletedAccount",
    "LabReport",
    "HealthParameter",
    "TimelineEvent",
]
