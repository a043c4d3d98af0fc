"""Patient medication list.

Entries recorded by the patient carry ``added_by == "Self"``; only those can
be stopped or restarted from the patient's side.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.db.models import SELF_ADDED, Medication, MedicationStatus
from niraiva.errors import NotFoundError, ValidationFailure, ok, service_operation
from niraiva.sanitizer import sanitize_optional
from niraiva.schemas import MedicationCreate
from niraiva.time_utils import iso_date, to_iso

logger = structlog.get_logger(__name__)


def serialize_medication(medication: Medication) -> Dict[str, Any]:
    return {
        "id": medication.id,
        "patientId": medication.patient_id,
        "name": medication.name,
        "dosage": medication.dosage,
        "purpose": medication.purpose,
        "startDate": medication.start_date,
        "frequency": medication.frequency,
        "status": medication.status,
        "addedBy": medication.added_by,
        "createdAt": to_iso(medication.created_at),
    }


@service_operation("Failed to fetch medications", "medication_list")
def list_medications(session: Session, patient_id: str) -> Dict[str, Any]:
    rows = session.scalars(
        select(Medication)
        .where(Medication.patient_id == patient_id)
        .order_by(Medication.created_at.desc())
    ).all()
    return ok(medications=[serialize_medication(row) for row in rows])


@service_operation("Failed to add medication", "medication_add")
def add_medication(session: Session, patient_id: str, data: MedicationCreate) -> Dict[str, Any]:
    name = sanitize_optional(data.name)
    if not name:
        raise ValidationFailure("Medication name is required")
    if not (data.start_date or "").strip():
        raise ValidationFailure("Start date is required")
    start_date = iso_date(data.start_date)
    if start_date is None:
        raise ValidationFailure("Start date must be a valid date")

    medication = Medication(
        patient_id=patient_id,
        name=name,
        dosage=sanitize_optional(data.dosage),
        purpose=sanitize_optional(data.purpose),
        start_date=start_date,
        frequency=sanitize_optional(data.frequency),
        status=MedicationStatus.ACTIVE.value,
        added_by=SELF_ADDED,
    )
    session.add(medication)
    session.commit()
    logger.info("medication_added", patient_id=patient_id, medication_id=medication.id)
    return ok(medication=serialize_medication(medication))


def _self_added(session: Session, patient_id: str, medication_id: str) -> Optional[Medication]:
    return session.scalars(
        select(Medication)
        .where(
            Medication.id == medication_id,
            Medication.patient_id == patient_id,
            Medication.added_by == SELF_ADDED,
        )
        .limit(1)
    ).first()


def _set_status(
    session: Session, patient_id: str, medication_id: str, status: MedicationStatus, verb: str
) -> Dict[str, Any]:
    medication = _self_added(session, patient_id, medication_id)
    if medication is None:
        raise NotFoundError(
            "Medication not found or permission denied "
            f"(only manual entries can be {verb})"
        )
    medication.status = status.value
    session.commit()
    logger.info("medication_status_changed", medication_id=medication.id, status=status.value)
    return ok(medication=serialize_medication(medication))


@service_operation("Failed to stop medication", "medication_stop")
def stop_medication(session: Session, patient_id: str, medication_id: str) -> Dict[str, Any]:
    return _set_status(session, patient_id, medication_id, MedicationStatus.STOPPED, "stopped")


@service_operation("Failed to restart medication", "medication_restart")
def restart_medication(session: Session, patient_id: str, medication_id: str) -> Dict[str, Any]:
    return _set_status(session, patient_id, medication_id, MedicationStatus.ACTIVE, "restarted")


__all__ = [
    "add_medication",
    "list_medications",
    "restart_medication",
    "serialize_medication",
    "stop_medication",
]
