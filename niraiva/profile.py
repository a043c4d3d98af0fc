"""Profile reads and updates plus account deletion with archival."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.db.models import DeletedAccount, Doctor, Patient, User, UserRole
from niraiva.errors import NotFoundError, ValidationFailure, ok, service_operation
from niraiva.time_utils import to_iso

logger = structlog.get_logger(__name__)

DEFAULT_DELETION_REASON = "User requested deletion"

_PERSONAL_FIELDS: Dict[str, str] = {
    "dob": "date_of_birth",
    "age": "age",
    "gender": "gender",
    "phone": "phone_number",
    "address": "address",
    "city": "city",
    "emergencyContactName": "emergency_contact_name",
    "emergencyContactPhone": "emergency_contact_phone",
}

PATIENT_FIELD_MAP: Dict[str, str] = {
    **_PERSONAL_FIELDS,
    "bloodGroup": "blood_group",
    "height": "height",
    "weight": "weight",
    "allergies": "allergies",
    "chronicConditions": "chronic_conditions",
}

DOCTOR_FIELD_MAP: Dict[str, str] = {
    **_PERSONAL_FIELDS,
    "specialization": "specialization",
    "clinicName": "clinic_name",
    "experience": "experience_years",
    "degree": "degree",
    "hospitalTiming": "hospital_timing",
    "workingDays": "working_days",
    "bio": "bio",
}

_INTEGER_COLUMNS = {"age", "experience_years"}


def parse_optional_int(value: Any) -> Optional[int]:
    """Return ``value`` as an ``int``; blank or non-numeric input gives ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _personal_details(record: Patient | Doctor) -> Dict[str, Any]:
    return {
        "id": record.id,
        "userId": record.user_id,
        "dob": record.date_of_birth,
        "age": record.age,
        "gender": record.gender,
        "phoneNumber": record.phone_number,
        "address": record.address,
        "city": record.city,
        "maritalStatus": record.marital_status,
        "emergencyContactName": record.emergency_contact_name,
        "emergencyContactPhone": record.emergency_contact_phone,
        "guardianName": record.guardian_name,
        "guardianRelation": record.guardian_relation,
        "createdAt": to_iso(record.created_at),
    }


def serialize_patient(patient: Optional[Patient]) -> Optional[Dict[str, Any]]:
    if patient is None:
        return None
    payload = _personal_details(patient)
    payload.update(
        {
            "bloodGroup": patient.blood_group,
            "height": patient.height,
            "weight": patient.weight,
            "allergies": patient.allergies,
            "currentMedications": patient.current_medications,
            "pastSurgeries": patient.past_surgeries,
            "chronicConditions": patient.chronic_conditions,
            "lifestyle": patient.lifestyle,
            "medicalHistory": patient.medical_history,
        }
    )
    return payload


def serialize_doctor(doctor: Optional[Doctor]) -> Optional[Dict[str, Any]]:
    if doctor is None:
        return None
    payload = _personal_details(doctor)
    payload.update(
        {
            "specialization": doctor.specialization,
            "clinicName": doctor.clinic_name,
            "licenseNumber": doctor.license_number,
            "experienceYears": doctor.experience_years,
            "degree": doctor.degree,
            "hospitalTiming": doctor.hospital_timing,
            "workingDays": doctor.working_days,
            "bio": doctor.bio,
        }
    )
    return payload


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "role": user.role,
        "isOnboarded": bool(user.is_onboarded),
        "customId": user.custom_id,
        "createdAt": to_iso(user.created_at),
    }


def _role_record(user: User) -> Patient | Doctor | None:
    if user.role == UserRole.DOCTOR.value:
        return user.doctor
    if user.role == UserRole.PATIENT.value:
        return user.patient
    return None


def _require_user(session: Session, user_id: Optional[str]) -> User:
    if not user_id:
        raise ValidationFailure("User ID is required")
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@service_operation("Failed to fetch profile", "profile_fetch")
def get_profile(session: Session, user_id: str) -> Dict[str, Any]:
    user = _require_user(session, user_id)
    return ok(
        user=serialize_user(user),
        patient=serialize_patient(user.patient),
        doctor=serialize_doctor(user.doctor),
    )


def _apply_mapped_fields(
    record: Patient | Doctor, data: Mapping[str, Any], field_map: Mapping[str, str]
) -> int:
    changed = 0
    for key, column in field_map.items():
        if key not in data:
            continue
        value = data[key]
        if column in _INTEGER_COLUMNS:
            value = parse_optional_int(value)
        setattr(record, column, value)
        changed += 1
    return changed


@service_operation("Failed to update profile", "profile_update")
def update_profile(session: Session, user_id: Optional[str], data: Mapping[str, Any]) -> Dict[str, Any]:
    """Apply a partial update to the user row and the matching role record."""

    user = _require_user(session, user_id)
    updated = []
    if "name" in data:
        user.name = data["name"]
        updated.append("name")
    if "image" in data:
        user.image = data["image"]
        updated.append("image")

    if user.role == UserRole.DOCTOR.value and user.doctor is not None:
        if _apply_mapped_fields(user.doctor, data, DOCTOR_FIELD_MAP):
            updated.append("doctor")
    elif user.patient is not None:
        if _apply_mapped_fields(user.patient, data, PATIENT_FIELD_MAP):
            updated.append("patient")

    session.commit()
    logger.info("profile_updated", user_id=user.id, sections=updated)
    return ok()


def _snapshot(record: Patient | Doctor | None) -> Optional[Dict[str, Any]]:
    if isinstance(record, Patient):
        return serialize_patient(record)
    if isinstance(record, Doctor):
        return serialize_doctor(record)
    return None


@service_operation("Failed to delete account", "account_delete")
def delete_account(
    session: Session, user_id: Optional[str], reason: Optional[str] = None
) -> Dict[str, Any]:
    """Archive the account identity then delete the user and its records.

    The archived row keeps ``custom_id`` so the number is never reissued.
    """

    user = _require_user(session, user_id)
    archive = DeletedAccount(
        original_user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        custom_id=user.custom_id,
        reason=(reason or "").strip() or DEFAULT_DELETION_REASON,
        profile_snapshot=_snapshot(_role_record(user)),
    )
    session.add(archive)
    session.delete(user)
    session.commit()
    logger.info("account_deleted", user_id=archive.original_user_id, custom_id=archive.custom_id)
    return ok()


def find_patient(session: Session, user_id: str) -> Optional[Patient]:
    return session.scalars(select(Patient).where(Patient.user_id == user_id).limit(1)).first()


__all__ = [
    "DEFAULT_DELETION_REASON",
    "DOCTOR_FIELD_MAP",
    "PATIENT_FIELD_MAP",
    "delete_account",
    "find_patient",
    "get_profile",
    "parse_optional_int",
    "serialize_doctor",
    "serialize_patient",
    "serialize_user",
    "update_profile",
]
