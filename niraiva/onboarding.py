"""Onboarding: turn a freshly signed-up account into a patient or doctor.

Everything happens in one transaction.  The role record, the user flags
and the newly assigned custom ID are committed together or not at all.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from niraiva.custom_ids import CustomIdUnavailableError, assign_custom_id
from niraiva.db.models import Doctor, Patient, User, UserRole
from niraiva.errors import (
    BusyError,
    ConflictError,
    NotFoundError,
    ValidationFailure,
    ok,
    service_operation,
)
from niraiva.observability import ONBOARDING_OUTCOMES
from niraiva.profile import parse_optional_int
from niraiva.schemas import OnboardingForm

logger = structlog.get_logger(__name__)

ONBOARDING_ROLES = (UserRole.PATIENT.value, UserRole.DOCTOR.value)


def join_phone(country_code: Optional[str], number: Optional[str]) -> Optional[str]:
    """Return ``"<countryCode> <phone>"`` from whichever parts are present."""

    parts = [str(part).strip() for part in (country_code, number) if part and str(part).strip()]
    return " ".join(parts) or None


def _phone_in_use(session: Session, phone: str) -> bool:
    for model in (Patient, Doctor):
        found = session.scalar(select(model.id).where(model.phone_number == phone).limit(1))
        if found is not None:
            return True
    return False


def _personal_values(form: OnboardingForm, phone: Optional[str]) -> Dict[str, Any]:
    return {
        "date_of_birth": form.dob,
        "age": parse_optional_int(form.age),
        "gender": form.gender,
        "phone_number": phone,
        "address": form.address,
        "city": form.city,
        "marital_status": form.marital_status,
        "emergency_contact_name": form.emergency_contact_name,
        "emergency_contact_phone": join_phone(
            form.emergency_contact_country_code, form.emergency_contact_phone
        ),
        "guardian_name": form.guardian_name,
        "guardian_relation": form.guardian_relation,
    }


def _build_role_record(user_id: str, role: str, form: OnboardingForm, phone: Optional[str]):
    personal = _personal_values(form, phone)
    if role == UserRole.DOCTOR.value:
        return Doctor(
            user_id=user_id,
            specialization=form.specialization,
            clinic_name=form.clinic_name,
            license_number=form.license_number,
            experience_years=parse_optional_int(form.experience) or 0,
            degree=form.degree,
            hospital_timing=form.hospital_timing,
            working_days=form.working_days,
            bio=form.bio,
            **personal,
        )
    return Patient(
        user_id=user_id,
        blood_group=form.blood_group,
        height=form.height,
        weight=form.weight,
        allergies=form.allergies,
        current_medications=form.current_medications,
        past_surgeries=form.past_surgeries,
        chronic_conditions=form.chronic_conditions,
        lifestyle=form.lifestyle,
        medical_history=form.medical_history,
        **personal,
    )


@service_operation("Failed to complete onboarding", "onboarding")
def _complete_onboarding(
    session: Session,
    user_id: str,
    role: Optional[str],
    form: OnboardingForm,
    avatar_url: Optional[str] = None,
) -> Dict[str, Any]:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found. Please sign out and sign in again.")
    if user.is_onboarded:
        raise ConflictError("Account already exists and is setup. Please login.")
    if role not in ONBOARDING_ROLES:
        raise ValidationFailure("Invalid role. Must be 'patient' or 'doctor'")
    if role == UserRole.DOCTOR.value and not (
        (form.specialization or "").strip() and (form.license_number or "").strip()
    ):
        raise ValidationFailure("Specialization and license number are required for doctors")

    phone = join_phone(form.country_code, form.phone)
    if phone and _phone_in_use(session, phone):
        raise ConflictError(
            "This phone number is already linked to an existing account. "
            "Kindly login with that existing account."
        )

    try:
        custom_id = assign_custom_id(session, role)
    except CustomIdUnavailableError:
        raise BusyError("System busy. Please try again.") from None

    user.role = role
    user.is_onboarded = True
    user.custom_id = custom_id
    if form.name is not None:
        user.name = form.name
    if avatar_url:
        user.image = avatar_url
    session.add(_build_role_record(user.id, role, form, phone))
    try:
        session.flush()
    except IntegrityError:
        raise BusyError("System busy generating ID. Please try again.") from None
    session.commit()
    logger.info("onboarding_completed", user_id=user.id, role=role, custom_id=custom_id)
    return ok(customId=custom_id)


def complete_onboarding(
    session: Session,
    user_id: str,
    role: Optional[str],
    form: OnboardingForm,
    avatar_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Assign the role, custom ID and role record for ``user_id``.

    Returns ``{"success": True, "customId": ...}`` or an error result; on
    any failure the session is rolled back and nothing is persisted.
    """

    result = _complete_onboarding(session, user_id, role, form, avatar_url)
    outcome = "success" if result.get("success") else str(result.get("code"))
    ONBOARDING_OUTCOMES.labels(role if role in ONBOARDING_ROLES else "unknown", outcome).inc()
    return result


__all__ = ["ONBOARDING_ROLES", "complete_onboarding", "join_phone"]
