"""Request models accepted by the HTTP layer.

Field names follow the camelCase keys sent by the web client; services
read the snake_case attributes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignupModel(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class LoginModel(BaseModel):
    email: str
    password: str

    model_config = ConfigDict(extra="ignore")

    @field_validator("email")
    @classmethod
    def _require_email(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Email is required")
        return value.strip()


class OnboardingForm(BaseModel):
    """Personal, medical and professional details captured during onboarding."""

    name: Optional[str] = None
    dob: Optional[str] = None
    age: Optional[Any] = None
    gender: Optional[str] = None
    country_code: Optional[str] = Field(default=None, alias="countryCode")
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    marital_status: Optional[str] = Field(default=None, alias="maritalStatus")
    emergency_contact_name: Optional[str] = Field(default=None, alias="emergencyContactName")
    emergency_contact_country_code: Optional[str] = Field(
        default=None, alias="emergencyContactCountryCode"
    )
    emergency_contact_phone: Optional[str] = Field(default=None, alias="emergencyContactPhone")
    guardian_name: Optional[str] = Field(default=None, alias="guardianName")
    guardian_relation: Optional[str] = Field(default=None, alias="guardianRelation")

    blood_group: Optional[str] = Field(default=None, alias="bloodGroup")
    height: Optional[str] = None
    weight: Optional[str] = None
    allergies: Optional[str] = None
    current_medications: Optional[str] = Field(default=None, alias="currentMedications")
    past_surgeries: Optional[str] = Field(default=None, alias="pastSurgeries")
    chronic_conditions: Optional[str] = Field(default=None, alias="chronicConditions")
    lifestyle: Optional[str] = None
    medical_history: Optional[str] = Field(default=None, alias="medicalHistory")

    specialization: Optional[str] = None
    clinic_name: Optional[str] = Field(default=None, alias="clinicName")
    license_number: Optional[str] = Field(default=None, alias="licenseNumber")
    experience: Optional[Any] = None
    degree: Optional[str] = None
    hospital_timing: Optional[str] = Field(default=None, alias="hospitalTiming")
    working_days: Optional[str] = Field(default=None, alias="workingDays")
    bio: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OnboardingRequest(BaseModel):
    role: Optional[str] = None
    form_data: OnboardingForm = Field(default_factory=OnboardingForm, alias="formData")
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DeleteAccountModel(BaseModel):
    reason: Optional[str] = None


class MedicationCreate(BaseModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    purpose: Optional[str] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")
    frequency: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TimelineEventCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[str] = Field(default=None, alias="eventDate")
    event_type: Optional[str] = Field(default=None, alias="eventType")
    status: Optional[str] = None
    report_id: Optional[str] = Field(default=None, alias="reportId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LabTestResult(BaseModel):
    name: str
    value: Any = ""
    unit: Optional[str] = None
    reference_range: Optional[str] = Field(default=None, alias="referenceRange")
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> str:
        return "" if value is None else str(value)


class LabResultCategory(BaseModel):
    category: str = "General"
    tests: List[LabTestResult] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class LabReportDetails(BaseModel):
    """Structured content of a report, supplied alongside the uploaded PDF."""

    report_date: Optional[str] = Field(default=None, alias="reportDate")
    lab_name: Optional[str] = Field(default=None, alias="labName")
    patient_name: Optional[str] = Field(default=None, alias="patientName")
    doctor_name: Optional[str] = Field(default=None, alias="doctorName")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    test_results: List[LabResultCategory] = Field(default_factory=list, alias="testResults")
    raw_text: Optional[str] = Field(default=None, alias="rawText")
    page_count: Optional[int] = Field(default=None, alias="pageCount")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HealthParameterInput(BaseModel):
    parameter_name: str = Field(alias="parameterName")
    value: Any = ""
    unit: Optional[str] = None
    reference_range: Optional[str] = Field(default=None, alias="referenceRange")
    status: Optional[str] = None
    test_date: Optional[str] = Field(default=None, alias="testDate")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> str:
        return "" if value is None else str(value)


class HealthAnalysisRequest(BaseModel):
    test_date: str = Field(alias="testDate")
    parameters: Optional[List[HealthParameterInput]] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
