"""Lab report storage for patients.

The uploaded PDF is kept base64-encoded next to its structured results.
Each test result is also written as a :class:`HealthParameter` row so the
health-parameter views can query individual values without unpacking the
report JSON.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.config import get_settings
from niraiva.db.models import HealthParameter, LabReport
from niraiva.errors import NotFoundError, ValidationFailure, ok, service_operation
from niraiva.profile import find_patient
from niraiva.sanitizer import sanitize_optional
from niraiva.schemas import LabReportDetails
from niraiva.time_utils import iso_date, to_iso, utc_now

logger = structlog.get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def report_results(report: LabReport) -> List[Dict[str, Any]]:
    data = report.extracted_data or {}
    results = data.get("results") if isinstance(data, dict) else None
    return results if isinstance(results, list) else []


def serialize_report(report: LabReport, *, include_file: bool = False) -> Dict[str, Any]:
    data = report.extracted_data if isinstance(report.extracted_data, dict) else {}
    payload = {
        "id": report.id,
        "patientId": report.patient_id,
        "fileName": report.file_name,
        "reportDate": report.report_date,
        "labName": report.lab_name,
        "patientName": report.patient_name,
        "doctorName": report.doctor_name,
        "extractedData": {
            "results": report_results(report),
            "metadata": data.get("metadata") or {},
        },
        "rawText": report.raw_text,
        "fileSize": report.file_size,
        "pageCount": report.page_count,
        "uploadedAt": to_iso(report.uploaded_at),
    }
    if include_file:
        payload["fileData"] = report.file_data
    return payload


def _patient_id_for(session: Session, user_id: str) -> str:
    patient = find_patient(session, user_id)
    if patient is None:
        raise NotFoundError("Patient profile not found")
    return patient.id


def _owned_report(session: Session, user_id: str, report_id: Optional[str]) -> LabReport:
    if not report_id:
        raise ValidationFailure("Report ID is required")
    patient_id = _patient_id_for(session, user_id)
    report = session.scalars(
        select(LabReport)
        .where(LabReport.id == report_id, LabReport.patient_id == patient_id)
        .limit(1)
    ).first()
    if report is None:
        raise NotFoundError("Report not found")
    return report


def _health_parameters(
    patient_id: str, details: LabReportDetails, test_date: Optional[str]
) -> List[HealthParameter]:
    rows = []
    for category in details.test_results:
        for test in category.tests:
            if not test.name.strip():
                continue
            rows.append(
                HealthParameter(
                    patient_id=patient_id,
                    parameter_name=test.name.strip(),
                    value=test.value,
                    unit=test.unit,
                    reference_range=test.reference_range,
                    status=(test.status or "normal").lower(),
                    test_date=test_date,
                )
            )
    return rows


@service_operation("Failed to save report to database", "lab_report_upload")
def upload_lab_report(
    session: Session,
    user_id: str,
    file_name: Optional[str],
    content_type: Optional[str],
    content: Optional[bytes],
    details: Optional[LabReportDetails] = None,
) -> Dict[str, Any]:
    """Store a PDF lab report together with its structured results."""

    if not content:
        raise ValidationFailure("No file provided")
    if (content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        raise ValidationFailure("Only PDF files are supported")
    if len(content) > get_settings().max_upload_bytes:
        raise ValidationFailure("File exceeds the maximum upload size")
    patient_id = _patient_id_for(session, user_id)

    details = details or LabReportDetails()
    uploaded_at = utc_now()
    report_date = (details.report_date or "").strip() or uploaded_at.isoformat()
    report = LabReport(
        patient_id=patient_id,
        file_name=file_name or "report.pdf",
        report_date=report_date,
        lab_name=sanitize_optional(details.lab_name),
        patient_name=sanitize_optional(details.patient_name),
        doctor_name=sanitize_optional(details.doctor_name),
        extracted_data={
            "results": [category.model_dump(by_alias=True) for category in details.test_results],
            "metadata": details.metadata,
        },
        raw_text=details.raw_text,
        file_size=len(content),
        page_count=details.page_count or 1,
        file_data=base64.b64encode(content).decode("ascii"),
        uploaded_at=uploaded_at,
    )
    session.add(report)
    session.flush()

    test_date = iso_date(report_date, default=uploaded_at.date())
    parameters = _health_parameters(patient_id, details, test_date)
    for parameter in parameters:
        parameter.lab_report_id = report.id
    session.add_all(parameters)
    session.commit()
    logger.info(
        "lab_report_uploaded",
        report_id=report.id,
        patient_id=patient_id,
        size=report.file_size,
        parameters=len(parameters),
    )
    return ok(reportId=report.id, message="Lab report uploaded successfully")


@service_operation("Failed to fetch lab reports", "lab_report_list")
def list_lab_reports(session: Session, user_id: str) -> Dict[str, Any]:
    patient_id = _patient_id_for(session, user_id)
    reports = session.scalars(
        select(LabReport)
        .where(LabReport.patient_id == patient_id)
        .order_by(LabReport.uploaded_at.desc())
    ).all()
    return ok(reports=[serialize_report(report) for report in reports])


@service_operation("Failed to fetch lab report", "lab_report_get")
def get_lab_report(session: Session, user_id: str, report_id: Optional[str]) -> Dict[str, Any]:
    report = _owned_report(session, user_id, report_id)
    return ok(report=serialize_report(report))


@service_operation("Failed to retrieve file", "lab_report_pdf")
def get_report_pdf(session: Session, user_id: str, report_id: Optional[str]) -> Dict[str, Any]:
    """Return the original upload as base64 ``fileData`` with its ``fileName``."""

    if not report_id:
        raise ValidationFailure("Report ID is required")
    patient_id = _patient_id_for(session, user_id)
    report = session.scalars(
        select(LabReport)
        .where(LabReport.id == report_id, LabReport.patient_id == patient_id)
        .limit(1)
    ).first()
    if report is None or not report.file_data:
        raise NotFoundError("Original file not found in database.")
    return ok(fileData=report.file_data, fileName=report.file_name)


@service_operation("Failed to delete report", "lab_report_delete")
def delete_lab_report(session: Session, user_id: str, report_id: Optional[str]) -> Dict[str, Any]:
    report = _owned_report(session, user_id, report_id)
    session.delete(report)
    session.commit()
    logger.info("lab_report_deleted", report_id=report_id)
    return ok(message="Report deleted successfully")


__all__ = [
    "delete_lab_report",
    "get_lab_report",
    "get_report_pdf",
    "list_lab_reports",
    "report_results",
    "serialize_report",
    "upload_lab_report",
]
