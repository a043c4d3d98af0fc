"""Health parameter listing and the rules-based summary of a test date."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.db.models import HealthParameter
from niraiva.errors import ValidationFailure, ok, service_operation
from niraiva.schemas import HealthParameterInput
from niraiva.time_utils import iso_date, to_iso

logger = structlog.get_logger(__name__)

PREVIOUS_FETCH_LIMIT = 10
PREVIOUS_RETURN_LIMIT = 4

DEFAULT_STATUS_SUMMARY = "All tracked parameters are within normal range."
DEFAULT_DIET_TIP = "Maintain a balanced diet rich in whole foods, vegetables, and lean proteins."
DEFAULT_LIFESTYLE_TIP = "Continue your regular exercise routine and maintain good sleep hygiene."
MONITORING_REMINDER = "Keep monitoring regularly."

# (name fragment, diet tip, lifestyle tip) applied to parameters flagged high
HIGH_VALUE_TIPS = (
    (
        "Glucose",
        "Reduce refined sugars and carbohydrates.",
        "Walk for 15 mins after every meal.",
    ),
    (
        "Cholesterol",
        "Increase soluble fiber (oats, fruits).",
        "Aim for 30 mins of cardio daily.",
    ),
    (
        "Pressure",
        "Reduce sodium intake and avoid processed foods.",
        "Practice stress-reduction techniques like meditation.",
    ),
)


@dataclass
class ParameterReading:
    name: str
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: Optional[str] = None
    test_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: HealthParameter) -> "ParameterReading":
        return cls(
            name=row.parameter_name,
            value=row.value,
            unit=row.unit,
            reference_range=row.reference_range,
            status=row.status,
            test_date=row.test_date,
        )

    @classmethod
    def from_input(cls, item: HealthParameterInput) -> "ParameterReading":
        return cls(
            name=item.parameter_name,
            value=item.value,
            unit=item.unit,
            reference_range=item.reference_range,
            status=item.status,
            test_date=item.test_date,
        )

    @property
    def measurement(self) -> str:
        return " ".join(part for part in (str(self.value), self.unit or "") if part)


def serialize_parameter(row: HealthParameter) -> Dict[str, Any]:
    return {
        "id": row.id,
        "patientId": row.patient_id,
        "labReportId": row.lab_report_id,
        "parameterName": row.parameter_name,
        "value": row.value,
        "unit": row.unit,
        "referenceRange": row.reference_range,
        "status": row.status,
        "testDate": row.test_date,
        "createdAt": to_iso(row.created_at),
    }


def _normalise_test_date(value: Optional[str]) -> Optional[str]:
    if not value or not str(value).strip():
        return None
    return iso_date(value) or str(value).strip()


@service_operation("Failed to fetch health parameters", "health_parameters_list")
def list_health_parameters(
    session: Session, patient_id: str, test_date: Optional[str] = None
) -> Dict[str, Any]:
    stmt = select(HealthParameter).where(HealthParameter.patient_id == patient_id)
    normalised = _normalise_test_date(test_date)
    if normalised:
        stmt = stmt.where(HealthParameter.test_date == normalised)
    stmt = stmt.order_by(HealthParameter.test_date.desc(), HealthParameter.parameter_name)
    rows = session.scalars(stmt).all()
    return ok(parameters=[serialize_parameter(row) for row in rows])


def _unique(items: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def summarise_parameters(readings: Sequence[ParameterReading]) -> Dict[str, Any]:
    """Map readings to a status overview plus diet and lifestyle tips."""

    status_summary: List[str] = []
    diet_tips: List[str] = []
    lifestyle_tips: List[str] = []

    for reading in readings:
        status = (reading.status or "").lower()
        if "high" in status:
            status_summary.append(f"{reading.name} is High ({reading.measurement}).")
            for fragment, diet_tip, lifestyle_tip in HIGH_VALUE_TIPS:
                if fragment in reading.name:
                    diet_tips.append(diet_tip)
                    lifestyle_tips.append(lifestyle_tip)
                    break
        elif "low" in status:
            status_summary.append(f"{reading.name} is Low ({reading.measurement}).")
            diet_tips.append(f"Ensure balanced intake to boost {reading.name}.")
        else:
            status_summary.append(f"{reading.name} is Normal ({reading.measurement}).")

    if not status_summary:
        status_summary.append(DEFAULT_STATUS_SUMMARY)
    if not diet_tips:
        diet_tips.append(DEFAULT_DIET_TIP)
    if not lifestyle_tips:
        lifestyle_tips.append(DEFAULT_LIFESTYLE_TIP)

    return {
        "statusOverview": " ".join(status_summary + [MONITORING_REMINDER]),
        "dietaryPlan": _unique(diet_tips),
        "lifestyleGuide": _unique(lifestyle_tips),
    }


def _previous_readings(session: Session, patient_id: str, test_date: str) -> List[ParameterReading]:
    rows = session.scalars(
        select(HealthParameter)
        .where(
            HealthParameter.patient_id == patient_id,
            HealthParameter.test_date < test_date,
        )
        .order_by(HealthParameter.test_date.desc())
        .limit(PREVIOUS_FETCH_LIMIT)
    ).all()
    return [ParameterReading.from_row(row) for row in rows]


@service_operation("Analysis generation failed", "health_parameters_analysis")
def analyze_health_parameters(
    session: Session,
    patient_id: str,
    parameters: Optional[Sequence[HealthParameterInput]],
    test_date: Optional[str],
) -> Dict[str, Any]:
    """Summarise the parameters recorded for ``test_date``.

    When ``parameters`` is empty the rows stored for that date are used.
    Earlier readings are included for comparison.
    """

    normalised = _normalise_test_date(test_date)
    if not normalised:
        raise ValidationFailure("Test date is required")

    if parameters:
        readings = [ParameterReading.from_input(item) for item in parameters]
    else:
        rows = session.scalars(
            select(HealthParameter).where(
                HealthParameter.patient_id == patient_id,
                HealthParameter.test_date == normalised,
            )
        ).all()
        readings = [ParameterReading.from_row(row) for row in rows]

    previous = _previous_readings(session, patient_id, normalised)
    analysis = summarise_parameters(readings)
    analysis["testDate"] = normalised
    analysis["previous"] = [
        {"name": item.name, "value": item.value, "date": item.test_date}
        for item in previous[:PREVIOUS_RETURN_LIMIT]
    ]
    logger.info(
        "health_parameters_analysed",
        patient_id=patient_id,
        current=len(readings),
        previous=len(previous),
    )
    return ok(analysis=analysis)


__all__ = [
    "HIGH_VALUE_TIPS",
    "MONITORING_REMINDER",
    "ParameterReading",
    "analyze_health_parameters",
    "list_health_parameters",
    "serialize_parameter",
    "summarise_parameters",
]
