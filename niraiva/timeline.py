"""Health timeline: manual events merged with one entry per lab report."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from niraiva.db.models import LabReport, TimelineEvent
from niraiva.errors import ValidationFailure, ok, service_operation
from niraiva.lab_reports import report_results
from niraiva.profile import find_patient
from niraiva.sanitizer import sanitize_optional
from niraiva.schemas import TimelineEventCreate
from niraiva.time_utils import iso_date, parse_calendar_date, to_iso, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_EVENT_STATUS = "pending"


def serialize_event(event: TimelineEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "userId": event.user_id,
        "title": event.title,
        "description": event.description,
        "eventDate": event.event_date,
        "eventType": event.event_type,
        "status": event.status,
        "reportId": event.report_id,
        "doctorId": event.doctor_id,
        "createdBy": event.created_by,
        "createdAt": to_iso(event.created_at),
        "isReport": False,
    }


def report_event(user_id: str, report: LabReport, today: date) -> Dict[str, Any]:
    """Project a lab report into the timeline event shape."""

    return {
        "id": report.id,
        "userId": user_id,
        "title": report.file_name or "Lab Report",
        "description": "Analysis available" if report_results(report) else "Lab Report",
        "eventDate": iso_date(report.report_date or report.uploaded_at, default=today),
        "eventType": "test",
        "status": "completed",
        "reportId": report.id,
        "doctorId": None,
        "createdBy": "system",
        "createdAt": to_iso(report.uploaded_at),
        "isReport": True,
    }


def _sort_key(event: Dict[str, Any]) -> date:
    return parse_calendar_date(event.get("eventDate")) or date.min


@service_operation("Failed to fetch timeline events", "timeline_fetch")
def get_timeline_events(session: Session, user_id: str) -> Dict[str, Any]:
    events: List[Dict[str, Any]] = [
        serialize_event(event)
        for event in session.scalars(
            select(TimelineEvent).where(TimelineEvent.user_id == user_id)
        )
    ]
    patient = find_patient(session, user_id)
    if patient is not None:
        today = utc_now().date()
        reports = session.scalars(select(LabReport).where(LabReport.patient_id == patient.id))
        events.extend(report_event(user_id, report, today) for report in reports)
    events.sort(key=_sort_key, reverse=True)
    return ok(events=events)


@service_operation("Failed to add event", "timeline_add")
def add_timeline_event(session: Session, user_id: str, data: TimelineEventCreate) -> Dict[str, Any]:
    title = sanitize_optional(data.title)
    if not title or not data.event_date or not data.event_type:
        raise ValidationFailure("Title, event date and event type are required")
    event_date = iso_date(data.event_date)
    if event_date is None:
        raise ValidationFailure("Event date must be a valid date")

    event = TimelineEvent(
        user_id=user_id,
        title=title,
        description=sanitize_optional(data.description),
        event_date=event_date,
        event_type=data.event_type.strip(),
        status=(data.status or "").strip() or DEFAULT_EVENT_STATUS,
        report_id=data.report_id,
        created_by="patient",
    )
    session.add(event)
    session.commit()
    logger.info("timeline_event_added", user_id=user_id, event_id=event.id)
    return ok(event=serialize_event(event))


__all__ = ["add_timeline_event", "get_timeline_events", "report_event", "serialize_event"]
