"""FastAPI application exposing the Niraiva health API."""

from __future__ import annotations

import base64
import binascii
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import quote

import structlog
import uvicorn
from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.orm import Session
from structlog.contextvars import bind_contextvars, unbind_contextvars

from niraiva import __version__
from niraiva import health_parameters, lab_reports, medications, onboarding, profile, timeline
from niraiva.auth import (
    CurrentUser,
    authenticate_user,
    create_access_token,
    get_current_user,
    require_onboarded,
    require_role,
    signup_user,
)
from niraiva.config import get_settings
from niraiva.db import get_session, init_db
from niraiva.db.models import User, UserRole
from niraiva.errors import ErrorKind, KIND_BY_HTTP_STATUS, failure, http_status_for
from niraiva.observability import (
    REQUEST_COUNTER,
    REQUEST_LATENCY,
    _TRACE_ID_CTX,
    _normalise_path_for_metrics,
    configure_logging,
)
from niraiva.schemas import (
    DeleteAccountModel,
    HealthAnalysisRequest,
    LabReportDetails,
    LoginModel,
    MedicationCreate,
    OnboardingRequest,
    SignupModel,
    TimelineEventCreate,
)

logger = structlog.get_logger(__name__)

START_TIME = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - exercised indirectly in integration
    settings = get_settings()
    configure_logging(settings.log_level)
    init_db()
    logger.info("lifespan_startup", environment=settings.environment, version=__version__)
    try:
        yield
    finally:
        logger.info("lifespan_shutdown_complete", uptime=time.time() - START_TIME)


app = FastAPI(title="Niraiva Health API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-Id"],
)


@app.middleware("http")
async def track_http_metrics(request: Request, call_next):
    """Emit Prometheus counters and histograms for each request."""

    start = time.perf_counter()
    path = request.url.path
    try:
        response = await call_next(request)
    except Exception:
        duration = time.perf_counter() - start
        normalised = _normalise_path_for_metrics(path)
        REQUEST_COUNTER.labels(request.method, normalised, "500").inc()
        REQUEST_LATENCY.labels(request.method, normalised).observe(duration)
        raise
    duration = time.perf_counter() - start
    normalised = _normalise_path_for_metrics(path)
    REQUEST_COUNTER.labels(request.method, normalised, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, normalised).observe(duration)
    return response


@app.middleware("http")
async def inject_trace_id(request: Request, call_next):
    """Attach or propagate a trace identifier for each request."""

    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
    token = _TRACE_ID_CTX.set(trace_id)
    bind_contextvars(trace_id=trace_id, path=request.url.path, method=request.method)
    request.state.trace_id = trace_id
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        logger.exception("request_failed", path=request.url.path, method=request.method)
        raise
    finally:
        if response is not None:
            response.headers["X-Trace-Id"] = trace_id
        unbind_contextvars("trace_id", "path", "method")
        _TRACE_ID_CTX.reset(token)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert ``HTTPException`` instances into the standard error envelope."""

    kind = KIND_BY_HTTP_STATUS.get(exc.status_code, ErrorKind.INTERNAL.value)
    return JSONResponse(
        status_code=exc.status_code,
        content=failure(str(exc.detail), kind),
        headers=dict(exc.headers or {}),
    )


def _describe_validation_error(errors: Any) -> str:
    for item in errors or []:
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        message = item.get("msg") or "Invalid value"
        return f"{location}: {message}" if location else message
    return "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=failure(_describe_validation_error(exc.errors()), ErrorKind.VALIDATION),
    )


def _respond(result: Dict[str, Any], success_status: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=http_status_for(result, success_status), content=result)


def _patient_id(session: Session, user: CurrentUser) -> str:
    patient = profile.find_patient(session, user.id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient profile not found")
    return patient.id


require_patient = require_role(UserRole.PATIENT.value)


def _inline_disposition(filename: Optional[str]) -> str:
    """Build a Content-Disposition header that survives non-Latin-1 names."""

    name = (filename or "").strip() or "report.pdf"
    fallback = "".join(ch for ch in name if ch.isascii() and ch.isprintable() and ch not in '"\\')
    fallback = fallback.strip()
    if not fallback or fallback.startswith("."):
        fallback = "report.pdf"
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"])
def health(session: Session = Depends(get_session)):
    """Liveness probe with a best effort database check."""

    try:
        session.execute(text("SELECT 1"))
        database = True
    except Exception:
        logger.warning("health_database_unavailable", exc_info=True)
        database = False
    return {
        "status": "ok",
        "version": __version__,
        "uptime": time.time() - START_TIME,
        "database": database,
    }


@app.get("/metrics", tags=["system"], response_model=None)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@app.post("/api/auth/signup", tags=["auth"])
def signup(model: SignupModel, session: Session = Depends(get_session)):
    result = signup_user(session, model.email, model.password, model.role)
    return _respond(result, status.HTTP_201_CREATED)


@app.post("/api/auth/login", tags=["auth"])
def login(model: LoginModel, session: Session = Depends(get_session)):
    user = authenticate_user(session, model.email, model.password)
    if user is None:
        logger.info("login_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password"
        )
    logger.info("login_succeeded", user_id=user.id)
    return {
        "success": True,
        "accessToken": create_access_token(user),
        "tokenType": "bearer",
        "user": CurrentUser.from_user(user).as_session(),
    }


@app.get("/api/auth/session", tags=["auth"])
def current_session(user: CurrentUser = Depends(get_current_user)):
    return {"success": True, "user": user.as_session()}


@app.post("/api/onboarding", tags=["onboarding"])
def complete_onboarding(
    model: OnboardingRequest,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    result = onboarding.complete_onboarding(
        session, user.id, model.role, model.form_data, model.avatar_url
    )
    if result.get("success"):
        refreshed = session.get(User, user.id)
        if refreshed is not None:
            result["accessToken"] = create_access_token(refreshed)
    return _respond(result)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@app.get("/api/profile", tags=["profile"])
def read_profile(
    user: CurrentUser = Depends(require_onboarded), session: Session = Depends(get_session)
):
    return _respond(profile.get_profile(session, user.id))


@app.patch("/api/profile", tags=["profile"])
def patch_profile(
    data: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(require_onboarded),
    session: Session = Depends(get_session),
):
    return _respond(profile.update_profile(session, user.id, data))


@app.delete("/api/profile", tags=["profile"])
def remove_account(
    model: Optional[DeleteAccountModel] = Body(default=None),
    user: CurrentUser = Depends(require_onboarded),
    session: Session = Depends(get_session),
):
    reason = model.reason if model is not None else None
    return _respond(profile.delete_account(session, user.id, reason))


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------


@app.get("/api/medications", tags=["medications"])
def read_medications(
    user: CurrentUser = Depends(require_patient), session: Session = Depends(get_session)
):
    return _respond(medications.list_medications(session, _patient_id(session, user)))


@app.post("/api/medications", tags=["medications"])
def create_medication(
    model: MedicationCreate,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    result = medications.add_medication(session, _patient_id(session, user), model)
    return _respond(result, status.HTTP_201_CREATED)


@app.post("/api/medications/{medication_id}/stop", tags=["medications"])
def stop_medication(
    medication_id: str,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(
        medications.stop_medication(session, _patient_id(session, user), medication_id)
    )


@app.post("/api/medications/{medication_id}/restart", tags=["medications"])
def restart_medication(
    medication_id: str,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(
        medications.restart_medication(session, _patient_id(session, user), medication_id)
    )


# ---------------------------------------------------------------------------
# Lab reports
# ---------------------------------------------------------------------------


@app.get("/api/lab-reports", tags=["lab-reports"])
def read_lab_reports(
    user: CurrentUser = Depends(require_patient), session: Session = Depends(get_session)
):
    return _respond(lab_reports.list_lab_reports(session, user.id))


@app.post("/api/lab-reports", tags=["lab-reports"])
def upload_lab_report(
    file: Optional[UploadFile] = File(default=None),
    details: Optional[str] = Form(default=None),
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    parsed: Optional[LabReportDetails] = None
    if details:
        try:
            parsed = LabReportDetails.model_validate_json(details)
        except ValidationError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid report details"
            )
    if file is None:
        return _respond(failure("No file provided", ErrorKind.VALIDATION))
    content = file.file.read()
    result = lab_reports.upload_lab_report(
        session, user.id, file.filename, file.content_type, content, parsed
    )
    return _respond(result, status.HTTP_201_CREATED)


@app.get("/api/lab-reports/{report_id}", tags=["lab-reports"])
def read_lab_report(
    report_id: str,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(lab_reports.get_lab_report(session, user.id, report_id))


@app.get("/api/lab-reports/{report_id}/pdf", tags=["lab-reports"], response_model=None)
def download_lab_report(
    report_id: str,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
) -> Response:
    result = lab_reports.get_report_pdf(session, user.id, report_id)
    if not result.get("success"):
        return _respond(result)
    try:
        content = base64.b64decode(result["fileData"])
    except (binascii.Error, ValueError):
        logger.error("lab_report_pdf_corrupt", report_id=report_id)
        return _respond(failure("Failed to retrieve file", ErrorKind.INTERNAL))
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": _inline_disposition(result.get("fileName"))},
    )


@app.delete("/api/lab-reports/{report_id}", tags=["lab-reports"])
def remove_lab_report(
    report_id: str,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(lab_reports.delete_lab_report(session, user.id, report_id))


# ---------------------------------------------------------------------------
# Health parameters
# ---------------------------------------------------------------------------


@app.get("/api/health-parameters", tags=["health-parameters"])
def read_health_parameters(
    test_date: Optional[str] = Query(default=None, alias="testDate"),
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(
        health_parameters.list_health_parameters(session, _patient_id(session, user), test_date)
    )


@app.post("/api/health-parameters/analysis", tags=["health-parameters"])
def analyse_health_parameters(
    model: HealthAnalysisRequest,
    user: CurrentUser = Depends(require_patient),
    session: Session = Depends(get_session),
):
    return _respond(
        health_parameters.analyze_health_parameters(
            session, _patient_id(session, user), model.parameters, model.test_date
        )
    )


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


@app.get("/api/timeline", tags=["timeline"])
def read_timeline(
    user: CurrentUser = Depends(require_onboarded), session: Session = Depends(get_session)
):
    return _respond(timeline.get_timeline_events(session, user.id))


@app.post("/api/timeline", tags=["timeline"])
def create_timeline_event(
    model: TimelineEventCreate,
    user: CurrentUser = Depends(require_onboarded),
    session: Session = Depends(get_session),
):
    return _respond(timeline.add_timeline_event(session, user.id, model), status.HTTP_201_CREATED)


def run() -> None:  # pragma: no cover - process entry point
    """Serve the API with uvicorn."""

    uvicorn.run(
        "niraiva.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
