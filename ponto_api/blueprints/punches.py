# ponto_api/blueprints/punches.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from ponto_api.common.auth import current_employee
from ponto_api.common.http import ok, fail
from ponto_api.extensions import db
from ponto_api.models.facial_audit import FacialRecognitionAudit
from ponto_api.models.time_entry import PunchKind
from ponto_api.services.day_summary import summarize_day
from ponto_api.services.face_matcher import FaceMatchResult
from ponto_api.services.punch_authorizer import PunchRequest, PunchOutcome, build_authorizer

bp = Blueprint("punches", __name__, url_prefix="/api/v1/punches")


# ---------- helpers ----------
def _as_float(v) -> Optional[float]:
    if v in (None, "", "null"):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _as_int(v) -> Optional[int]:
    if v in (None, "", "null"):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _build_request(emp_id: int, data) -> tuple[Optional[PunchRequest], Optional[str]]:
    kind = PunchKind.parse(data.get("punch_kind") or data.get("punch_type"))
    if kind is None:
        return None, "punch_kind must be one of IN, OUT, BREAK_IN, BREAK_OUT"

    lat = _as_float(data.get("lat"))
    lng = _as_float(data.get("lng"))
    address = (data.get("address") or "").strip() or None

    return PunchRequest(
        employee_id=emp_id,
        kind=kind,
        lat=lat,
        lng=lng,
        address=address,
        work_location_id=_as_int(data.get("work_location_id")),
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=request.headers.get("User-Agent"),
    ), None


def _face_result_from_audit(audit_id: Optional[int], employee_id: int) -> Optional[FaceMatchResult]:
    """
    Rebuild the match result of a /face/verify attempt. Only fresh,
    unlinked attempts made by the same employee are honoured.
    """
    if audit_id is None:
        return None
    rec = db.session.get(FacialRecognitionAudit, audit_id)
    if rec is None or rec.time_entry_id is not None:
        return None
    payload = rec.recognition_result or {}
    if payload.get("expected_employee_id") != employee_id:
        return None
    ttl = current_app.config.get("FACE_VERIFICATION_TTL_SECONDS", 300)
    if rec.created_at < datetime.utcnow() - timedelta(seconds=ttl):
        return None
    return FaceMatchResult(
        matched_employee_id=payload.get("matched_employee_id"),
        confidence=rec.confidence_score or 0.0,
        liveness_passed=rec.liveness_passed,
        raw_image_ref=rec.attempt_image_ref,
        audit_id=rec.id,
    )


def _respond(outcome: PunchOutcome):
    if outcome.committed:
        return ok(outcome.to_dict(), status=201)
    detail = dict(outcome.detail)
    detail["audit_id"] = outcome.audit_id
    return fail(outcome.message, status=422, code=outcome.reason.value, detail=detail)


# ---------- routes ----------
@bp.post("")
@jwt_required()
def create_punch():
    """
    JSON body:
      punch_kind, lat, lng, address?, work_location_id?,
      audit_id? -> id returned by POST /api/v1/face/verify
    """
    emp = current_employee()
    if not emp:
        return fail("No employee record linked to this user", status=403)

    data = request.get_json(silent=True) or {}
    req, err = _build_request(emp.id, data)
    if err:
        return fail(err)

    face_result = _face_result_from_audit(_as_int(data.get("audit_id")), emp.id)
    outcome = build_authorizer().authorize_punch(req, face_result)
    return _respond(outcome)


@bp.post("/capture")
@jwt_required()
def capture_punch():
    """multipart/form-data: image, punch_kind, lat, lng, address?, work_location_id?"""
    emp = current_employee()
    if not emp:
        return fail("No employee record linked to this user", status=403)

    f = request.files.get("image")
    if f is None or not f.filename:
        return fail("No image provided")

    req, err = _build_request(emp.id, request.form)
    if err:
        return fail(err)

    outcome = build_authorizer().authorize_capture(req, f)
    return _respond(outcome)


@bp.get("/today")
@jwt_required()
def today():
    emp = current_employee()
    if not emp:
        return fail("No employee record linked to this user", status=403)

    authorizer = build_authorizer()
    summary = summarize_day(authorizer.ledger, emp.id, datetime.utcnow())
    data = summary.to_dict()
    data["has_facial_reference"] = emp.has_facial_reference
    return ok(data)
