from datetime import datetime

from flask import Blueprint, request

from ponto_api.common.auth import requires_roles, current_user_id
from ponto_api.common.http import ok, fail
from ponto_api.common.paging import page_limit
from ponto_api.extensions import db
from ponto_api.models.time_entry import TimeEntry
from ponto_api.services.audit_trail import AuditTrail
from ponto_api.services.punch_authorizer import build_authorizer

bp = Blueprint("facial_audit", __name__, url_prefix="/api/v1/facial-audit")


@bp.get("")
@requires_roles("admin", "hr")
def list_audits():
    day = None
    date_str = request.args.get("date")
    if date_str:
        try:
            day = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            return fail("date must be YYYY-MM-DD")

    page, size = page_limit()
    pagination = AuditTrail().list_records(
        employee_id=request.args.get("employee_id", type=int),
        status=request.args.get("status"),
        day=day,
        page=page,
        size=size,
    )
    return ok([r.to_dict() for r in pagination.items], page=page, size=size, total=pagination.total)


@bp.get("/<int:audit_id>")
@requires_roles("admin", "hr")
def get_audit(audit_id):
    return ok(AuditTrail().get(audit_id).to_dict())


@bp.post("/<int:audit_id>/review")
@requires_roles("admin", "hr")
def review_audit(audit_id):
    data = request.get_json(silent=True) or {}
    decision = (data.get("decision") or "").strip().lower()
    rec = build_authorizer().review_audit(audit_id, decision, current_user_id())
    return ok(rec.to_dict())


@bp.post("/<int:audit_id>/link")
@requires_roles("admin")
def link_audit(audit_id):
    data = request.get_json(silent=True) or {}
    entry_id = data.get("time_entry_id")
    if not isinstance(entry_id, int):
        return fail("time_entry_id is required")
    if db.session.get(TimeEntry, entry_id) is None:
        return fail("Time entry not found", status=404)
    rec = AuditTrail().link_to_time_entry(audit_id, entry_id)
    db.session.commit()
    return ok(rec.to_dict())


@bp.post("/reconcile")
@requires_roles("admin")
def reconcile():
    count = build_authorizer().reconcile_orphan_audits()
    return ok({"created": count})
