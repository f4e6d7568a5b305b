from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from ponto_api.common.auth import requires_roles, current_employee
from ponto_api.common.http import ok, fail
from ponto_api.extensions import db
from ponto_api.models.face_profile import EmployeeFaceProfile
from ponto_api.services.audit_trail import AuditTrail, recognition_payload
from ponto_api.services.evidence import save_evidence, evidence_path
from ponto_api.services.face_matcher import enroll_face, evaluate_match, MATCHED
from ponto_api.services.punch_authorizer import build_authorizer

bp = Blueprint("face", __name__, url_prefix="/api/v1/face")

# --- HR Endpoints ---

@bp.post("/enroll")
@requires_roles("admin", "hr")
def enroll():
    # multipart/form-data: employee_id, image, label
    f = request.files.get("image")
    if f is None or not f.filename:
        return fail("No image file provided")

    emp_id = request.form.get("employee_id", type=int)
    if not emp_id:
        return fail("employee_id is required")

    res = enroll_face(emp_id, f, request.form.get("label"))
    if not res["success"]:
        return fail(res["error"], code="FACE_NOT_DETECTED")
    return ok(res, status=201)

@bp.get("/profiles")
@requires_roles("admin", "hr")
def list_profiles():
    emp_id = request.args.get("employee_id", type=int)
    if not emp_id:
        return fail("employee_id is required")
    profiles = EmployeeFaceProfile.query.filter_by(employee_id=emp_id).all()
    return ok([p.to_dict() for p in profiles])

@bp.post("/profiles/<int:pid>/deactivate")
@requires_roles("admin", "hr")
def deactivate_profile(pid):
    p = db.get_or_404(EmployeeFaceProfile, pid)
    p.is_active = False
    db.session.commit()
    return ok({"id": pid, "is_active": False})

# --- Employee Endpoints ---

@bp.post("/verify")
@jwt_required()
def verify():
    """
    Run the matcher on a capture and log the attempt. The returned
    audit_id can be handed to POST /api/v1/punches within the TTL.
    """
    emp = current_employee()
    if not emp:
        return fail("No employee record linked to this user", status=403)

    f = request.files.get("image")
    if f is None or not f.filename:
        return fail("No image provided")

    authorizer = build_authorizer()
    policy = authorizer.identity.face_policy()

    key = save_evidence(f, emp.id)
    result = authorizer.matcher.verify(evidence_path(key), expected_employee_id=emp.id, image_ref=key)
    outcome = evaluate_match(result, emp.id, policy)

    audit = AuditTrail().log_attempt(
        employee_id=emp.id,
        image_ref=key,
        recognition_result=recognition_payload(
            outcome,
            outcome == MATCHED,
            matched_employee_id=result.matched_employee_id,
            expected_employee_id=emp.id,
            confidence=result.confidence,
            threshold=policy.similarity_threshold,
            reason=result.detail.get("reason"),
        ),
        confidence=result.confidence,
        liveness_passed=result.liveness_passed,
        status="pending" if outcome == MATCHED else "rejected",
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=request.headers.get("User-Agent"),
    )
    db.session.commit()

    data = result.to_dict()
    data.update(audit_id=audit.id, outcome=outcome, matched=outcome == MATCHED)
    return ok(data)
