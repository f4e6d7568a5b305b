from datetime import timedelta

from flask import Blueprint, request
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required,
)

from ponto_api.common.auth import current_user_id
from ponto_api.common.http import ok, fail
from ponto_api.extensions import db
from ponto_api.models.user import User

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "employee_id": u.employee_id,
    }

@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password) or u.status != "active":
        return fail("Invalid credentials", status=401)

    roles = u.role_codes()
    add_claims = {"roles": roles, "email": u.email, "name": u.full_name}
    access  = create_access_token(identity=str(u.id), additional_claims=add_claims, expires_delta=timedelta(days=1))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": roles})
    return ok({"access": access, "refresh": refresh, "user": _user_payload(u)})

@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    uid = current_user_id()
    u = db.session.get(User, uid) if uid else None
    if not u:
        return fail("User not found", status=401)
    add_claims = {"roles": u.role_codes(), "email": u.email, "name": u.full_name}
    return ok({"access": create_access_token(identity=str(u.id), additional_claims=add_claims)})

@bp.get("/me")
@jwt_required()
def me():
    uid = current_user_id()
    u = db.session.get(User, uid) if uid else None
    if not u:
        return fail("User not found", status=404)
    return ok(_user_payload(u))
