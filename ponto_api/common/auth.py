# ponto_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from ponto_api.common.http import fail
from ponto_api.extensions import db
from ponto_api.models.user import User
from ponto_api.models.employee import Employee
from ponto_api.models.security import Role, UserRole


def _roles_in_db(user_id: int) -> Set[str]:
    rows = (
        db.session.query(Role.code)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def current_user_id() -> Optional[int]:
    try:
        return int(get_jwt_identity())
    except (TypeError, ValueError):
        return None


def current_roles() -> Optional[Set[str]]:
    """Roles from the token claim, or from the DB for tokens minted without one. None if unknown user."""
    claimed = set((get_jwt() or {}).get("roles") or [])
    if claimed:
        return claimed
    uid = current_user_id()
    if uid is None or db.session.get(User, uid) is None:
        return None
    return _roles_in_db(uid)


def current_employee() -> Optional[Employee]:
    """Employee linked to the JWT user, by user_id first and email second."""
    uid = current_user_id()
    if uid is None:
        return None
    emp = Employee.query.filter_by(user_id=uid).first()
    if emp is not None:
        return emp
    user = db.session.get(User, uid)
    return Employee.query.filter_by(email=user.email).first() if user else None


def requires_roles(*codes: str):
    """JWT required plus at least one of `codes`; admin always passes."""
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            roles = current_roles()
            if roles is None:
                return fail("Unauthorized", status=401)
            if "admin" not in roles and roles.isdisjoint(codes):
                return fail("Forbidden", status=403)
            return fn(*args, **kwargs)
        return inner
    return outer
