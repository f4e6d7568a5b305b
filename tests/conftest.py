import os
from datetime import time

import pytest
from flask_jwt_extended import create_access_token

from ponto_api import create_app
from ponto_api.extensions import db
from ponto_api.models.employee import Employee
from ponto_api.models.face_profile import EmployeeFaceProfile
from ponto_api.models.master import WorkLocation, SystemSetting
from ponto_api.models.security import UserRole
from ponto_api.models.user import User
from ponto_api.models.work_schedule import WorkSchedule
from ponto_api.services.audit_trail import AuditTrail
from ponto_api.services.face_matcher import FaceMatcher, FaceMatchResult
from ponto_api.services.identity import IdentityStore, GEOFENCING_KEY
from ponto_api.services.punch_authorizer import PunchAuthorizer
from ponto_api.services.punch_ledger import PunchLedger


class StubMatcher(FaceMatcher):
    """Returns a canned result and records every call."""

    def __init__(self, result=None):
        self.result = result
        self.calls = []

    def verify(self, image, expected_employee_id=None, image_ref="no-image"):
        self.calls.append((image, expected_employee_id, image_ref))
        r = self.result or FaceMatchResult()
        return FaceMatchResult(
            matched_employee_id=r.matched_employee_id,
            confidence=r.confidence,
            liveness_passed=r.liveness_passed,
            raw_image_ref=image_ref,
        )


@pytest.fixture(scope="function")
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config["TESTING"] = True
    app.config["PONTO_TIMEZONE"] = "UTC"
    app.config["EVIDENCE_UPLOAD_FOLDER"] = str(tmp_path / "evidence")
    app.config["REVERSE_GEOCODING_URL"] = None
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def session(app):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


def add_employee(session, code="E1", enrolled=True, active=True, with_user=False):
    user = None
    if with_user:
        user = User(email=f"{code.lower()}@ponto.local", full_name=f"Employee {code}", status="active")
        user.set_password("secret")
        session.add(user)
        session.flush()
    emp = Employee(
        code=code,
        email=f"{code.lower()}@ponto.local",
        full_name=f"Employee {code}",
        is_active=active,
        user_id=user.id if user else None,
    )
    session.add(emp)
    session.flush()
    if enrolled:
        session.add(EmployeeFaceProfile(employee_id=emp.id, embedding=[0.1, 0.2, 0.3], is_active=True))
    session.commit()
    return emp


def add_location(session, name="HQ", lat=0.0, lng=0.0, radius=50, active=True):
    loc = WorkLocation(name=name, type="office", latitude=lat, longitude=lng,
                       radius_meters=radius, is_active=active)
    session.add(loc)
    session.commit()
    return loc


def add_schedule(session, emp, clock_in=time(8, 0), tolerance=15):
    s = WorkSchedule(employee_id=emp.id, clock_in_time=clock_in, clock_out_time=time(17, 0),
                     tolerance_minutes=tolerance)
    session.add(s)
    session.commit()
    return s


def set_geofencing(session, enabled=True, default_radius=100):
    SystemSetting.put(GEOFENCING_KEY, {"enabled": enabled, "default_radius": default_radius})
    session.commit()


def add_admin(session, email="admin@ponto.local"):
    user = User(email=email, full_name="Admin", status="active")
    user.set_password("secret")
    session.add(user)
    session.flush()
    UserRole.grant(user, "admin")
    session.commit()
    return user


def auth_header(user_id, roles=()):
    token = create_access_token(identity=str(user_id), additional_claims={"roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


def confident(emp_id, confidence=0.97, liveness=True):
    return FaceMatchResult(matched_employee_id=emp_id, confidence=confidence,
                           liveness_passed=liveness, raw_image_ref="audit/1/capture.jpg")


@pytest.fixture
def matcher():
    return StubMatcher()


@pytest.fixture
def authorizer(app, matcher):
    identity = IdentityStore()
    return PunchAuthorizer(
        identity=identity,
        ledger=PunchLedger("UTC", identity=identity),
        audit=AuditTrail(),
        matcher=matcher,
    )
