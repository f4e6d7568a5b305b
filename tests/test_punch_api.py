import io

import pytest

from conftest import StubMatcher, add_employee, add_admin, auth_header, confident

from ponto_api.models.facial_audit import FacialRecognitionAudit
from ponto_api.models.time_entry import TimeEntry


@pytest.fixture
def employee(session):
    return add_employee(session, "E1", with_user=True)


@pytest.fixture
def stub(app, employee):
    matcher = StubMatcher(confident(employee.id))
    app.extensions["ponto.face_matcher"] = matcher
    return matcher


def _capture(client, emp, kind="IN", **fields):
    data = {"image": (io.BytesIO(b"fake-jpeg"), "face.jpg"), "punch_kind": kind}
    data.update(fields)
    return client.post("/api/v1/punches/capture", data=data, content_type="multipart/form-data",
                       headers=auth_header(emp.user_id))


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "ok"


def test_login_and_me(client, employee):
    r = client.post("/api/v1/auth/login", json={"email": "e1@ponto.local", "password": "secret"})
    assert r.status_code == 200
    body = r.get_json()["data"]
    assert body["user"]["employee_id"] == employee.id

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access']}"})
    assert me.get_json()["data"]["email"] == "e1@ponto.local"


def test_login_rejects_bad_password(client, employee):
    r = client.post("/api/v1/auth/login", json={"email": "e1@ponto.local", "password": "nope"})
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_capture_punch_commits_and_links_audit(client, session, employee, stub):
    r = _capture(client, employee)

    assert r.status_code == 201
    body = r.get_json()["data"]
    assert body["committed"] is True
    assert body["time_entry"]["punch_kind"] == "IN"
    assert body["time_entry"]["status"] == "approved"

    assert len(stub.calls) == 1
    _, expected, image_ref = stub.calls[0]
    assert expected == employee.id
    assert image_ref.startswith(f"audit/{employee.id}/")

    rec = session.get(FacialRecognitionAudit, body["audit_id"])
    assert rec.time_entry_id == body["time_entry"]["id"]
    assert rec.status == "approved"
    assert rec.attempt_image_ref == image_ref


def test_second_capture_same_kind_is_rejected_with_envelope(client, employee, stub):
    assert _capture(client, employee).status_code == 201
    r = _capture(client, employee)

    assert r.status_code == 422
    err = r.get_json()["error"]
    assert err["code"] == "ALREADY_PUNCHED_TODAY"
    assert err["detail"]["audit_id"] is not None
    assert TimeEntry.query.count() == 1


def test_capture_requires_image(client, employee, stub):
    r = client.post("/api/v1/punches/capture", data={"punch_kind": "IN"},
                    content_type="multipart/form-data", headers=auth_header(employee.user_id))
    assert r.status_code == 400


def test_unknown_punch_kind(client, employee, stub):
    r = client.post("/api/v1/punches", json={"punch_kind": "LUNCH"}, headers=auth_header(employee.user_id))
    assert r.status_code == 400


def test_user_without_employee_is_forbidden(client, session):
    admin = add_admin(session)
    r = client.post("/api/v1/punches", json={"punch_kind": "IN"}, headers=auth_header(admin.id, ["admin"]))
    assert r.status_code == 403


def test_json_punch_without_verification_is_not_recognized(client, employee, stub):
    r = client.post("/api/v1/punches", json={"punch_kind": "IN"}, headers=auth_header(employee.user_id))

    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "FACE_NOT_RECOGNIZED"
    assert stub.calls == []


def test_verify_then_punch_reuses_audit(client, employee, stub):
    v = client.post("/api/v1/face/verify", data={"image": (io.BytesIO(b"x"), "face.jpg")},
                    content_type="multipart/form-data", headers=auth_header(employee.user_id))
    assert v.status_code == 200
    verified = v.get_json()["data"]
    assert verified["matched"] is True

    r = client.post("/api/v1/punches", json={"punch_kind": "IN", "audit_id": verified["audit_id"]},
                    headers=auth_header(employee.user_id))

    assert r.status_code == 201
    assert r.get_json()["data"]["audit_id"] == verified["audit_id"]
    assert FacialRecognitionAudit.query.count() == 1


def test_verification_of_another_employee_is_not_honoured(client, session, employee, stub):
    other = add_employee(session, "E2", with_user=True)
    v = client.post("/api/v1/face/verify", data={"image": (io.BytesIO(b"x"), "face.jpg")},
                    content_type="multipart/form-data", headers=auth_header(employee.user_id))
    audit_id = v.get_json()["data"]["audit_id"]

    r = client.post("/api/v1/punches", json={"punch_kind": "IN", "audit_id": audit_id},
                    headers=auth_header(other.user_id))

    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "FACE_NOT_RECOGNIZED"


def test_today_summary(client, employee, stub):
    _capture(client, employee)
    r = client.get("/api/v1/punches/today", headers=auth_header(employee.user_id))

    data = r.get_json()["data"]
    assert data["used_kinds"] == ["IN"]
    assert data["next_expected"] == "BREAK_IN"
    assert data["has_facial_reference"] is True


# ---------- facial audit administration ----------

def test_audit_list_requires_hr_or_admin(client, employee):
    r = client.get("/api/v1/facial-audit", headers=auth_header(employee.user_id, ["employee"]))
    assert r.status_code == 403


def test_audit_list_and_review(client, session, employee, stub):
    admin = add_admin(session)
    _capture(client, employee)
    headers = auth_header(admin.id, ["admin"])

    listing = client.get("/api/v1/facial-audit", headers=headers).get_json()
    assert listing["meta"]["total"] == 1
    audit_id = listing["data"][0]["id"]

    r = client.post(f"/api/v1/facial-audit/{audit_id}/review", json={"decision": "rejected"}, headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "rejected"
    assert data["reviewed_by"] == admin.id
    # the linked entry keeps its own status
    assert TimeEntry.query.one().status == "approved"


def test_review_rejects_unknown_decision(client, session, employee, stub):
    admin = add_admin(session)
    body = _capture(client, employee).get_json()["data"]
    r = client.post(f"/api/v1/facial-audit/{body['audit_id']}/review", json={"decision": "maybe"},
                    headers=auth_header(admin.id, ["admin"]))
    assert r.status_code == 400
    assert r.get_json()["error"]["code"] == "INVALID_DECISION"


def test_review_unknown_audit_is_404(client, session):
    admin = add_admin(session)
    r = client.post("/api/v1/facial-audit/999/review", json={"decision": "approved"},
                    headers=auth_header(admin.id, ["admin"]))
    assert r.status_code == 404
    assert r.get_json()["error"]["code"] == "AUDIT_NOT_FOUND"


def test_link_conflict_is_409(client, session, employee, stub):
    admin = add_admin(session)
    headers = auth_header(admin.id, ["admin"])
    body = _capture(client, employee).get_json()["data"]
    stray = FacialRecognitionAudit(employee_id=employee.id, attempt_image_ref="no-image",
                                   status="pending", recognition_result={"outcome": "matched"})
    session.add(stray)
    session.commit()

    r = client.post(f"/api/v1/facial-audit/{stray.id}/link",
                    json={"time_entry_id": body["time_entry"]["id"]}, headers=headers)
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "AUDIT_ALREADY_LINKED"

    missing = client.post(f"/api/v1/facial-audit/{stray.id}/link", json={"time_entry_id": 999}, headers=headers)
    assert missing.status_code == 404


def test_reconcile_endpoint(client, session, employee):
    from datetime import datetime

    admin = add_admin(session)
    now = datetime.utcnow()
    session.add(TimeEntry(employee_id=employee.id, punch_kind="IN", punch_ts=now,
                          work_date=now.date(), status="approved", ledger_slot="day"))
    session.commit()
    headers = auth_header(admin.id, ["admin"])

    first = client.post("/api/v1/facial-audit/reconcile", headers=headers)
    second = client.post("/api/v1/facial-audit/reconcile", headers=headers)

    assert first.get_json()["data"]["created"] == 1
    assert second.get_json()["data"]["created"] == 0
