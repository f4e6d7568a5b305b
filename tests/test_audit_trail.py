from datetime import datetime

import pytest
from sqlalchemy import text

from conftest import add_employee, add_admin

from ponto_api.common.errors import AuditAlreadyLinked, AuditNotFound, APIError
from ponto_api.models.time_entry import TimeEntry
from ponto_api.services.audit_trail import AuditTrail, recognition_payload


def _time_entry(session, emp, kind="IN"):
    e = TimeEntry(employee_id=emp.id, punch_kind=kind, punch_ts=datetime(2025, 3, 10, 8, 0),
                  work_date=datetime(2025, 3, 10).date(), status="approved", ledger_slot="day")
    session.add(e)
    session.commit()
    return e


def _attempt(trail, emp, **kw):
    return trail.log_attempt(
        employee_id=emp.id,
        image_ref="audit/1/a.jpg",
        recognition_result=recognition_payload("matched", True),
        confidence=kw.get("confidence", 0.9),
        liveness_passed=True,
    )


def test_log_attempt_defaults_to_pending(session):
    emp = add_employee(session)
    rec = _attempt(AuditTrail(), emp)
    session.commit()

    assert rec.id is not None
    assert rec.status == "pending"
    assert rec.recognition_result == {"success": True, "outcome": "matched"}


def test_log_attempt_clamps_confidence(session):
    emp = add_employee(session)
    rec = _attempt(AuditTrail(), emp, confidence=1.4)
    session.commit()
    assert rec.confidence_score == 1.0


def test_link_is_idempotent(session):
    emp = add_employee(session)
    trail = AuditTrail()
    entry = _time_entry(session, emp)
    rec = _attempt(trail, emp)

    trail.link_to_time_entry(rec.id, entry.id)
    trail.link_to_time_entry(rec.id, entry.id)
    session.commit()

    assert trail.primary_for_entry(entry.id).id == rec.id


def test_relinking_to_another_entry_conflicts(session):
    emp = add_employee(session)
    trail = AuditTrail()
    first = _time_entry(session, emp, "IN")
    second = _time_entry(session, emp, "OUT")
    rec = _attempt(trail, emp)
    trail.link_to_time_entry(rec.id, first.id)
    session.commit()

    with pytest.raises(AuditAlreadyLinked) as exc:
        trail.link_to_time_entry(rec.id, second.id)
    assert exc.value.linked_to == first.id
    assert trail.get(rec.id).time_entry_id == first.id


def test_link_loses_to_a_link_written_since_the_read(session):
    emp = add_employee(session)
    trail = AuditTrail()
    first = _time_entry(session, emp, "IN")
    second = _time_entry(session, emp, "OUT")
    rec = _attempt(trail, emp)
    session.commit()
    assert rec.time_entry_id is None

    # another worker links the same record behind this session's back
    session.execute(
        text("UPDATE facial_recognition_audits SET time_entry_id = :e WHERE id = :a"),
        {"e": first.id, "a": rec.id},
    )

    with pytest.raises(AuditAlreadyLinked) as exc:
        trail.link_to_time_entry(rec.id, second.id)
    assert exc.value.linked_to == first.id
    session.commit()
    linked = session.execute(
        text("SELECT time_entry_id FROM facial_recognition_audits WHERE id = :a"), {"a": rec.id}
    ).scalar()
    assert linked == first.id

def test_second_audit_for_same_entry_conflicts(session):
    emp = add_employee(session)
    trail = AuditTrail()
    entry = _time_entry(session, emp)
    a = _attempt(trail, emp)
    b = _attempt(trail, emp)
    trail.link_to_time_entry(a.id, entry.id)

    with pytest.raises(AuditAlreadyLinked):
        trail.link_to_time_entry(b.id, entry.id)


def test_link_unknown_audit(session):
    with pytest.raises(AuditNotFound):
        AuditTrail().link_to_time_entry(999, 1)


def test_fallback_record_shape(session):
    emp = add_employee(session)
    entry = _time_entry(session, emp, "OUT")
    rec = AuditTrail().create_fallback(entry)
    session.commit()

    assert rec.time_entry_id == entry.id
    assert rec.liveness_passed is False
    assert rec.confidence_score is None
    assert rec.recognition_result["source"] == "fallback"
    assert rec.recognition_result["punch_kind"] == "OUT"
    assert rec.attempt_image_ref == f"placeholder://time-entry/{entry.id}"
    assert rec.status == "approved"


def test_review_sets_reviewer_and_keeps_entry(session):
    emp = add_employee(session)
    admin = add_admin(session)
    trail = AuditTrail()
    entry = _time_entry(session, emp)
    rec = _attempt(trail, emp)
    trail.link_to_time_entry(rec.id, entry.id)
    session.commit()

    trail.review(rec.id, "rejected", admin.id)
    session.commit()

    assert rec.status == "rejected"
    assert rec.reviewed_by == admin.id
    assert rec.reviewed_at is not None
    assert session.get(TimeEntry, entry.id).status == "approved"


def test_review_rejects_unknown_decision(session):
    emp = add_employee(session)
    rec = _attempt(AuditTrail(), emp)
    with pytest.raises(APIError):
        AuditTrail().review(rec.id, "maybe", None)


def test_list_records_filters_by_status(session):
    emp = add_employee(session)
    trail = AuditTrail()
    _attempt(trail, emp)
    rejected = trail.log_attempt(emp.id, None, recognition_payload("no_match", False), status="rejected")
    session.commit()

    page = trail.list_records(status="rejected")
    assert [r.id for r in page.items] == [rejected.id]
    assert page.items[0].attempt_image_ref == "no-image"
