# ponto_api/services/audit_trail.py
from __future__ import annotations

import logging
from datetime import datetime, date, timedelta
from typing import Optional

from sqlalchemy import update, or_

from ponto_api.common.errors import AuditAlreadyLinked, AuditNotFound, APIError
from ponto_api.extensions import db
from ponto_api.models.facial_audit import FacialRecognitionAudit
from ponto_api.models.time_entry import TimeEntry
from ponto_api.services.evidence import NO_IMAGE

log = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"
REVIEW_DECISIONS = ("approved", "rejected")


def recognition_payload(outcome: str, success: bool, **extra) -> dict:
    """Tagged recognition_result: {'success', 'outcome', ...outcome-specific keys}."""
    payload = {"success": success, "outcome": outcome}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


def fallback_image_ref(time_entry_id: int) -> str:
    return f"placeholder://time-entry/{time_entry_id}"


class AuditTrail:
    """
    Writes and links facial verification audit records.

    Methods flush but never commit: the caller owns the transaction so an
    audit write can be committed together with the punch it documents.
    """

    def get(self, audit_id: int) -> FacialRecognitionAudit:
        rec = db.session.get(FacialRecognitionAudit, audit_id)
        if rec is None:
            raise AuditNotFound(f"Audit record {audit_id} not found")
        return rec

    def log_attempt(
        self,
        employee_id: Optional[int],
        image_ref: Optional[str],
        recognition_result: dict,
        confidence: Optional[float] = None,
        liveness_passed: bool = False,
        status: str = "pending",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        location_data: Optional[dict] = None,
    ) -> FacialRecognitionAudit:
        if confidence is not None:
            confidence = min(max(float(confidence), 0.0), 1.0)
        rec = FacialRecognitionAudit(
            employee_id=employee_id,
            attempt_image_ref=image_ref or NO_IMAGE,
            confidence_score=confidence,
            liveness_passed=bool(liveness_passed),
            status=status,
            recognition_result=recognition_result,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            location_data=location_data,
            created_at=datetime.utcnow(),
        )
        db.session.add(rec)
        db.session.flush()
        log.info(
            "audit %s logged: employee=%s outcome=%s status=%s",
            rec.id, employee_id, recognition_result.get("outcome"), status,
        )
        return rec

    def update_outcome(self, audit: FacialRecognitionAudit, status: str, recognition_result: dict):
        audit.status = status
        audit.recognition_result = recognition_result
        db.session.flush()

    def primary_for_entry(self, time_entry_id: int) -> Optional[FacialRecognitionAudit]:
        return FacialRecognitionAudit.query.filter_by(time_entry_id=time_entry_id).first()

    def link_to_time_entry(self, audit_id: int, time_entry_id: int) -> FacialRecognitionAudit:
        """
        Idempotent link. Relinking to another entry, or linking a second
        audit to an entry that already has one, raises AuditAlreadyLinked.
        """
        rec = self.get(audit_id)
        if rec.time_entry_id == time_entry_id:
            return rec
        if rec.time_entry_id is not None:
            raise AuditAlreadyLinked(audit_id, time_entry_id, linked_to=rec.time_entry_id)

        current = self.primary_for_entry(time_entry_id)
        if current is not None:
            raise AuditAlreadyLinked(audit_id, time_entry_id, linked_to=current.id)

        # claim only while still unlinked; another session may have linked it since the read
        claimed = db.session.execute(
            update(FacialRecognitionAudit)
            .where(
                FacialRecognitionAudit.id == audit_id,
                or_(
                    FacialRecognitionAudit.time_entry_id.is_(None),
                    FacialRecognitionAudit.time_entry_id == time_entry_id,
                ),
            )
            .values(time_entry_id=time_entry_id)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.session.refresh(rec)
        if not claimed:
            raise AuditAlreadyLinked(audit_id, time_entry_id, linked_to=rec.time_entry_id)
        return rec

    def create_fallback(self, entry: TimeEntry, status: Optional[str] = None) -> FacialRecognitionAudit:
        """Minimal audit for an entry accepted without a genuine face match."""
        rec = self.log_attempt(
            employee_id=entry.employee_id,
            image_ref=fallback_image_ref(entry.id),
            recognition_result=recognition_payload(
                FALLBACK_SOURCE, True, source=FALLBACK_SOURCE, punch_kind=entry.punch_kind,
            ),
            confidence=None,
            liveness_passed=False,
            status=status or entry.status,
        )
        rec.time_entry_id = entry.id
        db.session.flush()
        return rec

    def review(self, audit_id: int, decision: str, reviewer_id: Optional[int]) -> FacialRecognitionAudit:
        """Admin decision on the attempt. Linked time entries are left untouched."""
        if decision not in REVIEW_DECISIONS:
            raise APIError(f"decision must be one of {', '.join(REVIEW_DECISIONS)}", code="INVALID_DECISION")
        rec = self.get(audit_id)
        rec.status = decision
        rec.reviewed_at = datetime.utcnow()
        rec.reviewed_by = reviewer_id
        db.session.flush()
        log.info("audit %s reviewed as %s by user %s", audit_id, decision, reviewer_id)
        return rec

    def list_records(
        self,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        day: Optional[date] = None,
        page: int = 1,
        size: int = 50,
    ):
        q = FacialRecognitionAudit.query
        if employee_id:
            q = q.filter(FacialRecognitionAudit.employee_id == employee_id)
        if status:
            q = q.filter(FacialRecognitionAudit.status == status)
        if day:
            start = datetime.combine(day, datetime.min.time())
            q = q.filter(
                FacialRecognitionAudit.created_at >= start,
                FacialRecognitionAudit.created_at < start + timedelta(days=1),
            )
        return q.order_by(FacialRecognitionAudit.created_at.desc()).paginate(
            page=page, per_page=size, error_out=False
        )
