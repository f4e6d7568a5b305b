# ponto_api/services/punch_authorizer.py
"""
Punch authorization.

A single attempt walks Received -> GeoChecked -> FaceChecked ->
LedgerChecked -> Committed, or stops at Rejected(reason). Rejections are
returned as PunchOutcome values; only storage outages raise
(StoreUnavailable).

Transaction boundaries:
  * the verification attempt's audit record is committed as soon as the
    face step is decided, so failed attempts are never lost;
  * the time entry, its audit link (or fallback audit) and the audit's
    final status are committed together. The daily slot is guarded by the
    uq_time_entry_ledger_slot constraint, so two concurrent attempts that
    both pass the ledger check still produce one entry. A connectivity
    failure inside that unit rolls it back and the unit is retried
    (COMMIT_ATTEMPTS), so an entry is never left without its audit link.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError

from ponto_api.common.errors import AuditAlreadyLinked, StoreUnavailable
from ponto_api.extensions import db
from ponto_api.models.facial_audit import FacialRecognitionAudit
from ponto_api.models.time_entry import TimeEntry, PunchKind, ADDRESS_MAX_LEN
from ponto_api.services.audit_trail import AuditTrail, recognition_payload
from ponto_api.services.evidence import save_evidence, evidence_path
from ponto_api.services.face_matcher import (
    FaceMatcher,
    FaceMatchResult,
    FacePolicy,
    DeepFaceMatcher,
    evaluate_match,
    MATCHED,
)
from ponto_api.services.geofence import GeofenceService, GeofencingPolicy
from ponto_api.services.geocoding import reverse_geocode
from ponto_api.services.identity import IdentityStore
from ponto_api.services.punch_ledger import PunchLedger, to_utc_naive

log = logging.getLogger(__name__)

NO_CAPTURE = "no_capture"
ALREADY_PUNCHED = "already_punched"
MANUAL = "manual"

COMMIT_ATTEMPTS = 3


class RejectionReason(str, enum.Enum):
    FACIAL_REGISTRATION_REQUIRED = "FACIAL_REGISTRATION_REQUIRED"
    FACE_NOT_RECOGNIZED = "FACE_NOT_RECOGNIZED"
    OUTSIDE_ALLOWED_AREA = "OUTSIDE_ALLOWED_AREA"
    ALREADY_PUNCHED_TODAY = "ALREADY_PUNCHED_TODAY"
    EMPLOYEE_INACTIVE = "EMPLOYEE_INACTIVE"


REJECTION_MESSAGES = {
    RejectionReason.FACIAL_REGISTRATION_REQUIRED: "Facial registration is required before punching",
    RejectionReason.FACE_NOT_RECOGNIZED: "Face not recognized",
    RejectionReason.OUTSIDE_ALLOWED_AREA: "You are outside every allowed work location",
    RejectionReason.ALREADY_PUNCHED_TODAY: "This punch was already registered today",
    RejectionReason.EMPLOYEE_INACTIVE: "Employee not found or inactive",
}


class AuthState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    GEO_CHECKED = "GEO_CHECKED"
    FACE_CHECKED = "FACE_CHECKED"
    LEDGER_CHECKED = "LEDGER_CHECKED"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"


@dataclass
class PunchRequest:
    employee_id: int
    kind: PunchKind
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    work_location_id: Optional[int] = None  # caller's pick, used when geofencing is off
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def location_data(self) -> Optional[dict]:
        if self.lat is None or self.lng is None:
            return None
        return {"lat": self.lat, "lng": self.lng, "address": self.address}


@dataclass
class PunchOutcome:
    state: AuthState
    reason: Optional[RejectionReason] = None
    time_entry: Optional[TimeEntry] = None
    audit_id: Optional[int] = None
    detail: dict = field(default_factory=dict)

    @property
    def committed(self) -> bool:
        return self.state is AuthState.COMMITTED

    @property
    def message(self) -> str:
        if self.reason is None:
            return "Punch registered"
        return REJECTION_MESSAGES[self.reason]

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "committed": self.committed,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "audit_id": self.audit_id,
            "time_entry": self.time_entry.to_dict() if self.time_entry is not None else None,
            "detail": self.detail,
        }


FaceResultSource = Union[FaceMatchResult, Callable[[], Optional[FaceMatchResult]], None]

_OUTSIDE = object()


class PunchAuthorizer:
    def __init__(
        self,
        identity: IdentityStore,
        ledger: PunchLedger,
        audit: AuditTrail,
        matcher: Optional[FaceMatcher] = None,
    ):
        self.identity = identity
        self.ledger = ledger
        self.audit = audit
        self.matcher = matcher

    # ------------------------------------------------------------------ entry points

    def authorize_punch(
        self,
        request: PunchRequest,
        face_result: FaceResultSource = None,
        now: Optional[datetime] = None,
        geofencing: Optional[GeofencingPolicy] = None,
        face_policy: Optional[FacePolicy] = None,
    ) -> PunchOutcome:
        """
        Decide one punch attempt. `face_result` may be a callable; it is only
        invoked once the geo and facial-registration checks have passed.
        """
        now = to_utc_naive(now or datetime.utcnow())
        try:
            return self._authorize(request, face_result, now, geofencing, face_policy)
        except (OperationalError, InterfaceError) as e:
            db.session.rollback()
            log.exception("store failure while authorizing punch for employee %s", request.employee_id)
            raise StoreUnavailable() from e

    def authorize_capture(self, request: PunchRequest, capture, now: Optional[datetime] = None, **policies) -> PunchOutcome:
        """Store the uploaded capture and run the matcher lazily (expected identity = requester)."""
        if self.matcher is None:
            raise RuntimeError("PunchAuthorizer has no FaceMatcher configured")

        def _match() -> FaceMatchResult:
            key = save_evidence(capture, request.employee_id)
            return self.matcher.verify(
                evidence_path(key), expected_employee_id=request.employee_id, image_ref=key
            )

        return self.authorize_punch(request, _match, now=now, **policies)

    def review_audit(self, audit_id: int, decision: str, reviewer_id: Optional[int]) -> FacialRecognitionAudit:
        rec = self.audit.review(audit_id, decision, reviewer_id)
        db.session.commit()
        return rec

    def reconcile_orphan_audits(self) -> int:
        """Create the fallback audit for every time entry that has no linked audit."""
        orphans = (
            db.session.query(TimeEntry)
            .outerjoin(FacialRecognitionAudit, FacialRecognitionAudit.time_entry_id == TimeEntry.id)
            .filter(FacialRecognitionAudit.id.is_(None))
            .order_by(TimeEntry.id.asc())
            .all()
        )
        for entry in orphans:
            self.audit.create_fallback(entry)
            log.warning("time entry %s had no audit record; fallback created", entry.id)
        db.session.commit()
        return len(orphans)

    # ------------------------------------------------------------------ state machine

    def _reject(self, reason: RejectionReason, audit_id: Optional[int] = None, **detail) -> PunchOutcome:
        log.info("punch rejected: %s audit=%s %s", reason.value, audit_id, detail or "")
        return PunchOutcome(AuthState.REJECTED, reason=reason, audit_id=audit_id, detail=detail)

    def _authorize(self, req, face_result, now, geofencing, face_policy) -> PunchOutcome:
        # Received
        emp = self.identity.employee(req.employee_id)
        if emp is None or not emp.is_active:
            return self._reject(RejectionReason.EMPLOYEE_INACTIVE)
        geofencing = geofencing or self.identity.geofencing_policy()
        face_policy = face_policy or self.identity.face_policy()

        # GeoChecked
        location = self._check_geo(req, geofencing)
        if location is _OUTSIDE:
            return self._reject(RejectionReason.OUTSIDE_ALLOWED_AREA, lat=req.lat, lng=req.lng)

        # FaceChecked
        if not self.identity.has_facial_reference(emp.id):
            return self._reject(RejectionReason.FACIAL_REGISTRATION_REQUIRED)

        if callable(face_result):
            face_result = face_result()

        audit = None
        if face_result is None:
            if not face_policy.allow_manual_punch:
                audit = self.audit.log_attempt(
                    employee_id=emp.id,
                    image_ref=None,
                    recognition_result=recognition_payload(NO_CAPTURE, False, punch_kind=req.kind.value),
                    status="rejected",
                    ip_address=req.ip_address,
                    user_agent=req.user_agent,
                    location_data=req.location_data(),
                )
                db.session.commit()
                return self._reject(RejectionReason.FACE_NOT_RECOGNIZED, audit_id=audit.id, outcome=NO_CAPTURE)
        else:
            face_result, prior = self._resolve_verification(face_result, emp.id)
            outcome = evaluate_match(face_result, emp.id, face_policy)
            audit = self._attempt_audit(req, face_result, outcome, face_policy, prior)
            db.session.commit()
            if outcome != MATCHED:
                return self._reject(RejectionReason.FACE_NOT_RECOGNIZED, audit_id=audit.id, outcome=outcome)

        # LedgerChecked
        if not self.ledger.can_punch(emp.id, req.kind, now):
            return self._already_punched(req, audit)

        # Committed
        return self._commit(req, emp, location, audit, now)

    def _check_geo(self, req: PunchRequest, policy: GeofencingPolicy):
        if not policy.enabled:
            return self.identity.work_location(req.work_location_id)
        loc = GeofenceService.locate(
            req.lat, req.lng, self.identity.active_work_locations(), policy.default_radius_m
        )
        return loc if loc is not None else _OUTSIDE

    def _resolve_verification(self, result: FaceMatchResult, employee_id: int):
        """
        (result, prior) for a result that names a logged verification.
        A verification is reused only while unlinked and logged for this
        employee; it is then judged on the stored score and liveness, never
        on the caller's copy. Anything else is treated as a fresh attempt.
        """
        if result.audit_id is None:
            return result, None
        prior = db.session.get(FacialRecognitionAudit, result.audit_id)
        if prior is None or prior.time_entry_id is not None or prior.employee_id != employee_id:
            log.warning(
                "verification %s not reusable by employee %s; logging a fresh attempt",
                result.audit_id, employee_id,
            )
            return replace(result, audit_id=None), None
        stored = prior.recognition_result or {}
        return FaceMatchResult(
            matched_employee_id=stored.get("matched_employee_id"),
            confidence=prior.confidence_score or 0.0,
            liveness_passed=bool(prior.liveness_passed),
            raw_image_ref=prior.attempt_image_ref,
            audit_id=prior.id,
        ), prior

    def _attempt_audit(self, req, result: FaceMatchResult, outcome: str, policy: FacePolicy, prior=None):
        payload = recognition_payload(
            outcome,
            outcome == MATCHED,
            matched_employee_id=result.matched_employee_id,
            expected_employee_id=req.employee_id,
            confidence=result.confidence,
            threshold=policy.similarity_threshold,
            punch_kind=req.kind.value,
        )
        status = "pending" if outcome == MATCHED else "rejected"

        if prior is not None:
            self.audit.update_outcome(prior, status, payload)
            return prior

        return self.audit.log_attempt(
            employee_id=req.employee_id,
            image_ref=result.raw_image_ref,
            recognition_result=payload,
            confidence=result.confidence,
            liveness_passed=result.liveness_passed,
            status=status,
            ip_address=req.ip_address,
            user_agent=req.user_agent,
            location_data=req.location_data(),
        )

    def _already_punched(self, req: PunchRequest, audit: Optional[FacialRecognitionAudit]) -> PunchOutcome:
        if audit is None:
            return self._reject(RejectionReason.ALREADY_PUNCHED_TODAY, kind=req.kind.value)
        payload = dict(audit.recognition_result or {})
        payload.update(success=False, outcome=ALREADY_PUNCHED)
        self.audit.update_outcome(audit, "rejected", payload)
        db.session.commit()
        return self._reject(RejectionReason.ALREADY_PUNCHED_TODAY, audit_id=audit.id, kind=req.kind.value)

    def _commit(self, req, emp, location, audit, now) -> PunchOutcome:
        manual = audit is None
        audit_id = audit.id if audit is not None else None
        address = self._address(req)
        for attempt in range(1, COMMIT_ATTEMPTS + 1):
            if audit_id is not None:
                audit = db.session.get(FacialRecognitionAudit, audit_id)
            entry = TimeEntry(
                employee_id=emp.id,
                punch_kind=req.kind.value,
                punch_ts=now,
                work_date=self.ledger.work_date(now),
                location_lat=req.lat,
                location_lng=req.lng,
                location_address=address,
                work_location_id=location.id if location is not None else None,
                status="pending" if manual else "approved",
                ledger_slot=self.ledger.slot_for(emp.id, req.kind, now),
            )
            try:
                db.session.add(entry)
                db.session.flush()
                linked = self._link(entry, audit)
                if not manual and linked.id == audit_id:
                    linked.status = "approved"
                db.session.commit()
                break
            except IntegrityError:
                # a concurrent attempt took the slot between the ledger check and the insert
                db.session.rollback()
                log.info("ledger slot conflict for employee %s kind %s", emp.id, req.kind.value)
                audit = db.session.get(FacialRecognitionAudit, audit_id) if audit_id else None
                return self._already_punched(req, audit)
            except (OperationalError, InterfaceError):
                # entry and link are one unit; nothing of this attempt survives the rollback
                db.session.rollback()
                if attempt == COMMIT_ATTEMPTS:
                    raise
                log.warning("punch commit attempt %s failed for employee %s; retrying", attempt, emp.id)

        log.info(
            "punch committed: entry=%s employee=%s kind=%s audit=%s manual=%s",
            entry.id, emp.id, entry.punch_kind, linked.id, manual,
        )
        detail = {"source": MANUAL} if manual else {}
        return PunchOutcome(AuthState.COMMITTED, time_entry=entry, audit_id=linked.id, detail=detail)

    def _address(self, req: PunchRequest) -> Optional[str]:
        address = req.address
        if address is None and req.lat is not None and req.lng is not None:
            address = reverse_geocode(req.lat, req.lng)
        return address[:ADDRESS_MAX_LEN] if address else None

    def _link(self, entry: TimeEntry, audit: Optional[FacialRecognitionAudit]) -> FacialRecognitionAudit:
        if audit is None:
            return self.audit.create_fallback(entry)
        try:
            return self.audit.link_to_time_entry(audit.id, entry.id)
        except AuditAlreadyLinked as e:
            # never surfaced to the puncher; keep the entry covered with its own record
            log.warning("audit link conflict (%s); creating fallback for entry %s", e.message, entry.id)
            return self.audit.create_fallback(entry)


def build_authorizer() -> PunchAuthorizer:
    """Authorizer wired from the current app's config."""
    cfg = current_app.config
    identity = IdentityStore()
    matcher = current_app.extensions.get("ponto.face_matcher")
    if matcher is None:
        matcher = DeepFaceMatcher(check_liveness=identity.face_policy().require_liveness)
    return PunchAuthorizer(
        identity=identity,
        ledger=PunchLedger(cfg.get("PONTO_TIMEZONE", "UTC"), identity=identity),
        audit=AuditTrail(),
        matcher=matcher,
    )
