from datetime import datetime
from ponto_api.extensions import db
from ponto_api.models.types import JSONType

AUDIT_STATUSES = ("pending", "approved", "rejected")


class FacialRecognitionAudit(db.Model):
    """Evidence of one facial verification attempt, linked to the punch it produced (if any)."""

    __tablename__ = "facial_recognition_audits"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True)
    # one primary audit per entry
    time_entry_id = db.Column(db.Integer, db.ForeignKey("time_entries.id", ondelete="SET NULL"), nullable=True, unique=True)

    attempt_image_ref = db.Column(db.Text, nullable=False, default="no-image")
    confidence_score = db.Column(db.Float, nullable=True)
    liveness_passed = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="pending")
    recognition_result = db.Column(JSONType, nullable=False)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    location_data = db.Column(JSONType, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "confidence_score is null or (confidence_score >= 0 and confidence_score <= 1)",
            name="ck_audit_confidence_range",
        ),
        db.CheckConstraint("status in ('pending','approved','rejected')", name="ck_audit_status"),
    )

    employee = db.relationship("Employee")
    time_entry = db.relationship("TimeEntry", backref=db.backref("primary_audit", uselist=False))
    reviewer = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.full_name if self.employee else None,
            "time_entry_id": self.time_entry_id,
            "attempt_image_ref": self.attempt_image_ref,
            "confidence_score": self.confidence_score,
            "liveness_passed": self.liveness_passed,
            "status": self.status,
            "recognition_result": self.recognition_result,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "location_data": self.location_data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reviewed_by": self.reviewed_by,
        }
