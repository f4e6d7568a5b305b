from datetime import datetime, time
from ponto_api.extensions import db

class WorkSchedule(db.Model):
    __tablename__ = "work_schedules"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, unique=True)

    clock_in_time    = db.Column(db.Time, nullable=False, default=time(8, 0))
    clock_out_time   = db.Column(db.Time, nullable=False, default=time(17, 0))
    break_start_time = db.Column(db.Time, nullable=True, default=time(12, 0))
    break_end_time   = db.Column(db.Time, nullable=True, default=time(13, 0))
    tolerance_minutes = db.Column(db.Integer, nullable=False, default=15)

    is_active  = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("tolerance_minutes >= 0", name="ck_work_schedule_tolerance"),
    )

    employee = db.relationship("Employee", backref=db.backref("work_schedule", uselist=False))
