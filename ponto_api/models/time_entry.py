# ponto_api/models/time_entry.py
from __future__ import annotations

import enum
from datetime import datetime, date
from typing import Optional, Dict, Any

from sqlalchemy import (
    Index,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ponto_api.extensions import db


class PunchKind(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    BREAK_IN = "BREAK_IN"
    BREAK_OUT = "BREAK_OUT"

    @classmethod
    def parse(cls, raw) -> Optional["PunchKind"]:
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw
        s = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(s)
        except ValueError:
            return None


ENTRY_STATUSES = ("pending", "approved", "rejected")

# ledger_slot value for punches that occupy the daily slot of their kind
DAY_SLOT = "day"
ADDRESS_MAX_LEN = 255


class TimeEntry(db.Model):
    """
    One accepted punch.

      punch_ts    -> UTC instant of the punch (naive, UTC by convention)
      work_date   -> calendar day of the punch in the configured timezone
      ledger_slot -> 'day' while the entry occupies its (employee, day, kind)
                     slot; NULL for IN punches re-armed outside the schedule
                     window and for rejected entries. The unique constraint
                     below serializes concurrent punches on the same slot
                     (NULLs never collide).
    """

    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    punch_kind: Mapped[str] = mapped_column(db.String(10), nullable=False)
    punch_ts: Mapped[datetime] = mapped_column(index=True, nullable=False)
    work_date: Mapped[date] = mapped_column(nullable=False)

    location_lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6, asdecimal=False), nullable=True)
    location_lng: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6, asdecimal=False), nullable=True)
    location_address: Mapped[Optional[str]] = mapped_column(db.String(ADDRESS_MAX_LEN), nullable=True)
    work_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("work_locations.id", ondelete="SET NULL"), nullable=True, index=True
    )

    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="pending")
    ledger_slot: Mapped[Optional[str]] = mapped_column(db.String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    employee = relationship("Employee", lazy="joined")
    work_location = relationship("WorkLocation")

    __table_args__ = (
        CheckConstraint(
            "punch_kind in ('IN','OUT','BREAK_IN','BREAK_OUT')", name="ck_time_entry_kind"
        ),
        CheckConstraint(
            "status in ('pending','approved','rejected')", name="ck_time_entry_status"
        ),
        UniqueConstraint(
            "employee_id", "work_date", "punch_kind", "ledger_slot",
            name="uq_time_entry_ledger_slot",
        ),
        Index("ix_time_entry_employee_day", "employee_id", "work_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "punch_kind": self.punch_kind,
            "punch_ts": self.punch_ts.isoformat(),
            "work_date": self.work_date.isoformat(),
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
            "location_address": self.location_address,
            "work_location_id": self.work_location_id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
