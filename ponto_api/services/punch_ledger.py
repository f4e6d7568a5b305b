# ponto_api/services/punch_ledger.py
from __future__ import annotations

from datetime import datetime, date, timedelta, timezone
from typing import List, Optional, Set, Union
from zoneinfo import ZoneInfo
import logging

from ponto_api.models.time_entry import TimeEntry, PunchKind, DAY_SLOT
from ponto_api.models.work_schedule import WorkSchedule

log = logging.getLogger(__name__)

"""
Daily punch ledger.

A kind is "used" for a calendar day once a non-rejected entry of that kind
exists on that day. IN is the exception for employees with a schedule:
only INs inside [clock_in - tolerance, clock_in + tolerance] occupy the
slot, so a start outside that window (an irregular second shift) is
always re-armed.

All timestamps entering the ledger are normalized to naive UTC; the
calendar day is taken in the ledger's timezone.
"""


def to_utc_naive(ts: datetime) -> datetime:
    """Aware -> UTC naive; naive is assumed to already be UTC."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


class PunchLedger:
    def __init__(self, tz: Union[str, ZoneInfo] = "UTC", identity=None):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self.identity = identity

    # ---- time helpers ----
    def local_time(self, ts: datetime) -> datetime:
        return to_utc_naive(ts).replace(tzinfo=timezone.utc).astimezone(self.tz)

    def work_date(self, ts: datetime) -> date:
        return self.local_time(ts).date()

    def _schedule(self, employee_id: int) -> Optional[WorkSchedule]:
        if self.identity is None:
            return None
        return self.identity.work_schedule(employee_id)

    def in_clock_in_window(self, schedule: WorkSchedule, ts: datetime) -> bool:
        local = self.local_time(ts).replace(tzinfo=None)
        anchor = datetime.combine(local.date(), schedule.clock_in_time)
        tol = timedelta(minutes=schedule.tolerance_minutes or 0)
        return anchor - tol <= local <= anchor + tol

    # ---- reads ----
    def entries_for_day(self, employee_id: int, day: date, kind: Optional[PunchKind] = None) -> List[TimeEntry]:
        q = TimeEntry.query.filter(
            TimeEntry.employee_id == employee_id,
            TimeEntry.work_date == day,
            TimeEntry.status != "rejected",
        )
        if kind is not None:
            q = q.filter(TimeEntry.punch_kind == kind.value)
        return q.order_by(TimeEntry.punch_ts.asc()).all()

    def _in_counts(self, entry: TimeEntry, schedule: Optional[WorkSchedule]) -> bool:
        if schedule is None:
            return True
        return self.in_clock_in_window(schedule, entry.punch_ts)

    def recorded_kinds_today(self, employee_id: int, as_of: datetime) -> Set[PunchKind]:
        day = self.work_date(as_of)
        schedule = self._schedule(employee_id)
        kinds: Set[PunchKind] = set()
        for e in self.entries_for_day(employee_id, day):
            kind = PunchKind(e.punch_kind)
            if kind is PunchKind.IN and not self._in_counts(e, schedule):
                continue
            kinds.add(kind)
        return kinds

    def slot_for(self, employee_id: int, kind: PunchKind, at: datetime) -> Optional[str]:
        """
        Ledger slot a new punch would occupy. None means the punch is not
        subject to daily uniqueness (IN outside the schedule window).
        """
        if kind is PunchKind.IN:
            schedule = self._schedule(employee_id)
            if schedule is not None and not self.in_clock_in_window(schedule, at):
                return None
        return DAY_SLOT

    def can_punch(self, employee_id: int, kind: PunchKind, at: datetime) -> bool:
        if self.slot_for(employee_id, kind, at) is None:
            return True
        return kind not in self.recorded_kinds_today(employee_id, at)
