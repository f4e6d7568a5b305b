# ponto_api/services/day_summary.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, date
from typing import List, Optional

from ponto_api.models.time_entry import TimeEntry, PunchKind
from ponto_api.services.punch_ledger import PunchLedger

# IN -> BREAK_IN -> BREAK_OUT -> OUT -> IN
_NEXT_AFTER = {
    PunchKind.IN: PunchKind.BREAK_IN,
    PunchKind.BREAK_IN: PunchKind.BREAK_OUT,
    PunchKind.BREAK_OUT: PunchKind.OUT,
    PunchKind.OUT: PunchKind.IN,
}


def _minutes(a: datetime, b: datetime) -> int:
    return max(int((b - a).total_seconds() // 60), 0)


@dataclass
class DaySummary:
    day: date
    entries: List[TimeEntry] = field(default_factory=list)
    used_kinds: List[PunchKind] = field(default_factory=list)
    worked_minutes: int = 0
    break_minutes: int = 0
    next_expected: PunchKind = PunchKind.IN

    @property
    def worked_label(self) -> str:
        return f"{self.worked_minutes // 60}h {self.worked_minutes % 60}m"

    def to_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "entries": [e.to_dict() for e in self.entries],
            "used_kinds": sorted(k.value for k in self.used_kinds),
            "worked_minutes": self.worked_minutes,
            "break_minutes": self.break_minutes,
            "worked": self.worked_label,
            "next_expected": self.next_expected.value,
        }


def summarize_day(ledger: PunchLedger, employee_id: int, as_of: datetime) -> DaySummary:
    """
    Worked time is the sum of IN->OUT spans minus BREAK_IN->BREAK_OUT
    spans; unmatched opens are ignored.
    """
    day = ledger.work_date(as_of)
    entries = ledger.entries_for_day(employee_id, day)

    worked = 0
    breaks = 0
    open_in: Optional[datetime] = None
    open_break: Optional[datetime] = None
    for e in entries:
        kind = PunchKind(e.punch_kind)
        if kind is PunchKind.IN:
            open_in = e.punch_ts
        elif kind is PunchKind.OUT and open_in is not None:
            worked += _minutes(open_in, e.punch_ts)
            open_in = None
        elif kind is PunchKind.BREAK_IN:
            open_break = e.punch_ts
        elif kind is PunchKind.BREAK_OUT and open_break is not None:
            breaks += _minutes(open_break, e.punch_ts)
            open_break = None

    last = PunchKind(entries[-1].punch_kind) if entries else None
    return DaySummary(
        day=day,
        entries=entries,
        used_kinds=list(ledger.recorded_kinds_today(employee_id, as_of)),
        worked_minutes=max(worked - breaks, 0),
        break_minutes=breaks,
        next_expected=_NEXT_AFTER[last] if last else PunchKind.IN,
    )
