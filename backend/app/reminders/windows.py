"""
Eligibility windows for the two reminder kinds.

Windows are expressed in naive civil time of the configured timezone, the same
representation used for Appointment.scheduled_at, so the store compares like
with like and never has to reason about UTC offsets.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from app.utils.timezone import to_local_naive


class ReminderKind(str, Enum):
    H24 = "24h"
    H2 = "2h"

    @property
    def lead_hours(self) -> int:
        return 24 if self is ReminderKind.H24 else 2

    @property
    def flag_column(self) -> str:
        return "reminder_24h_sent" if self is ReminderKind.H24 else "reminder_2h_sent"


@dataclass(frozen=True)
class ReminderWindow:
    start: datetime
    end: datetime
    end_inclusive: bool = True

    def contains(self, moment: datetime) -> bool:
        if moment < self.start:
            return False
        return moment <= self.end if self.end_inclusive else moment < self.end

    def __str__(self) -> str:
        closing = "]" if self.end_inclusive else ")"
        return f"[{self.start.isoformat(sep=' ')}, {self.end.isoformat(sep=' ')}{closing}"


def civil(now: datetime, tz_name: Optional[str] = None) -> datetime:
    return to_local_naive(now, tz_name).replace(microsecond=0)


def window(now: datetime, lead_hours: int, tolerance_minutes: Optional[int] = None,
           tz_name: Optional[str] = None) -> ReminderWindow:
    """
    Without a tolerance the window looks forward: [now, now + lead).
    With one it is centred on the lead mark: [now + lead - tol, now + lead + tol].
    """
    local_now = civil(now, tz_name)
    target = local_now + timedelta(hours=lead_hours)
    if tolerance_minutes is None:
        return ReminderWindow(start=local_now, end=target, end_inclusive=False)
    tolerance = timedelta(minutes=tolerance_minutes)
    return ReminderWindow(start=target - tolerance, end=target + tolerance, end_inclusive=True)


def compute_window(kind: ReminderKind, now: datetime, tolerance_minutes: int = 15,
                   tz_name: Optional[str] = None) -> ReminderWindow:
    if kind is ReminderKind.H24:
        # First reminder: anything in the coming day that has not been told yet
        return window(now, kind.lead_hours, None, tz_name)
    return window(now, kind.lead_hours, tolerance_minutes, tz_name)
