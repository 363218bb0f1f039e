"""
Shift duration, overtime and overlap rules.

Times of day are ``HH:MM`` strings on a 24 hour clock.  A shift starts and
ends on the same calendar date; overnight shifts are not supported, so an
end time before the start time is rejected rather than rolled over to the
next day.

Overtime is judged per shift: anything past ``OVERTIME_THRESHOLD_HOURS`` in a
single shift.  Two shorter shifts on the same day never produce overtime on
their own; ``daily_hours_alerts`` reports those days separately so a
scheduler can still see them.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from errors import FormatError, InvalidStateError, SchedulingError, ValidationError

logger = logging.getLogger(__name__)

OVERTIME_THRESHOLD_HOURS = 8.0

SCHEDULED = 'scheduled'
IN_PROGRESS = 'in-progress'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
SHIFT_STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED)

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})$')


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes since midnight."""
    if not isinstance(value, str):
        raise FormatError(f"Time must be an 'HH:MM' string, got {value!r}")
    match = _TIME_RE.match(value.strip())
    if not match:
        raise FormatError(f"Invalid time {value!r}, expected 'HH:MM'")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise FormatError(f"Time {value!r} is out of range")
    return hours * 60 + minutes


def parse_date(value: Union[str, date, None], field_name: str = 'date') -> Optional[date]:
    """Parse an ISO ``YYYY-MM-DD`` string; dates and None pass through."""
    if value is None or isinstance(value, date):
        if isinstance(value, datetime):
            return value.date()
        return value
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise FormatError(f"Invalid {field_name} {value!r}, expected 'YYYY-MM-DD'")


@dataclass
class Shift:
    """A block of work time for one employee on one date.

    ``employee_name`` is optional and is never filled in here; callers
    that need it resolve it from the roster.
    """
    id: Optional[int]
    employee_id: Optional[int]
    date: Optional[date]
    start_time: Optional[str]
    end_time: Optional[str]
    hourly_rate: float = 0.0
    status: str = SCHEDULED
    employee_name: Optional[str] = None
    actual_start_time: Optional[str] = None
    actual_end_time: Optional[str] = None
    role: str = ''
    notes: str = ''
    updated_at: Optional[datetime] = None

    def is_valid(self) -> bool:
        return bool(self.employee_id is not None and self.date
                    and self.start_time and self.end_time)

    def validate(self) -> None:
        """Raise ValidationError (or FormatError) if the shift is unusable."""
        missing = [name for name in ('employee_id', 'date', 'start_time', 'end_time')
                   if getattr(self, name) in (None, '')]
        if self.hourly_rate is None:
            missing.append('hourly_rate')
        if missing:
            raise ValidationError(f"Shift {self.id} is missing {', '.join(missing)}",
                                  record_id=self.id)
        if self.status not in SHIFT_STATUSES:
            raise ValidationError(f"Shift {self.id} has unknown status {self.status!r}",
                                  record_id=self.id)
        if self.hourly_rate < 0:
            raise ValidationError(f"Shift {self.id} has a negative hourly rate",
                                  record_id=self.id)
        if time_to_minutes(self.start_time) >= time_to_minutes(self.end_time):
            raise ValidationError(
                f"Shift {self.id} must end after it starts ({self.start_time}-{self.end_time})",
                record_id=self.id)
        if self.actual_start_time and self.actual_end_time:
            if time_to_minutes(self.actual_end_time) < time_to_minutes(self.actual_start_time):
                raise ValidationError(
                    f"Shift {self.id} actual times end before they start "
                    f"({self.actual_start_time}-{self.actual_end_time})",
                    record_id=self.id)

    def effective_times(self) -> Tuple[Optional[str], Optional[str]]:
        """Actual times when both were recorded, otherwise the scheduled ones."""
        if self.actual_start_time and self.actual_end_time:
            return self.actual_start_time, self.actual_end_time
        return self.start_time, self.end_time

    # Status transitions
    def start(self, now: Optional[datetime] = None) -> None:
        if self.status != SCHEDULED:
            raise InvalidStateError(
                f"Shift {self.id} must be scheduled to start (status is {self.status})",
                record_id=self.id)
        now = now or datetime.now()
        self.actual_start_time = now.strftime('%H:%M')
        self.status = IN_PROGRESS
        self.updated_at = now

    def end(self, now: Optional[datetime] = None) -> None:
        if self.status != IN_PROGRESS:
            raise InvalidStateError(
                f"Shift {self.id} must be in progress to end (status is {self.status})",
                record_id=self.id)
        now = now or datetime.now()
        end_time = now.strftime('%H:%M')
        if self.date and now.date() > self.date:
            raise ValidationError(
                f"Shift {self.id} on {self.date} cannot be ended on {now.date()}; "
                f"overnight shifts are not supported",
                record_id=self.id)
        if self.actual_start_time and time_to_minutes(end_time) < time_to_minutes(self.actual_start_time):
            raise ValidationError(
                f"Shift {self.id} cannot end at {end_time} before it started at "
                f"{self.actual_start_time}",
                record_id=self.id)
        self.actual_end_time = end_time
        self.status = COMPLETED
        self.updated_at = now

    def cancel(self, now: Optional[datetime] = None) -> None:
        self.status = CANCELLED
        self.updated_at = now or datetime.now()

    def record_attendance(self, actual_start_time: str, actual_end_time: str,
                          now: Optional[datetime] = None) -> None:
        """Enter worked hours from a timesheet and complete the shift."""
        if self.status not in (SCHEDULED, IN_PROGRESS):
            raise InvalidStateError(
                f"Cannot record attendance for shift {self.id} (status is {self.status})",
                record_id=self.id)
        if time_to_minutes(actual_end_time) < time_to_minutes(actual_start_time):
            raise ValidationError(
                f"Shift {self.id} attendance ends before it starts "
                f"({actual_start_time}-{actual_end_time})",
                record_id=self.id)
        self.actual_start_time = actual_start_time
        self.actual_end_time = actual_end_time
        self.status = COMPLETED
        self.updated_at = now or datetime.now()

    def to_dict(self) -> Dict[str, object]:
        return {
            'id': self.id,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'date': self.date.isoformat() if self.date else None,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'actual_start_time': self.actual_start_time,
            'actual_end_time': self.actual_end_time,
            'hourly_rate': self.hourly_rate,
            'status': self.status,
            'role': self.role,
            'notes': self.notes,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'Shift':
        rate = data.get('hourly_rate', 0.0)
        try:
            rate = float(rate) if rate is not None else None
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid hourly_rate {rate!r}", record_id=data.get('id'))
        return cls(
            id=data.get('id'),
            employee_id=data.get('employee_id'),
            employee_name=data.get('employee_name'),
            date=parse_date(data.get('date')),
            start_time=data.get('start_time'),
            end_time=data.get('end_time'),
            actual_start_time=data.get('actual_start_time'),
            actual_end_time=data.get('actual_end_time'),
            hourly_rate=rate,
            status=data.get('status') or SCHEDULED,
            role=data.get('role') or '',
            notes=data.get('notes') or '',
        )


def compute_duration(shift: Shift) -> float:
    """Hours worked (or scheduled) for a shift.

    Recorded actual times take precedence over the schedule when both are
    present.  Errors name the offending shift.
    """
    start, end = shift.effective_times()
    if not start or not end:
        raise ValidationError(f"Shift {shift.id} has no start/end time", record_id=shift.id)
    try:
        minutes = time_to_minutes(end) - time_to_minutes(start)
    except FormatError as exc:
        raise FormatError(f"Shift {shift.id}: {exc}", record_id=shift.id) from exc
    if minutes < 0:
        raise ValidationError(
            f"Shift {shift.id} ends before it starts ({start}-{end}); "
            "overnight shifts are not supported",
            record_id=shift.id)
    return minutes / 60


def has_overtime(shift: Shift) -> bool:
    return compute_duration(shift) > OVERTIME_THRESHOLD_HOURS


def get_overtime_hours(shift: Shift) -> float:
    return max(0.0, compute_duration(shift) - OVERTIME_THRESHOLD_HOURS)


def overlaps_with(shift: Shift, other: Shift) -> bool:
    """True if both shifts belong to one employee on one date and their
    scheduled ``[start, end)`` ranges intersect.

    Back-to-back shifts (one ends when the other starts) do not overlap.
    """
    if shift.date != other.date:
        return False
    if shift.employee_id != other.employee_id:
        return False
    this_start = time_to_minutes(shift.start_time)
    this_end = time_to_minutes(shift.end_time)
    other_start = time_to_minutes(other.start_time)
    other_end = time_to_minutes(other.end_time)
    return this_start < other_end and this_end > other_start


@dataclass(frozen=True)
class Conflict:
    shift_id_a: Optional[int]
    shift_id_b: Optional[int]
    reason: str
    employee_id: Optional[int] = None
    date: Optional[date] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            'shift_id_a': self.shift_id_a,
            'shift_id_b': self.shift_id_b,
            'reason': self.reason,
            'employee_id': self.employee_id,
            'date': self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class DailyHoursAlert:
    employee_id: Optional[int]
    date: Optional[date]
    total_hours: float
    shift_ids: Tuple[Optional[int], ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, object]:
        return {
            'employee_id': self.employee_id,
            'date': self.date.isoformat() if self.date else None,
            'total_hours': round(self.total_hours, 2),
            'shift_ids': list(self.shift_ids),
        }


def _group_active_shifts(shifts: Iterable[Shift]) -> Dict[tuple, List[Shift]]:
    groups: Dict[tuple, List[Shift]] = defaultdict(list)
    for shift in shifts:
        if shift.status == CANCELLED:
            continue
        groups[(shift.date, shift.employee_id)].append(shift)
    return groups


def _group_sort_key(key: tuple) -> tuple:
    shift_date, employee_id = key
    return (shift_date or date.min, str(employee_id))


def find_conflicts(shifts: Iterable[Shift]) -> List[Conflict]:
    """Return one Conflict per pair of overlapping shifts.

    Cancelled shifts no longer occupy time and are ignored.  Only shifts
    for the same employee and date are compared, ordered by start time.
    """
    conflicts: List[Conflict] = []
    groups = _group_active_shifts(shifts)
    for key in sorted(groups, key=_group_sort_key):
        day_shifts = sorted(groups[key], key=lambda s: time_to_minutes(s.start_time))
        for i, first in enumerate(day_shifts):
            for second in day_shifts[i + 1:]:
                if first.id is not None and first.id == second.id:
                    continue
                if overlaps_with(first, second):
                    conflicts.append(Conflict(
                        shift_id_a=first.id,
                        shift_id_b=second.id,
                        reason='overlap',
                        employee_id=first.employee_id,
                        date=first.date,
                    ))
    if conflicts:
        logger.info(f"Detected {len(conflicts)} overlapping shift pair(s)")
    return conflicts


def daily_hours_alerts(shifts: Iterable[Shift],
                       threshold: float = OVERTIME_THRESHOLD_HOURS) -> List[DailyHoursAlert]:
    """Flag employees booked for more than ``threshold`` hours on one date.

    This is a scheduling warning only; payroll still applies overtime per
    shift.
    """
    alerts: List[DailyHoursAlert] = []
    groups = _group_active_shifts(shifts)
    for key in sorted(groups, key=_group_sort_key):
        day_shifts = groups[key]
        try:
            total = sum(compute_duration(s) for s in day_shifts)
        except SchedulingError:
            logger.error(f"Cannot total hours for employee {key[1]} on {key[0]}")
            raise
        if total > threshold:
            alerts.append(DailyHoursAlert(
                employee_id=key[1],
                date=key[0],
                total_hours=total,
                shift_ids=tuple(s.id for s in day_shifts),
            ))
    return alerts
