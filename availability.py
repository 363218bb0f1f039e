"""
Weekly availability windows and the booking checks built on them.

An employee's availability is one window per weekday.  Days that were never
set default to 09:00-17:00, available.  Shifts booked outside a window, or on
a day covered by approved time off, still get created; the checks here only
produce warnings for the scheduler.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from errors import ValidationError
from shift_rules import Shift, time_to_minutes

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
DEFAULT_START = '09:00'
DEFAULT_END = '17:00'


@dataclass
class DayAvailability:
    available: bool = True
    start_time: str = DEFAULT_START
    end_time: str = DEFAULT_END
    notes: str = ''

    @property
    def hours(self) -> float:
        if not self.available:
            return 0.0
        return (time_to_minutes(self.end_time) - time_to_minutes(self.start_time)) / 60.0

    def to_dict(self) -> Dict[str, object]:
        return {
            'available': self.available,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]], day_name: str = '') -> 'DayAvailability':
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError(f"Availability for {day_name or 'a day'} must be an object")
        day = cls(
            available=bool(data.get('available', True)),
            start_time=data.get('start_time') or DEFAULT_START,
            end_time=data.get('end_time') or DEFAULT_END,
            notes=data.get('notes') or '',
        )
        if time_to_minutes(day.start_time) >= time_to_minutes(day.end_time):
            raise ValidationError(
                f"Availability for {day_name or 'a day'} must end after it starts "
                f"({day.start_time}-{day.end_time})")
        return day


@dataclass
class WeeklyAvailability:
    days: Dict[str, DayAvailability] = field(
        default_factory=lambda: {name: DayAvailability() for name in DAYS_OF_WEEK})

    def day(self, day_of_week: str) -> DayAvailability:
        name = str(day_of_week).lower()
        if name not in DAYS_OF_WEEK:
            raise ValidationError(f"Unknown day of week {day_of_week!r}")
        return self.days.get(name) or DayAvailability()

    def can_work_on(self, day_of_week: str, start_time: str, end_time: str) -> bool:
        """True when the whole of start-end falls inside that day's window."""
        window = self.day(day_of_week)
        if not window.available:
            return False
        return (time_to_minutes(start_time) >= time_to_minutes(window.start_time)
                and time_to_minutes(end_time) <= time_to_minutes(window.end_time))

    def weekly_hours(self) -> float:
        return sum(self.day(name).hours for name in DAYS_OF_WEEK)

    def available_days(self) -> List[str]:
        return [name for name in DAYS_OF_WEEK if self.day(name).available]

    def to_dict(self) -> Dict[str, Dict[str, object]]:
        return {name: self.day(name).to_dict() for name in DAYS_OF_WEEK}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'WeeklyAvailability':
        if not isinstance(data, dict):
            raise ValidationError('Availability must be an object keyed by day of week')
        unknown = [key for key in data if str(key).lower() not in DAYS_OF_WEEK]
        if unknown:
            raise ValidationError(f"Unknown day(s) in availability: {', '.join(map(str, unknown))}")
        lowered = {str(key).lower(): value for key, value in data.items()}
        return cls(days={name: DayAvailability.from_dict(lowered.get(name), name)
                         for name in DAYS_OF_WEEK})


def day_name(day: date) -> str:
    return DAYS_OF_WEEK[day.weekday()]


def booking_warnings(shift: Shift,
                     availability: Optional[WeeklyAvailability] = None,
                     time_off: Iterable[Tuple[date, date]] = ()) -> List[str]:
    """Reasons a shift should be double-checked before the employee works it.

    ``time_off`` holds inclusive (start, end) date ranges of approved leave.
    An employee with no stored availability is treated as always available.
    """
    warnings: List[str] = []
    if availability is not None and shift.date:
        name = day_name(shift.date)
        window = availability.day(name)
        if not window.available:
            warnings.append(f"Employee {shift.employee_id} is not available on {name.title()}s")
        elif not availability.can_work_on(name, shift.start_time, shift.end_time):
            warnings.append(
                f"Shift {shift.start_time}-{shift.end_time} falls outside employee "
                f"{shift.employee_id}'s {name.title()} availability "
                f"({window.start_time}-{window.end_time})")
    for start, end in time_off:
        if shift.date and start <= shift.date <= end:
            warnings.append(
                f"Employee {shift.employee_id} has approved time off from {start} to {end}")
            break
    if warnings:
        logger.warning(f"Shift {shift.id} booking warnings: {'; '.join(warnings)}")
    return warnings
