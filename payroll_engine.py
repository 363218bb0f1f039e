"""
Payroll aggregation for one employee over one pay period.

A PayrollRecord is always rebuilt from the shift list; it is never updated
incrementally.  Each shift's hours are split into a regular part (up to
8h) and an overtime part (the rest), per shift rather than per day.
Overtime is paid at 1.5x the hourly rate and a flat 15% tax estimate is
withheld.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from errors import InvalidStateError, SchedulingError, ValidationError
from shift_rules import COMPLETED, OVERTIME_THRESHOLD_HOURS, Shift, compute_duration, parse_date

logger = logging.getLogger(__name__)

OVERTIME_MULTIPLIER = 1.5
TAX_RATE = 0.15

PENDING = 'pending'
PROCESSED = 'processed'
PAID = 'paid'
CANCELLED = 'cancelled'
PAYROLL_STATUSES = (PENDING, PROCESSED, PAID, CANCELLED)

PAYMENT_METHODS = ('direct_deposit', 'check', 'cash')
PAY_PERIODS = ('week', 'biweekly', 'month', 'custom')


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class PayrollRecord:
    """Pay summary for one employee and one inclusive pay period.

    Attributes
    ----------
    hourly_rate : float
        The employee's current rate, applied to the whole period.
    regular_hours, overtime_hours : float
        Sums of the per-shift split at 8 hours.
    deductions : float
        Set by the caller while the record is pending; subtracted from
        the gross pay together with ``taxes``.
    shift_ids : list
        Ids of the shifts the totals were computed from.
    """
    employee_id: int
    hourly_rate: float
    pay_period_start: Optional[date] = None
    pay_period_end: Optional[date] = None
    employee_name: Optional[str] = None
    id: Optional[int] = None
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    overtime_rate: float = 0.0
    regular_pay: float = 0.0
    overtime_pay: float = 0.0
    total_pay: float = 0.0
    taxes: float = 0.0
    deductions: float = 0.0
    net_pay: float = 0.0
    status: str = PENDING
    payment_method: str = 'direct_deposit'
    payment_date: Optional[date] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    notes: str = ''
    shift_ids: List[Optional[int]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def calculate_pay(self) -> None:
        self.regular_pay = self.regular_hours * self.hourly_rate
        self.overtime_rate = self.hourly_rate * OVERTIME_MULTIPLIER
        self.overtime_pay = self.overtime_hours * self.overtime_rate
        self.total_pay = self.regular_pay + self.overtime_pay
        self.taxes = self.total_pay * TAX_RATE
        self.net_pay = self.total_pay - self.taxes - self.deductions

    def apply_deductions(self, amount: float) -> None:
        if self.status != PENDING:
            raise InvalidStateError(
                f"Deductions can only change while payroll {self.id} is pending "
                f"(status is {self.status})",
                record_id=self.id)
        if amount is None or amount < 0:
            raise ValidationError(f"Deductions must be a non-negative amount, got {amount!r}",
                                  record_id=self.id)
        self.deductions = float(amount)
        self.net_pay = self.total_pay - self.taxes - self.deductions
        self.updated_at = datetime.now()

    def _require_status(self, allowed: Tuple[str, ...], action: str) -> None:
        if self.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} payroll {self.id}: status is {self.status}",
                record_id=self.id)

    def process(self, processed_by: Optional[str], notes: str = '',
                now: Optional[datetime] = None) -> None:
        self._require_status((PENDING,), 'process')
        now = now or datetime.now()
        self.status = PROCESSED
        self.processed_by = processed_by
        self.processed_at = now
        self.notes = notes or ''
        self.updated_at = now

    def mark_as_paid(self, payment_date: Optional[date] = None,
                     payment_method: Optional[str] = None,
                     now: Optional[datetime] = None) -> None:
        self._require_status((PENDING, PROCESSED), 'pay')
        if payment_method is not None:
            if payment_method not in PAYMENT_METHODS:
                raise ValidationError(f"Unknown payment method {payment_method!r}",
                                      record_id=self.id)
            self.payment_method = payment_method
        now = now or datetime.now()
        self.status = PAID
        self.payment_date = payment_date or now.date()
        self.updated_at = now

    def cancel(self, now: Optional[datetime] = None) -> None:
        self._require_status((PENDING, PROCESSED), 'cancel')
        self.status = CANCELLED
        self.updated_at = now or datetime.now()

    # Derived figures
    @property
    def has_overtime(self) -> bool:
        return self.overtime_hours > 0

    @property
    def pay_period_days(self) -> int:
        if not self.pay_period_start or not self.pay_period_end:
            return 0
        return abs((self.pay_period_end - self.pay_period_start).days) + 1

    @property
    def average_daily_hours(self) -> float:
        days = self.pay_period_days
        return self.total_hours / days if days > 0 else 0.0

    @property
    def average_hourly_rate(self) -> float:
        return self.total_pay / self.total_hours if self.total_hours > 0 else 0.0

    @property
    def overtime_percentage(self) -> float:
        return self.overtime_hours / self.total_hours * 100 if self.total_hours > 0 else 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            'id': self.id,
            'employee_id': self.employee_id,
            'employee_name': self.employee_name,
            'pay_period_start': _iso(self.pay_period_start),
            'pay_period_end': _iso(self.pay_period_end),
            'hourly_rate': self.hourly_rate,
            'overtime_rate': self.overtime_rate,
            'total_hours': round(self.total_hours, 2),
            'regular_hours': round(self.regular_hours, 2),
            'overtime_hours': round(self.overtime_hours, 2),
            'regular_pay': round(self.regular_pay, 2),
            'overtime_pay': round(self.overtime_pay, 2),
            'total_pay': round(self.total_pay, 2),
            'taxes': round(self.taxes, 2),
            'deductions': round(self.deductions, 2),
            'net_pay': round(self.net_pay, 2),
            'status': self.status,
            'payment_method': self.payment_method,
            'payment_date': _iso(self.payment_date),
            'processed_by': self.processed_by,
            'processed_at': _iso(self.processed_at),
            'notes': self.notes,
            'shift_ids': list(self.shift_ids),
            'has_overtime': self.has_overtime,
            'pay_period_days': self.pay_period_days,
            'average_daily_hours': round(self.average_daily_hours, 2),
            'average_hourly_rate': round(self.average_hourly_rate, 2),
            'overtime_percentage': round(self.overtime_percentage, 2),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


def calculate_from_shifts(employee_id: int, hourly_rate: float, shifts: Iterable[Shift], *,
                          pay_period_start: Optional[date] = None,
                          pay_period_end: Optional[date] = None,
                          employee_name: Optional[str] = None,
                          deductions: float = 0.0) -> PayrollRecord:
    """Aggregate hours and pay for ``shifts`` into a new PayrollRecord.

    The shifts are used as given: selecting the employee, the pay period
    and completed shifts is the caller's job (see ``select_payable_shifts``).
    If any shift's duration cannot be computed the whole batch fails with
    that shift's error; no partial totals are returned.
    """
    if employee_id is None:
        raise ValidationError("employee_id is required")
    if shifts is None:
        raise ValidationError("A list of shifts is required (it may be empty)")
    if hourly_rate is None or hourly_rate < 0:
        raise ValidationError(f"hourly_rate must be a non-negative amount, got {hourly_rate!r}")
    if deductions is None or deductions < 0:
        raise ValidationError(f"deductions must be a non-negative amount, got {deductions!r}")
    if pay_period_start and pay_period_end and pay_period_start > pay_period_end:
        raise ValidationError(
            f"Pay period start {pay_period_start} is after its end {pay_period_end}")

    batch = tuple(shifts)
    total_hours = regular_hours = overtime_hours = 0.0
    for shift in batch:
        try:
            duration = compute_duration(shift)
        except SchedulingError as exc:
            logger.error(f"Payroll for employee {employee_id} aborted at shift {shift.id}: {exc}")
            raise
        total_hours += duration
        if duration <= OVERTIME_THRESHOLD_HOURS:
            regular_hours += duration
        else:
            regular_hours += OVERTIME_THRESHOLD_HOURS
            overtime_hours += duration - OVERTIME_THRESHOLD_HOURS

    record = PayrollRecord(
        employee_id=employee_id,
        employee_name=employee_name,
        hourly_rate=float(hourly_rate),
        pay_period_start=pay_period_start,
        pay_period_end=pay_period_end,
        total_hours=total_hours,
        regular_hours=regular_hours,
        overtime_hours=overtime_hours,
        deductions=float(deductions),
        shift_ids=[s.id for s in batch],
    )
    record.calculate_pay()
    logger.debug(f"Payroll for employee {employee_id}: {len(batch)} shifts, "
                 f"{total_hours:.2f}h, gross {record.total_pay:.2f}")
    return record


def select_payable_shifts(shifts: Iterable[Shift], employee_id: int,
                          start: date, end: date) -> List[Shift]:
    """Completed shifts of ``employee_id`` dated within ``[start, end]``."""
    return [
        s for s in shifts
        if s.employee_id == employee_id
        and s.date is not None and start <= s.date <= end
        and s.status == COMPLETED
    ]


def generate_payroll(employee_id: int, hourly_rate: float, shifts: Sequence[Shift],
                     start: date, end: date,
                     employee_name: Optional[str] = None) -> PayrollRecord:
    if start is None or end is None:
        raise ValidationError("Pay period start and end dates are required")
    payable = select_payable_shifts(shifts, employee_id, start, end)
    logger.info(f"Generating payroll for employee {employee_id} "
                f"({start} to {end}): {len(payable)} completed shifts")
    return calculate_from_shifts(
        employee_id, hourly_rate, payable,
        pay_period_start=start,
        pay_period_end=end,
        employee_name=employee_name,
    )


def pay_period_range(period: str, today: Optional[date] = None,
                     start=None, end=None) -> Tuple[date, date]:
    """Resolve a named pay period to inclusive ``(start, end)`` dates.

    Weeks run Monday to Sunday.  ``biweekly`` covers the previous week
    and the current one; ``custom`` takes explicit ISO dates.
    """
    today = today or date.today()
    if period == 'week':
        monday = today - timedelta(days=today.weekday())
        return monday, monday + timedelta(days=6)
    if period == 'biweekly':
        monday = today - timedelta(days=today.weekday())
        return monday - timedelta(days=7), monday + timedelta(days=6)
    if period == 'month':
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    if period == 'custom':
        start = parse_date(start, 'start_date')
        end = parse_date(end, 'end_date')
        if start is None or end is None:
            raise ValidationError("A custom pay period needs start_date and end_date")
        if start > end:
            raise ValidationError(f"Pay period start {start} is after its end {end}")
        return start, end
    raise ValidationError(f"Unknown pay period {period!r}; expected one of {', '.join(PAY_PERIODS)}")
