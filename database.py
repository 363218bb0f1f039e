"""SQLAlchemy models and database setup for the staff scheduler."""

import json
import logging
from datetime import datetime, time

from flask_sqlalchemy import SQLAlchemy

from availability import WeeklyAvailability
from errors import SchedulingError
from payroll_engine import PayrollRecord
from shift_rules import SCHEDULED, Shift, compute_duration, time_to_minutes

logger = logging.getLogger(__name__)

db = SQLAlchemy()


def to_time(value):
    """Convert an 'HH:MM' string to a ``datetime.time`` (None passes through)."""
    if value in (None, ''):
        return None
    minutes = time_to_minutes(value)
    return time(minutes // 60, minutes % 60)


def from_time(value):
    return value.strftime('%H:%M') if value else None


class Employee(db.Model):
    __tablename__ = 'employees'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(32), default='')
    role = db.Column(db.String(32), default='cashier')
    hourly_rate = db.Column(db.Float, nullable=False, default=0.0)
    active = db.Column(db.Boolean, default=True)
    availability = db.Column(db.Text, nullable=True)  # JSON, see availability.WeeklyAvailability
    created_at = db.Column(db.DateTime, default=datetime.now)

    def weekly_availability(self):
        """Stored availability, or None when the employee never set any."""
        if not self.availability:
            return None
        return WeeklyAvailability.from_dict(json.loads(self.availability))

    def set_availability(self, data):
        if data is None:
            self.availability = None
            return
        self.availability = json.dumps(WeeklyAvailability.from_dict(data).to_dict())

    def to_dict(self):
        weekly = self.weekly_availability()
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'hourly_rate': self.hourly_rate,
            'active': self.active,
            'availability': weekly.to_dict() if weekly else None,
            'weekly_available_hours': weekly.weekly_hours() if weekly else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Schedule(db.Model):
    """One scheduled shift.

    Rows are converted to ``shift_rules.Shift`` for every calculation and
    written back with ``apply_shift`` after a status change.  ``hourly_rate``
    is copied from the employee when the shift is created.
    """
    __tablename__ = 'schedules'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    schedule_date = db.Column(db.Date, nullable=False)
    shift_start = db.Column(db.Time, nullable=False)
    shift_end = db.Column(db.Time, nullable=False)
    actual_start = db.Column(db.Time, nullable=True)
    actual_end = db.Column(db.Time, nullable=True)
    hourly_rate = db.Column(db.Float, nullable=False, default=0.0)
    role = db.Column(db.String(32), default='')
    status = db.Column(db.String(16), nullable=False, default=SCHEDULED)
    notes = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now)

    employee = db.relationship('Employee', backref=db.backref('schedules', lazy=True))

    def to_shift(self):
        return Shift(
            id=self.id,
            employee_id=self.employee_id,
            employee_name=self.employee.name if self.employee else None,
            date=self.schedule_date,
            start_time=from_time(self.shift_start),
            end_time=from_time(self.shift_end),
            actual_start_time=from_time(self.actual_start),
            actual_end_time=from_time(self.actual_end),
            hourly_rate=self.hourly_rate,
            status=self.status,
            role=self.role or '',
            notes=self.notes or '',
            updated_at=self.updated_at,
        )

    def apply_shift(self, shift):
        self.employee_id = shift.employee_id
        self.schedule_date = shift.date
        self.shift_start = to_time(shift.start_time)
        self.shift_end = to_time(shift.end_time)
        self.actual_start = to_time(shift.actual_start_time)
        self.actual_end = to_time(shift.actual_end_time)
        self.hourly_rate = shift.hourly_rate
        self.status = shift.status
        self.role = shift.role
        self.notes = shift.notes
        self.updated_at = shift.updated_at or datetime.now()

    def to_dict(self):
        shift = self.to_shift()
        data = shift.to_dict()
        try:
            data['hours'] = round(compute_duration(shift), 2)
        except SchedulingError as e:
            logger.warning(f"Cannot compute hours for shift {self.id}: {e}")
            data['hours'] = None
        return data


class PayrollEntry(db.Model):
    __tablename__ = 'payroll_records'

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    employee_name = db.Column(db.String(100), nullable=True)
    pay_period_start = db.Column(db.Date, nullable=False)
    pay_period_end = db.Column(db.Date, nullable=False)
    hourly_rate = db.Column(db.Float, nullable=False)
    total_hours = db.Column(db.Float, default=0.0)
    regular_hours = db.Column(db.Float, default=0.0)
    overtime_hours = db.Column(db.Float, default=0.0)
    deductions = db.Column(db.Float, default=0.0)
    status = db.Column(db.String(16), nullable=False, default='pending')
    payment_method = db.Column(db.String(32), default='direct_deposit')
    payment_date = db.Column(db.Date, nullable=True)
    processed_by = db.Column(db.String(100), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, default='')
    shift_ids = db.Column(db.Text, default='[]')  # JSON list of schedule ids
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now)

    employee = db.relationship('Employee', backref=db.backref('payroll_records', lazy=True))

    @classmethod
    def covering(cls, employee_id, start_date, end_date):
        """Live (not cancelled) records for the employee whose period overlaps the range."""
        return cls.query.filter(
            cls.employee_id == employee_id,
            cls.status != 'cancelled',
            cls.pay_period_start <= end_date,
            cls.pay_period_end >= start_date,
        ).order_by(cls.pay_period_start).all()

    def to_record(self):
        # Pay figures are derived, so only hours and deductions are stored.
        record = PayrollRecord(
            id=self.id,
            employee_id=self.employee_id,
            employee_name=self.employee_name,
            hourly_rate=self.hourly_rate,
            pay_period_start=self.pay_period_start,
            pay_period_end=self.pay_period_end,
            total_hours=self.total_hours,
            regular_hours=self.regular_hours,
            overtime_hours=self.overtime_hours,
            deductions=self.deductions,
            status=self.status,
            payment_method=self.payment_method,
            payment_date=self.payment_date,
            processed_by=self.processed_by,
            processed_at=self.processed_at,
            notes=self.notes or '',
            shift_ids=json.loads(self.shift_ids or '[]'),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
        record.calculate_pay()
        return record

    def apply_record(self, record):
        self.employee_id = record.employee_id
        self.employee_name = record.employee_name
        self.hourly_rate = record.hourly_rate
        self.pay_period_start = record.pay_period_start
        self.pay_period_end = record.pay_period_end
        self.total_hours = record.total_hours
        self.regular_hours = record.regular_hours
        self.overtime_hours = record.overtime_hours
        self.deductions = record.deductions
        self.status = record.status
        self.payment_method = record.payment_method
        self.payment_date = record.payment_date
        self.processed_by = record.processed_by
        self.processed_at = record.processed_at
        self.notes = record.notes
        self.shift_ids = json.dumps(record.shift_ids)
        self.created_at = record.created_at
        self.updated_at = record.updated_at

    def to_dict(self):
        return self.to_record().to_dict()


class TimeOffRequest(db.Model):
    __tablename__ = 'time_off_requests'

    # Requests in these states still hold the dates.
    OPEN_STATUSES = ('pending', 'approved')

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(16), default='vacation')  # vacation, sick, personal, bereavement, other
    status = db.Column(db.String(16), default='pending')  # pending, approved, rejected, cancelled
    reason = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(100), nullable=True)
    review_notes = db.Column(db.Text, default='')
    reviewed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    employee = db.relationship('Employee', backref=db.backref('time_off_requests', lazy=True))

    @classmethod
    def overlapping(cls, employee_id, start_date, end_date, statuses=OPEN_STATUSES):
        return cls.query.filter(
            cls.employee_id == employee_id,
            cls.status.in_(statuses),
            cls.start_date <= end_date,
            cls.end_date >= start_date,
        ).order_by(cls.start_date).all()

    def to_dict(self):
        return {
            'id': self.id,
            'employee_id': self.employee_id,
            'employee_name': self.employee.name if self.employee else None,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'days': (self.end_date - self.start_date).days + 1,
            'type': self.type,
            'status': self.status,
            'reason': self.reason,
            'reviewed_by': self.reviewed_by,
            'review_notes': self.review_notes,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class ShiftTrade(db.Model):
    __tablename__ = 'shift_trades'

    id = db.Column(db.Integer, primary_key=True)
    requesting_employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    target_employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False)
    original_schedule_id = db.Column(db.Integer, db.ForeignKey('schedules.id'), nullable=False)
    trade_schedule_id = db.Column(db.Integer, db.ForeignKey('schedules.id'), nullable=False)
    trade_reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), default='pending')  # pending, approved, rejected, cancelled
    reviewed_by = db.Column(db.String(100), nullable=True)
    review_notes = db.Column(db.Text, default='')
    reviewed_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    requesting_employee = db.relationship('Employee', foreign_keys=[requesting_employee_id])
    target_employee = db.relationship('Employee', foreign_keys=[target_employee_id])
    original_schedule = db.relationship('Schedule', foreign_keys=[original_schedule_id])
    trade_schedule = db.relationship('Schedule', foreign_keys=[trade_schedule_id])

    def to_dict(self):
        return {
            'id': self.id,
            'requesting_employee_id': self.requesting_employee_id,
            'requesting_employee_name': self.requesting_employee.name,
            'target_employee_id': self.target_employee_id,
            'target_employee_name': self.target_employee.name,
            'original_schedule_id': self.original_schedule_id,
            'trade_schedule_id': self.trade_schedule_id,
            'trade_reason': self.trade_reason,
            'status': self.status,
            'reviewed_by': self.reviewed_by,
            'review_notes': self.review_notes,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


SAMPLE_EMPLOYEES = [
    # name, email, role, hourly rate
    ('Maria Lopez', 'maria@example.com', 'management', 24.0),
    ('Kevin Osei', 'kevin@example.com', 'barista', 16.5),
    ('Priya Nair', 'priya@example.com', 'cashier', 15.0),
    ('Tom Becker', 'tom@example.com', 'kitchen', 17.25),
    ('Ana Souza', 'ana@example.com', 'baking', 18.0),
]


def init_db():
    """Drop and recreate every table."""
    db.drop_all()
    db.create_all()
    logger.info("Database schema recreated")


def seed_sample_data():
    """Add the sample roster to an empty database."""
    if Employee.query.count() > 0:
        logger.info("Database already contains data, skipping initialization")
        return 0
    for name, email, role, rate in SAMPLE_EMPLOYEES:
        db.session.add(Employee(name=name, email=email, role=role, hourly_rate=rate))
    db.session.commit()
    logger.info(f"Database initialized with {len(SAMPLE_EMPLOYEES)} sample employees")
    return len(SAMPLE_EMPLOYEES)
