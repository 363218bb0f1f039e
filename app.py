#!/usr/bin/env python3
"""
Staff scheduling REST API.

Exposes the employee roster, shifts with their attendance status, shift
conflict checks, payroll runs, time off requests and shift trades as JSON
endpoints.  Every response carries a ``success`` flag; failures add an
``error`` message.

Running the app:

    $ flask --app app init-db
    $ python app.py

Configuration comes from environment variables (see the ``app.config``
block below).  The database defaults to a local SQLite file.
"""

import logging
import os
from datetime import datetime

from flask import Flask, jsonify, request

from availability import booking_warnings
from database import (
    Employee, PayrollEntry, Schedule, ShiftTrade, TimeOffRequest,
    db, init_db, seed_sample_data,
)
from errors import FormatError, InvalidStateError, SchedulingError, ValidationError
from payroll_engine import PAYROLL_STATUSES, generate_payroll, pay_period_range
from shift_rules import (
    SCHEDULED, SHIFT_STATUSES, Shift, daily_hours_alerts, find_conflicts, parse_date,
)

logging.basicConfig(
    level=os.environ.get('SCHEDULER_LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configuration
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get(
    'SCHEDULER_DATABASE_URI', 'sqlite:///staff_scheduling.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'staff-scheduler-secret-key-change-in-production')
app.config['SEED_SAMPLE_DATA'] = os.environ.get('SCHEDULER_SEED_SAMPLE_DATA', '1') not in ('0', 'false', 'no')

db.init_app(app)

TIME_OFF_TYPES = ('vacation', 'sick', 'personal', 'bereavement', 'other')


def _error(exc, status=None):
    """Map an exception to a JSON error response."""
    if status is None:
        if isinstance(exc, InvalidStateError):
            status = 409
        elif isinstance(exc, (ValidationError, FormatError)):
            status = 400
        else:
            status = 500
    return jsonify({'success': False, 'error': str(exc)}), status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _to_float(value, field_name):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")


def _to_int(value, field_name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer, got {value!r}")


def _shift_query(start_date=None, end_date=None, employee_id=None, status=None):
    query = Schedule.query
    if start_date:
        query = query.filter(Schedule.schedule_date >= parse_date(start_date, 'start_date'))
    if end_date:
        query = query.filter(Schedule.schedule_date <= parse_date(end_date, 'end_date'))
    if employee_id:
        query = query.filter(Schedule.employee_id == _to_int(employee_id, 'employee_id'))
    if status:
        if status not in SHIFT_STATUSES:
            raise ValidationError(f"Unknown shift status {status!r}")
        query = query.filter(Schedule.status == status)
    return query.order_by(Schedule.schedule_date, Schedule.shift_start)


def _conflicts_involving(*rows):
    """Overlaps between the given rows and the other shifts on their employee's day."""
    ids = {row.id for row in rows}
    conflicts = []
    for employee_id, day in sorted({(row.employee_id, row.schedule_date) for row in rows}):
        same_day = _shift_query(day, day, employee_id).all()
        conflicts.extend(c for c in find_conflicts([s.to_shift() for s in same_day])
                         if c.shift_id_a in ids or c.shift_id_b in ids)
    return conflicts


def _booking_warnings(row):
    employee = row.employee or db.session.get(Employee, row.employee_id)
    leave = TimeOffRequest.overlapping(row.employee_id, row.schedule_date, row.schedule_date,
                                       statuses=('approved',))
    return booking_warnings(
        row.to_shift(),
        employee.weekly_availability() if employee else None,
        [(req.start_date, req.end_date) for req in leave],
    )


# Employees
@app.route('/api/employees', methods=['GET', 'POST'])
def api_employees():
    if request.method == 'GET':
        include_inactive = request.args.get('include_inactive') == 'true'
        query = Employee.query if include_inactive else Employee.query.filter_by(active=True)
        employees = query.order_by(Employee.name).all()
        return jsonify({
            'success': True,
            'employees': [emp.to_dict() for emp in employees],
            'count': len(employees)
        })

    try:
        data = _json_body()
        _require(data, 'name', 'email')
        rate = _to_float(data.get('hourly_rate', 0), 'hourly_rate')
        if rate < 0:
            raise ValidationError('hourly_rate must not be negative')
        employee = Employee(
            name=data['name'],
            email=data['email'],
            phone=data.get('phone', ''),
            role=data.get('role', 'cashier'),
            hourly_rate=rate,
        )
        if data.get('availability') is not None:
            employee.set_availability(data['availability'])
        db.session.add(employee)
        db.session.commit()
        logger.info(f"Created employee {employee.id}: {employee.name}")
        return jsonify({'success': True, 'employee': employee.to_dict()}), 201
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating employee: {str(e)}")
        return _error(e, 400)


@app.route('/api/employees/<int:employee_id>', methods=['PUT', 'DELETE'])
def update_employee(employee_id):
    employee = db.get_or_404(Employee, employee_id)

    if request.method == 'DELETE':
        employee.active = False
        db.session.commit()
        logger.info(f"Deactivated employee {employee.id}: {employee.name}")
        return jsonify({'success': True, 'message': 'Employee deactivated successfully'})

    try:
        data = _json_body()
        for key in ('name', 'email', 'phone', 'role'):
            if key in data:
                setattr(employee, key, data[key])
        if 'hourly_rate' in data:
            rate = _to_float(data['hourly_rate'], 'hourly_rate')
            if rate < 0:
                raise ValidationError('hourly_rate must not be negative')
            employee.hourly_rate = rate
        if 'active' in data:
            employee.active = bool(data['active'])
        if 'availability' in data:
            employee.set_availability(data['availability'])
        db.session.commit()
        logger.info(f"Updated employee {employee.id}")
        return jsonify({'success': True, 'employee': employee.to_dict()})
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating employee {employee_id}: {str(e)}")
        return _error(e, 400)


# Shifts
@app.route('/api/shifts', methods=['GET', 'POST'])
def api_shifts():
    if request.method == 'GET':
        try:
            rows = _shift_query(
                request.args.get('start_date'),
                request.args.get('end_date'),
                request.args.get('employee_id'),
                request.args.get('status'),
            ).all()
            return jsonify({
                'success': True,
                'shifts': [row.to_dict() for row in rows],
                'count': len(rows)
            })
        except SchedulingError as e:
            return _error(e)

    try:
        data = _json_body()
        _require(data, 'employee_id', 'date', 'start_time', 'end_time')
        employee = db.session.get(Employee, _to_int(data['employee_id'], 'employee_id'))
        if employee is None or not employee.active:
            raise ValidationError(f"Employee {data['employee_id']} not found or inactive")

        shift = Shift.from_dict({
            'employee_id': employee.id,
            'date': data['date'],
            'start_time': data['start_time'],
            'end_time': data['end_time'],
            'hourly_rate': data.get('hourly_rate', employee.hourly_rate),
            'role': data.get('role', employee.role),
            'notes': data.get('notes'),
        })
        shift.validate()

        row = Schedule()
        row.apply_shift(shift)
        db.session.add(row)
        db.session.flush()

        conflicts = _conflicts_involving(row)
        warnings = _booking_warnings(row)
        db.session.commit()

        if conflicts:
            logger.warning(f"Shift {row.id} overlaps {len(conflicts)} existing shift(s) "
                           f"for employee {row.employee_id}")
        logger.info(f"Created shift {row.id} for employee {row.employee_id} on {row.schedule_date}")
        return jsonify({
            'success': True,
            'shift': row.to_dict(),
            'conflicts': [c.to_dict() for c in conflicts],
            'warnings': warnings
        }), 201
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating shift: {str(e)}")
        return _error(e, 400)


@app.route('/api/shifts/<int:shift_id>', methods=['PUT', 'DELETE'])
def update_shift(shift_id):
    """Edit a shift.  Actual times may be corrected here after the shift ends."""
    row = db.get_or_404(Schedule, shift_id)

    if request.method == 'DELETE':
        db.session.delete(row)
        db.session.commit()
        logger.info(f"Deleted shift {shift_id}")
        return jsonify({'success': True, 'message': 'Shift deleted successfully'})

    try:
        data = _json_body()
        shift = row.to_shift()
        for key in ('start_time', 'end_time', 'role', 'notes'):
            if key in data:
                setattr(shift, key, data[key])
        for key in ('actual_start_time', 'actual_end_time'):
            if key in data:
                setattr(shift, key, data[key] or None)
        if 'date' in data:
            shift.date = parse_date(data['date'])
        if 'hourly_rate' in data:
            shift.hourly_rate = _to_float(data['hourly_rate'], 'hourly_rate')
        shift.validate()
        shift.updated_at = datetime.now()
        row.apply_shift(shift)
        db.session.flush()

        conflicts = _conflicts_involving(row)
        warnings = _booking_warnings(row)
        db.session.commit()
        logger.info(f"Updated shift {shift_id}")
        return jsonify({
            'success': True,
            'shift': row.to_dict(),
            'conflicts': [c.to_dict() for c in conflicts],
            'warnings': warnings
        })
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating shift {shift_id}: {str(e)}")
        return _error(e, 400)


def _transition_shift(shift_id, action):
    row = db.get_or_404(Schedule, shift_id)
    try:
        shift = row.to_shift()
        if action == 'attendance':
            data = _json_body()
            _require(data, 'actual_start_time', 'actual_end_time')
            shift.record_attendance(data['actual_start_time'], data['actual_end_time'])
        else:
            getattr(shift, action)()
        row.apply_shift(shift)
        db.session.commit()
        logger.info(f"Shift {shift_id} {action}: status is now {shift.status}")
        return jsonify({'success': True, 'shift': row.to_dict()})
    except SchedulingError as e:
        db.session.rollback()
        logger.warning(f"Rejected {action} for shift {shift_id}: {e}")
        return _error(e)


@app.route('/api/shifts/<int:shift_id>/start', methods=['PUT'])
def start_shift(shift_id):
    return _transition_shift(shift_id, 'start')


@app.route('/api/shifts/<int:shift_id>/end', methods=['PUT'])
def end_shift(shift_id):
    return _transition_shift(shift_id, 'end')


@app.route('/api/shifts/<int:shift_id>/cancel', methods=['PUT'])
def cancel_shift(shift_id):
    return _transition_shift(shift_id, 'cancel')


@app.route('/api/shifts/<int:shift_id>/attendance', methods=['PUT'])
def record_attendance(shift_id):
    return _transition_shift(shift_id, 'attendance')


@app.route('/api/shifts/conflicts', methods=['GET'])
def shift_conflicts():
    """Overlapping shifts and over-booked days within an optional date range."""
    try:
        rows = _shift_query(
            request.args.get('start_date'),
            request.args.get('end_date'),
            request.args.get('employee_id'),
        ).all()
        shifts = [row.to_shift() for row in rows]
        conflicts = find_conflicts(shifts)
        alerts = daily_hours_alerts(shifts)
        return jsonify({
            'success': True,
            'conflicts': [c.to_dict() for c in conflicts],
            'daily_hours_alerts': [a.to_dict() for a in alerts],
            'count': len(conflicts)
        })
    except SchedulingError as e:
        return _error(e)


# Payroll
@app.route('/api/payroll/generate', methods=['POST'])
def generate_payroll_endpoint():
    """Compute pending payroll records for a pay period.

    Body: ``period`` (week, biweekly, month or custom), ``start_date`` and
    ``end_date`` for custom periods, and optionally ``employee_ids``
    (all active employees otherwise).  Only completed shifts count.

    Employees who already have a live record overlapping the period, or whose
    shifts hold bad data, are skipped and listed under ``skipped``; the rest
    are still paid.  If nobody could be paid the first error is returned.
    """
    try:
        data = _json_body()
        period = data.get('period', 'week')
        start, end = pay_period_range(period, start=data.get('start_date'), end=data.get('end_date'))

        employee_ids = data.get('employee_ids')
        query = Employee.query.filter_by(active=True)
        if employee_ids:
            if not isinstance(employee_ids, list):
                raise ValidationError('employee_ids must be a list')
            ids = [_to_int(emp_id, 'employee_ids') for emp_id in employee_ids]
            query = Employee.query.filter(Employee.id.in_(ids))
        employees = query.order_by(Employee.id).all()
        if not employees:
            raise ValidationError('No employees selected for payroll')

        entries = []
        skipped = []
        for employee in employees:
            existing = PayrollEntry.covering(employee.id, start, end)
            if existing:
                skipped.append((employee, InvalidStateError(
                    f"Payroll record {existing[0].id} already covers "
                    f"{existing[0].pay_period_start} to {existing[0].pay_period_end} "
                    f"for employee {employee.id}; cancel it first",
                    record_id=existing[0].id)))
                continue
            rows = _shift_query(start, end, employee.id).all()
            try:
                record = generate_payroll(
                    employee.id, employee.hourly_rate, [r.to_shift() for r in rows],
                    start, end, employee_name=employee.name,
                )
            except SchedulingError as e:
                skipped.append((employee, e))
                continue
            entry = PayrollEntry()
            entry.apply_record(record)
            db.session.add(entry)
            entries.append(entry)

        for employee, error in skipped:
            logger.warning(f"Skipped payroll for employee {employee.id}: {error}")
        if not entries:
            raise skipped[0][1]
        db.session.commit()

        logger.info(f"Generated {len(entries)} payroll record(s) for {start} to {end}")
        return jsonify({
            'success': True,
            'pay_period_start': start.isoformat(),
            'pay_period_end': end.isoformat(),
            'records': [e.to_dict() for e in entries],
            'count': len(entries),
            'skipped': [{'employee_id': employee.id, 'employee_name': employee.name, 'error': str(error)}
                        for employee, error in skipped]
        }), 201
    except SchedulingError as e:
        db.session.rollback()
        logger.error(f"Payroll generation failed: {e}")
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error generating payroll: {str(e)}")
        return _error(e, 500)


@app.route('/api/payroll', methods=['GET'])
def api_payroll():
    try:
        query = PayrollEntry.query
        employee_id = request.args.get('employee_id')
        status = request.args.get('status')
        if employee_id:
            query = query.filter(PayrollEntry.employee_id == _to_int(employee_id, 'employee_id'))
        if status:
            if status not in PAYROLL_STATUSES:
                raise ValidationError(f"Unknown payroll status {status!r}")
            query = query.filter(PayrollEntry.status == status)
        entries = query.order_by(PayrollEntry.pay_period_start.desc(), PayrollEntry.id).all()
        return jsonify({
            'success': True,
            'records': [e.to_dict() for e in entries],
            'count': len(entries)
        })
    except SchedulingError as e:
        return _error(e)


@app.route('/api/payroll/<int:record_id>', methods=['GET'])
def get_payroll_record(record_id):
    entry = db.get_or_404(PayrollEntry, record_id)
    return jsonify({'success': True, 'record': entry.to_dict()})


def _update_payroll(record_id, action):
    entry = db.get_or_404(PayrollEntry, record_id)
    try:
        record = entry.to_record()
        data = request.get_json(silent=True) or {}
        if action == 'deductions':
            _require(data, 'deductions')
            record.apply_deductions(_to_float(data['deductions'], 'deductions'))
        elif action == 'process':
            record.process(data.get('processed_by'), data.get('notes', ''))
        elif action == 'pay':
            record.mark_as_paid(
                payment_date=parse_date(data.get('payment_date'), 'payment_date'),
                payment_method=data.get('payment_method'),
            )
        else:
            record.cancel()
        entry.apply_record(record)
        db.session.commit()
        logger.info(f"Payroll {record_id} {action}: status is now {record.status}")
        return jsonify({'success': True, 'record': entry.to_dict()})
    except SchedulingError as e:
        db.session.rollback()
        logger.warning(f"Rejected {action} for payroll {record_id}: {e}")
        return _error(e)


@app.route('/api/payroll/<int:record_id>/deductions', methods=['PUT'])
def set_payroll_deductions(record_id):
    return _update_payroll(record_id, 'deductions')


@app.route('/api/payroll/<int:record_id>/process', methods=['PUT'])
def process_payroll(record_id):
    return _update_payroll(record_id, 'process')


@app.route('/api/payroll/<int:record_id>/pay', methods=['PUT'])
def pay_payroll(record_id):
    return _update_payroll(record_id, 'pay')


@app.route('/api/payroll/<int:record_id>/cancel', methods=['PUT'])
def cancel_payroll(record_id):
    return _update_payroll(record_id, 'cancel')


# Time off
@app.route('/api/timeoff', methods=['GET', 'POST'])
def api_timeoff():
    if request.method == 'GET':
        query = TimeOffRequest.query.join(Employee).filter(Employee.active == True)
        status = request.args.get('status')
        if status:
            query = query.filter(TimeOffRequest.status == status)
        requests_ = query.order_by(TimeOffRequest.created_at.desc()).all()
        return jsonify({
            'success': True,
            'requests': [req.to_dict() for req in requests_],
            'count': len(requests_)
        })

    try:
        data = _json_body()
        _require(data, 'employee_id', 'start_date', 'end_date')
        employee_id = _to_int(data['employee_id'], 'employee_id')
        start = parse_date(data['start_date'], 'start_date')
        end = parse_date(data['end_date'], 'end_date')
        if start > end:
            raise ValidationError('Time off cannot end before it starts')
        leave_type = data.get('type', 'vacation')
        if leave_type not in TIME_OFF_TYPES:
            raise ValidationError(f"Unknown time off type {leave_type!r}")
        if db.session.get(Employee, employee_id) is None:
            raise ValidationError(f"Employee {employee_id} not found")
        clashing = TimeOffRequest.overlapping(employee_id, start, end)
        if clashing:
            raise InvalidStateError(
                f"Employee {employee_id} already has {clashing[0].status} time off "
                f"from {clashing[0].start_date} to {clashing[0].end_date}",
                record_id=clashing[0].id)

        req = TimeOffRequest(
            employee_id=employee_id,
            start_date=start,
            end_date=end,
            type=leave_type,
            reason=data.get('reason')
        )
        db.session.add(req)
        db.session.commit()
        logger.info(f"Created time off request {req.id} for employee {req.employee_id}")
        return jsonify({'success': True, 'request': req.to_dict()}), 201
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating time off request: {str(e)}")
        return _error(e, 400)


def _review_timeoff(request_id, new_status):
    req = db.get_or_404(TimeOffRequest, request_id)
    if req.status != 'pending':
        return _error(InvalidStateError(f"Time off request {request_id} is already {req.status}"))
    data = request.get_json(silent=True) or {}
    req.status = new_status
    req.reviewed_by = data.get('reviewed_by')
    req.review_notes = data.get('review_notes', '')
    req.reviewed_at = datetime.now()
    db.session.commit()
    logger.info(f"Time off request {request_id} {new_status} by {req.reviewed_by or 'unknown reviewer'}")
    return jsonify({'success': True, 'request': req.to_dict()})


@app.route('/api/timeoff/<int:request_id>/approve', methods=['PUT'])
def approve_timeoff(request_id):
    return _review_timeoff(request_id, 'approved')


@app.route('/api/timeoff/<int:request_id>/deny', methods=['PUT'])
def deny_timeoff(request_id):
    return _review_timeoff(request_id, 'rejected')


@app.route('/api/timeoff/<int:request_id>/cancel', methods=['PUT'])
def cancel_timeoff(request_id):
    """Withdraw a pending or approved request; the dates become free again."""
    req = db.get_or_404(TimeOffRequest, request_id)
    if req.status not in TimeOffRequest.OPEN_STATUSES:
        return _error(InvalidStateError(f"Time off request {request_id} is already {req.status}"))
    req.status = 'cancelled'
    db.session.commit()
    logger.info(f"Time off request {request_id} cancelled")
    return jsonify({'success': True, 'request': req.to_dict()})


# Shift trades
@app.route('/api/trades', methods=['GET', 'POST'])
def api_trades():
    if request.method == 'GET':
        query = ShiftTrade.query
        status = request.args.get('status')
        if status:
            query = query.filter(ShiftTrade.status == status)
        trades = query.order_by(ShiftTrade.created_at.desc()).all()
        return jsonify({
            'success': True,
            'trades': [trade.to_dict() for trade in trades],
            'count': len(trades)
        })

    try:
        data = _json_body()
        _require(data, 'requesting_employee_id', 'target_employee_id',
                 'original_schedule_id', 'trade_schedule_id')
        requesting_id = _to_int(data['requesting_employee_id'], 'requesting_employee_id')
        target_id = _to_int(data['target_employee_id'], 'target_employee_id')
        original = db.session.get(Schedule, _to_int(data['original_schedule_id'], 'original_schedule_id'))
        trade_shift = db.session.get(Schedule, _to_int(data['trade_schedule_id'], 'trade_schedule_id'))
        if not original or not trade_shift:
            raise ValidationError('One or both shifts not found')
        if original.employee_id != requesting_id:
            raise ValidationError('Original shift does not belong to requesting employee')
        if trade_shift.employee_id != target_id:
            raise ValidationError('Trade shift does not belong to target employee')
        if original.status != SCHEDULED or trade_shift.status != SCHEDULED:
            raise InvalidStateError('Only scheduled shifts can be traded')

        trade = ShiftTrade(
            requesting_employee_id=requesting_id,
            target_employee_id=target_id,
            original_schedule_id=original.id,
            trade_schedule_id=trade_shift.id,
            trade_reason=data.get('trade_reason')
        )
        db.session.add(trade)
        db.session.commit()
        logger.info(f"Created shift trade {trade.id} from employee {trade.requesting_employee_id} "
                    f"to employee {trade.target_employee_id}")
        return jsonify({'success': True, 'trade': trade.to_dict()}), 201
    except SchedulingError as e:
        db.session.rollback()
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating trade: {str(e)}")
        return _error(e, 400)


@app.route('/api/trades/<int:trade_id>/approve', methods=['PUT'])
def approve_trade(trade_id):
    """Approve a pending trade and swap the employees on both shifts.

    Both shifts are checked again: they must still exist, still be scheduled
    and still belong to the two employees.  Overlaps the swap creates are
    returned under ``conflicts``.
    """
    trade = db.get_or_404(ShiftTrade, trade_id)
    if trade.status != 'pending':
        return _error(InvalidStateError(f"Trade {trade_id} is not pending"))

    try:
        data = request.get_json(silent=True) or {}
        original = db.session.get(Schedule, trade.original_schedule_id)
        trade_shift = db.session.get(Schedule, trade.trade_schedule_id)
        if not original or not trade_shift:
            raise ValidationError(f"Trade {trade_id} refers to a shift that no longer exists",
                                  record_id=trade_id)
        if original.status != SCHEDULED or trade_shift.status != SCHEDULED:
            raise InvalidStateError(
                f"Trade {trade_id} can no longer be approved: shifts are "
                f"{original.status} and {trade_shift.status}",
                record_id=trade_id)
        if (original.employee_id != trade.requesting_employee_id
                or trade_shift.employee_id != trade.target_employee_id):
            raise InvalidStateError(f"Trade {trade_id} shifts were reassigned since it was requested",
                                    record_id=trade_id)

        now = datetime.now()
        original.employee_id = trade.target_employee_id
        trade_shift.employee_id = trade.requesting_employee_id
        original.updated_at = trade_shift.updated_at = now
        trade.status = 'approved'
        trade.reviewed_by = data.get('reviewed_by')
        trade.review_notes = data.get('review_notes', '')
        trade.reviewed_at = trade.approved_at = now
        db.session.flush()

        conflicts = _conflicts_involving(original, trade_shift)
        db.session.commit()
    except SchedulingError as e:
        db.session.rollback()
        logger.warning(f"Rejected approval of trade {trade_id}: {e}")
        return _error(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error approving trade {trade_id}: {str(e)}")
        return _error(e, 500)

    if conflicts:
        logger.warning(f"Trade {trade_id} created {len(conflicts)} overlapping shift pair(s)")
    logger.info(f"Approved shift trade {trade_id}: employees {trade.requesting_employee_id} "
                f"and {trade.target_employee_id} swapped shifts")
    return jsonify({
        'success': True,
        'trade': trade.to_dict(),
        'conflicts': [c.to_dict() for c in conflicts]
    })


@app.route('/api/trades/<int:trade_id>/deny', methods=['PUT'])
def deny_trade(trade_id):
    trade = db.get_or_404(ShiftTrade, trade_id)
    if trade.status != 'pending':
        return _error(InvalidStateError(f"Trade {trade_id} is not pending"))
    data = request.get_json(silent=True) or {}
    trade.status = 'rejected'
    trade.reviewed_by = data.get('reviewed_by')
    trade.review_notes = data.get('review_notes', '')
    trade.reviewed_at = datetime.now()
    db.session.commit()
    logger.info(f"Denied shift trade {trade_id}")
    return jsonify({'success': True, 'trade': trade.to_dict()})


@app.route('/api/trades/<int:trade_id>/cancel', methods=['PUT'])
def cancel_trade(trade_id):
    """Withdraw a trade the requester no longer wants; only pending trades."""
    trade = db.get_or_404(ShiftTrade, trade_id)
    if trade.status != 'pending':
        return _error(InvalidStateError(f"Trade {trade_id} is not pending"))
    trade.status = 'cancelled'
    db.session.commit()
    logger.info(f"Cancelled shift trade {trade_id}")
    return jsonify({'success': True, 'trade': trade.to_dict()})


# Database initialization
_db_init_done = False


@app.before_request
def _init_db_once():
    global _db_init_done
    if _db_init_done or app.config.get('TESTING'):
        return
    db.create_all()
    if app.config['SEED_SAMPLE_DATA']:
        seed_sample_data()
    _db_init_done = True


@app.cli.command('init-db')
def init_db_command():
    """Drop and recreate all tables, then seed the sample roster."""
    init_db()
    if app.config['SEED_SAMPLE_DATA']:
        seed_sample_data()


# Error handlers
@app.errorhandler(404)
def not_found(error):
    return jsonify({'success': False, 'error': 'Resource not found'}), 404


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({'success': False, 'error': 'Method not allowed'}), 405


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal server error: {str(error)}")
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


if __name__ == '__main__':
    is_production = os.environ.get('FLASK_ENV') == 'production'
    port = int(os.environ.get('PORT', 5005))
    app.run(host='0.0.0.0' if is_production else '127.0.0.1', port=port, debug=not is_production)
