from datetime import date, datetime

import pytest

from errors import FormatError, InvalidStateError, ValidationError
from shift_rules import (
    CANCELLED, COMPLETED, IN_PROGRESS, SCHEDULED, Shift,
    compute_duration, daily_hours_alerts, find_conflicts, get_overtime_hours,
    has_overtime, overlaps_with, time_to_minutes,
)

DAY = date(2025, 1, 20)


def make_shift(id=1, employee_id=1, start="09:00", end="17:00", day=DAY, **kwargs):
    return Shift(id=id, employee_id=employee_id, date=day,
                 start_time=start, end_time=end, hourly_rate=15.0, **kwargs)


# ---------------------------------------------------------------------------
# Time parsing and durations
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("value, minutes", [
    ("00:00", 0),
    ("09:00", 540),
    ("9:05", 545),
    ("23:59", 1439),
])
def test_time_to_minutes(value, minutes):
    assert time_to_minutes(value) == minutes


@pytest.mark.parametrize("value", ["0900", "9", "ab:cd", "24:00", "12:60", "", None, 900])
def test_time_to_minutes_rejects_malformed(value):
    with pytest.raises(FormatError):
        time_to_minutes(value)


def test_eight_hour_shift_has_no_overtime():
    shift = make_shift(start="09:00", end="17:00")
    assert compute_duration(shift) == 8.0
    assert has_overtime(shift) is False
    assert get_overtime_hours(shift) == 0.0


def test_long_shift_has_overtime():
    shift = make_shift(start="09:00", end="19:30")
    assert compute_duration(shift) == 10.5
    assert has_overtime(shift) is True
    assert get_overtime_hours(shift) == 2.5


def test_actual_times_take_precedence_when_both_recorded():
    shift = make_shift(start="09:00", end="17:00",
                       actual_start_time="08:30", actual_end_time="18:00")
    assert compute_duration(shift) == 9.5
    assert get_overtime_hours(shift) == 1.5


def test_partial_actual_times_fall_back_to_schedule():
    shift = make_shift(start="09:00", end="17:00", actual_start_time="08:00")
    assert compute_duration(shift) == 8.0


def test_malformed_time_names_the_shift():
    shift = make_shift(id=42, end="5pm")
    with pytest.raises(FormatError) as excinfo:
        compute_duration(shift)
    assert excinfo.value.record_id == 42
    assert "42" in str(excinfo.value)


def test_missing_times_fail_validation():
    shift = make_shift(id=7, start=None)
    assert shift.is_valid() is False
    with pytest.raises(ValidationError) as excinfo:
        compute_duration(shift)
    assert excinfo.value.record_id == 7


def test_overnight_shift_is_rejected():
    shift = make_shift(start="22:00", end="06:00")
    with pytest.raises(ValidationError):
        compute_duration(shift)
    with pytest.raises(ValidationError):
        shift.validate()


def test_validate_reports_missing_fields():
    shift = Shift(id=3, employee_id=None, date=None, start_time="09:00", end_time="17:00")
    with pytest.raises(ValidationError) as excinfo:
        shift.validate()
    assert "employee_id" in str(excinfo.value)
    assert "date" in str(excinfo.value)


def test_from_dict_parses_iso_date_and_rejects_bad_date():
    shift = Shift.from_dict({"id": 1, "employee_id": 1, "date": "2025-01-20",
                             "start_time": "09:00", "end_time": "17:00", "hourly_rate": "15"})
    assert shift.date == DAY
    assert shift.hourly_rate == 15.0
    assert shift.status == SCHEDULED
    with pytest.raises(FormatError):
        Shift.from_dict({"date": "20/01/2025"})


# ---------------------------------------------------------------------------
# Overlap detection
# ---------------------------------------------------------------------------
def test_overlapping_shifts_same_employee_same_day():
    a = make_shift(id=1, start="09:00", end="17:00")
    b = make_shift(id=2, start="16:00", end="20:00")
    assert overlaps_with(a, b) is True
    assert overlaps_with(b, a) is True


def test_back_to_back_shifts_do_not_overlap():
    a = make_shift(id=1, start="09:00", end="17:00")
    c = make_shift(id=3, start="17:00", end="20:00")
    assert overlaps_with(a, c) is False


def test_different_employee_or_date_never_overlaps():
    a = make_shift(id=1, start="09:00", end="17:00")
    other_employee = make_shift(id=2, employee_id=2, start="09:00", end="17:00")
    other_day = make_shift(id=3, start="09:00", end="17:00", day=date(2025, 1, 21))
    assert overlaps_with(a, other_employee) is False
    assert overlaps_with(a, other_day) is False


def test_find_conflicts_reports_each_overlapping_pair_once():
    shifts = [
        make_shift(id=1, start="09:00", end="17:00"),
        make_shift(id=2, start="16:00", end="20:00"),
        make_shift(id=3, start="17:00", end="18:00"),
        make_shift(id=4, employee_id=2, start="09:00", end="17:00"),
    ]
    conflicts = find_conflicts(shifts)
    pairs = {(c.shift_id_a, c.shift_id_b) for c in conflicts}
    assert pairs == {(1, 2), (2, 3)}
    assert all(c.reason == "overlap" for c in conflicts)
    assert conflicts[0].to_dict()["date"] == "2025-01-20"


def test_find_conflicts_ignores_cancelled_shifts():
    shifts = [
        make_shift(id=1, start="09:00", end="17:00"),
        make_shift(id=2, start="12:00", end="14:00", status=CANCELLED),
    ]
    assert find_conflicts(shifts) == []


def test_daily_hours_alert_without_per_shift_overtime():
    # Two 5h shifts: 10h that day, but neither shift on its own is overtime.
    morning = make_shift(id=1, start="06:00", end="11:00")
    evening = make_shift(id=2, start="15:00", end="20:00")
    assert not has_overtime(morning) and not has_overtime(evening)

    alerts = daily_hours_alerts([morning, evening])
    assert len(alerts) == 1
    assert alerts[0].total_hours == 10.0
    assert alerts[0].shift_ids == (1, 2)


def test_daily_hours_alert_not_raised_at_threshold():
    assert daily_hours_alerts([make_shift(start="09:00", end="17:00")]) == []


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------
def test_start_then_end_records_actual_times():
    shift = make_shift()
    shift.start(now=datetime(2025, 1, 20, 8, 55))
    assert shift.status == IN_PROGRESS
    assert shift.actual_start_time == "08:55"

    shift.end(now=datetime(2025, 1, 20, 17, 25))
    assert shift.status == COMPLETED
    assert shift.actual_end_time == "17:25"
    assert compute_duration(shift) == 8.5


def test_end_after_midnight_is_rejected_and_shift_stays_in_progress():
    shift = make_shift(start="22:00", end="23:59")
    shift.start(now=datetime(2025, 1, 20, 22, 0))

    with pytest.raises(ValidationError) as excinfo:
        shift.end(now=datetime(2025, 1, 21, 0, 30))
    assert excinfo.value.record_id == 1
    assert shift.status == IN_PROGRESS, "A rejected end must leave the shift open"
    assert shift.actual_end_time is None

    # The shift can still be closed with a timesheet entry.
    shift.record_attendance("22:00", "23:59")
    assert shift.status == COMPLETED
    assert compute_duration(shift) >= 0


def test_end_before_recorded_start_is_rejected():
    shift = make_shift(actual_start_time="10:00", status=IN_PROGRESS)
    with pytest.raises(ValidationError):
        shift.end(now=datetime(2025, 1, 20, 9, 30))
    assert shift.status == IN_PROGRESS


def test_validate_rejects_reversed_actual_times():
    shift = make_shift(actual_start_time="22:00", actual_end_time="00:30", status=COMPLETED)
    with pytest.raises(ValidationError):
        shift.validate()
    shift.actual_end_time = "23:30"
    shift.validate()


def test_start_on_completed_shift_fails():
    shift = make_shift(status=COMPLETED)
    with pytest.raises(InvalidStateError):
        shift.start()


def test_end_requires_in_progress():
    shift = make_shift()
    with pytest.raises(InvalidStateError):
        shift.end()
    assert shift.status == SCHEDULED
    assert shift.actual_end_time is None


@pytest.mark.parametrize("status", [SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED])
def test_cancel_succeeds_from_any_state(status):
    shift = make_shift(status=status)
    shift.cancel()
    assert shift.status == CANCELLED


def test_record_attendance_completes_shift():
    shift = make_shift()
    shift.record_attendance("09:10", "19:10")
    assert shift.status == COMPLETED
    assert get_overtime_hours(shift) == 2.0


def test_record_attendance_rejected_for_cancelled_shift():
    shift = make_shift(status=CANCELLED)
    with pytest.raises(InvalidStateError):
        shift.record_attendance("09:00", "17:00")
