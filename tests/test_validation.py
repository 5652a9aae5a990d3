from __future__ import annotations

from scheduler_logic import CellKey, NgPair, ShiftSystem, Staff
from validation import (
    WARN_AFTER_LATE_2,
    WARN_AFTER_LATE_3,
    WARN_AFTER_NIGHT_2,
    WARN_AFTER_NIGHT_3,
    WARN_CONSECUTIVE,
    WARN_NG_PAIR,
    WARN_NIGHT_NEEDS_DAY,
    check_cell_warning,
    collect_warnings,
    validate_schedule,
)

TWO = Staff(1, "Two", shift_system=ShiftSystem.TWO_SHIFT)
THREE = Staff(2, "Three", shift_system=ShiftSystem.THREE_SHIFT)


def _row(person, *shifts):
    """Schedule cells for one person starting on day 1."""
    return {CellKey(person.id, day): shift for day, shift in enumerate(shifts, start=1) if shift}


def test_first_day_and_empty_neighbours_never_warn():
    schedule = _row(THREE, "night", None, "night")
    assert check_cell_warning(schedule, THREE, 1) is None
    assert check_cell_warning(schedule, THREE, 2) is None
    assert check_cell_warning(schedule, THREE, 3) is None


def test_consecutive_work_warning():
    schedule = _row(THREE, "day", "day", "day", "day", "day", "day")
    assert check_cell_warning(schedule, THREE, 5) is None
    assert check_cell_warning(schedule, THREE, 6) == WARN_CONSECUTIVE


def test_three_shift_rotation_warnings():
    assert check_cell_warning(_row(THREE, "off", "night"), THREE, 2) == WARN_NIGHT_NEEDS_DAY
    assert check_cell_warning(_row(THREE, "day", "night"), THREE, 2) is None
    assert check_cell_warning(_row(THREE, "day", "night", "day"), THREE, 3) == WARN_AFTER_NIGHT_3
    assert check_cell_warning(_row(THREE, "day", "night", "late"), THREE, 3) is None
    assert check_cell_warning(_row(THREE, "late", "day"), THREE, 2) == WARN_AFTER_LATE_3
    assert check_cell_warning(_row(THREE, "late", "paid"), THREE, 2) is None


def test_two_shift_rotation_warnings():
    assert check_cell_warning(_row(TWO, "late", "day"), TWO, 2) == WARN_AFTER_LATE_2
    assert check_cell_warning(_row(TWO, "late", "night"), TWO, 2) is None
    assert check_cell_warning(_row(TWO, "night", "day"), TWO, 2) == WARN_AFTER_NIGHT_2
    assert check_cell_warning(_row(TWO, "night", "off"), TWO, 2) is None


def test_ng_pair_overlap_warning():
    other = Staff(3, "Other", shift_system=ShiftSystem.TWO_SHIFT)
    schedule = {**_row(TWO, "late", "night"), **_row(other, "off", "late")}
    pairs = [NgPair(1, 3, id=1)]

    assert check_cell_warning(schedule, TWO, 2, pairs) == WARN_NG_PAIR
    assert check_cell_warning(schedule, TWO, 2, []) is None


def test_collect_warnings_rows():
    schedule = _row(TWO, "late", "day")
    warnings = collect_warnings(schedule, [TWO, THREE], 2024, 4)
    assert warnings == [{"staff_id": 1, "name": "Two", "day": 2, "warning": WARN_AFTER_LATE_2}]


def test_validate_schedule_reports_each_rule():
    days = 30
    schedule = {CellKey(p.id, d): "off" for p in (TWO, THREE) for d in range(1, days + 1)}
    schedule[CellKey(TWO.id, 3)] = "late"
    schedule[CellKey(THREE.id, 3)] = "night"
    del schedule[CellKey(THREE.id, 20)]

    is_valid, violations = validate_schedule(schedule, [TWO, THREE], 2024, 4, [NgPair(1, 2)])

    assert not is_valid
    text = "\n".join(violations)
    assert "has no shift on day 20" in text
    assert "late on day 3 not followed by night" in text
    assert "night on day 3 without a day shift before" in text
    assert "NG pair 1/2" in text


def test_validate_schedule_consecutive_run_reported_once():
    schedule = {CellKey(THREE.id, d): "day" for d in range(1, 31)}
    is_valid, violations = validate_schedule(schedule, [THREE], 2024, 4)
    assert not is_valid
    assert len(violations) == 1
    assert "ending day 6" in violations[0]


def test_validate_schedule_clean():
    schedule = {CellKey(THREE.id, d): ("day" if d % 3 else "off") for d in range(1, 31)}
    assert validate_schedule(schedule, [THREE], 2024, 4) == (True, [])
