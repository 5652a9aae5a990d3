"""
Rule checks for edited and generated schedules.
Per-cell warnings for the grid editor and a whole-month hard-rule audit.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from scheduler_logic import (
    MAX_CONSECUTIVE_WORK,
    CellKey,
    NgPair,
    ShiftType,
    Staff,
    is_night_type,
    is_off_category,
    is_work,
    parse_shift,
)
from utils import get_days_in_month


WARN_CONSECUTIVE = f"More than {MAX_CONSECUTIVE_WORK} consecutive work days"
WARN_NIGHT_NEEDS_DAY = "Night must follow a day shift (3-shift)"
WARN_AFTER_NIGHT_3 = "After night, late or off is recommended (3-shift)"
WARN_AFTER_LATE_3 = "Late must be followed by off (3-shift)"
WARN_AFTER_LATE_2 = "Late must be followed by night (2-shift)"
WARN_AFTER_NIGHT_2 = "Night must be followed by off (2-shift)"
WARN_NG_PAIR = "NG pair overlap on a night shift"


def _shift_at(schedule: Dict, staff_id: int, day: int):
    return parse_shift(schedule.get(CellKey(staff_id, day)))


def check_cell_warning(
    schedule: Dict, person: Staff, day: int, ng_pairs: Iterable[NgPair] = ()
) -> Optional[str]:
    """
    Return the first rule the cell (person, day) breaks, or None.

    Day 1 and cells with an empty value on either side are never flagged.
    """
    if day == 1:
        return None
    today = _shift_at(schedule, person.id, day)
    prev = _shift_at(schedule, person.id, day - 1)
    if today is None or prev is None:
        return None

    if is_work(today):
        consecutive = 1
        for i in range(1, MAX_CONSECUTIVE_WORK + 2):
            if day - i < 1:
                break
            if is_work(_shift_at(schedule, person.id, day - i)):
                consecutive += 1
            else:
                break
        if consecutive > MAX_CONSECUTIVE_WORK:
            return WARN_CONSECUTIVE

    if person.is_three_shift:
        if today == ShiftType.NIGHT and prev != ShiftType.DAY:
            return WARN_NIGHT_NEEDS_DAY
        if prev == ShiftType.NIGHT and today != ShiftType.LATE and not is_off_category(today):
            return WARN_AFTER_NIGHT_3
        if prev == ShiftType.LATE and not is_off_category(today):
            return WARN_AFTER_LATE_3

    if person.is_two_shift:
        if prev == ShiftType.LATE and today != ShiftType.NIGHT:
            return WARN_AFTER_LATE_2
        if prev == ShiftType.NIGHT and not is_off_category(today):
            return WARN_AFTER_NIGHT_2

    if is_night_type(today):
        for pair in ng_pairs:
            partner_id = pair.partner_of(person.id)
            if partner_id is not None and is_night_type(_shift_at(schedule, partner_id, day)):
                return WARN_NG_PAIR

    return None


def collect_warnings(
    schedule: Dict,
    staff_list: List[Staff],
    year: int,
    month: int,
    ng_pairs: Iterable[NgPair] = (),
) -> List[dict]:
    """All flagged cells of the month, as rows for display."""
    ng_pairs = list(ng_pairs)
    warnings = []
    for person in staff_list:
        for day in range(1, get_days_in_month(year, month) + 1):
            message = check_cell_warning(schedule, person, day, ng_pairs)
            if message:
                warnings.append({"staff_id": person.id, "name": person.name, "day": day, "warning": message})
    return warnings


def validate_schedule(
    schedule: Dict,
    staff_list: List[Staff],
    year: int,
    month: int,
    ng_pairs: Iterable[NgPair] = (),
) -> Tuple[bool, List[str]]:
    """
    Validate the hard rules of a generated schedule.
    Returns (is_valid, list_of_violations).

    Rules checked:
    1. Every staff member has a shift on every day
    2. Two-shift late is followed by night
    3. Three-shift night is preceded by a day shift
    4. NG pairs never share a night-type shift
    5. No run of more than MAX_CONSECUTIVE_WORK work days
    """
    violations = []
    num_days = get_days_in_month(year, month)

    for person in staff_list:
        run = 0
        for day in range(1, num_days + 1):
            shift = _shift_at(schedule, person.id, day)
            if shift is None:
                violations.append(f"VIOLATION: {person.name} has no shift on day {day}")

            if person.is_two_shift and shift == ShiftType.LATE and day < num_days:
                if _shift_at(schedule, person.id, day + 1) != ShiftType.NIGHT:
                    violations.append(f"VIOLATION: {person.name} late on day {day} not followed by night")

            if person.is_three_shift and shift == ShiftType.NIGHT and day > 1:
                if _shift_at(schedule, person.id, day - 1) != ShiftType.DAY:
                    violations.append(f"VIOLATION: {person.name} night on day {day} without a day shift before")

            run = run + 1 if is_work(shift) else 0
            if run == MAX_CONSECUTIVE_WORK + 1:
                violations.append(
                    f"VIOLATION: {person.name} works more than {MAX_CONSECUTIVE_WORK} days in a row ending day {day}"
                )

    for pair in ng_pairs:
        for day in range(1, num_days + 1):
            if is_night_type(_shift_at(schedule, pair.staff1, day)) and is_night_type(
                _shift_at(schedule, pair.staff2, day)
            ):
                violations.append(
                    f"VIOLATION: NG pair {pair.staff1}/{pair.staff2} both on night shifts on day {day}"
                )

    return len(violations) == 0, violations
