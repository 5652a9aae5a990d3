"""
Editing operations on a ScheduleDocument: staff list, NG pairs and manual
cell edits. Every function mutates the document in place and raises
ValueError with a user-facing message when the edit is refused.
"""

from dataclasses import replace
from typing import List, Optional
import logging

from scheduler_logic import (
    CellKey,
    NgPair,
    ShiftSystem,
    ShiftType,
    Staff,
    parse_shift,
)
from storage import ScheduleDocument
from utils import get_days_in_month

logger = logging.getLogger(__name__)


def find_staff(document: ScheduleDocument, staff_id: int) -> Optional[Staff]:
    for person in document.staff_list:
        if person.id == staff_id:
            return person
    return None


def _require_staff(document: ScheduleDocument, staff_id: int) -> Staff:
    person = find_staff(document, staff_id)
    if person is None:
        raise ValueError(f"Unknown staff id {staff_id}")
    return person


# ---------- staff ----------

def add_staff(
    document: ScheduleDocument,
    name: str,
    role: str = "Nurse",
    shift_system: ShiftSystem = ShiftSystem.THREE_SHIFT,
) -> Staff:
    name = (name or "").strip()
    if not name:
        raise ValueError("Please enter a name")
    next_id = max((s.id for s in document.staff_list), default=0) + 1
    person = Staff(id=next_id, name=name, role=(role or "Nurse").strip(), shift_system=ShiftSystem(shift_system))
    document.staff_list.append(person)
    logger.info(f"Added staff {person.id} ({person.name})")
    return person


def update_staff(document: ScheduleDocument, staff_id: int, **changes) -> Staff:
    """Change name, role or shift_system of one staff member."""
    person = _require_staff(document, staff_id)
    allowed = {"name", "role", "shift_system"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValueError("Please enter a name")
    if "shift_system" in changes:
        changes["shift_system"] = ShiftSystem(changes["shift_system"])

    updated = replace(person, **changes)
    index = document.staff_list.index(person)
    document.staff_list[index] = updated
    return updated


def remove_staff(document: ScheduleDocument, staff_id: int) -> None:
    """Remove a staff member with their cells, locks and NG pairs."""
    person = _require_staff(document, staff_id)
    document.staff_list.remove(person)
    _drop_staff_data(document, {staff_id})
    logger.info(f"Removed staff {staff_id} ({person.name})")


def set_staff_list(document: ScheduleDocument, staff_list: List[Staff]) -> None:
    """Replace the whole staff list (table editor); removed ids are cascaded."""
    ids = [s.id for s in staff_list]
    if len(ids) != len(set(ids)):
        raise ValueError("Duplicate staff IDs found")
    removed = {s.id for s in document.staff_list} - set(ids)
    document.staff_list = list(staff_list)
    if removed:
        _drop_staff_data(document, removed)
        logger.info(f"Staff list replaced, removed ids {sorted(removed)}")


def _drop_staff_data(document: ScheduleDocument, staff_ids) -> None:
    document.schedule = {k: v for k, v in document.schedule.items() if k.staff_id not in staff_ids}
    document.locked_cells = {k for k in document.locked_cells if k.staff_id not in staff_ids}
    document.ng_pairs = [
        p for p in document.ng_pairs if p.staff1 not in staff_ids and p.staff2 not in staff_ids
    ]


# ---------- NG pairs ----------

def add_ng_pair(document: ScheduleDocument, staff1: int, staff2: int) -> NgPair:
    staff1, staff2 = int(staff1), int(staff2)
    if staff1 == staff2:
        raise ValueError("Please choose two different staff members")
    _require_staff(document, staff1)
    _require_staff(document, staff2)
    if any(p.matches(staff1, staff2) for p in document.ng_pairs):
        raise ValueError("This pair is already registered")

    next_id = max((p.id or 0 for p in document.ng_pairs), default=0) + 1
    pair = NgPair(staff1=staff1, staff2=staff2, id=next_id)
    document.ng_pairs.append(pair)
    return pair


def remove_ng_pair(document: ScheduleDocument, pair_id: int) -> None:
    before = len(document.ng_pairs)
    document.ng_pairs = [p for p in document.ng_pairs if p.id != pair_id]
    if len(document.ng_pairs) == before:
        raise ValueError(f"Unknown NG pair {pair_id}")


# ---------- cells ----------

def _check_cell(document: ScheduleDocument, staff_id: int, day: int) -> None:
    _require_staff(document, staff_id)
    num_days = get_days_in_month(document.year, document.month)
    if not 1 <= day <= num_days:
        raise ValueError(f"Day {day} is outside the month (1-{num_days})")


def apply_manual_shift(
    document: ScheduleDocument, staff_id: int, day: int, shift, request_mode: bool = False
) -> None:
    """
    Write `shift` into a cell and lock it.

    In request mode a night or late that would push the day's headcount past
    its target is refused. A three-shift night also puts a day shift on the
    day before when that cell is empty or already a day shift.
    """
    _check_cell(document, staff_id, day)
    shift = parse_shift(shift)
    if shift is None:
        raise ValueError("Please choose a shift")

    key = CellKey(staff_id, day)
    if request_mode and document.schedule.get(key) != shift:
        current = sum(
            1 for s in document.staff_list if document.schedule.get(CellKey(s.id, day)) == shift
        )
        settings = document.settings
        if shift == ShiftType.NIGHT and current >= settings.target_night:
            raise ValueError(f"Night is limited to {settings.target_night} per day")
        if shift == ShiftType.LATE and current >= settings.target_late:
            raise ValueError(f"Late is limited to {settings.target_late} per day")

    document.schedule[key] = shift
    document.locked_cells.add(key)

    person = find_staff(document, staff_id)
    if person.is_three_shift and shift == ShiftType.NIGHT and day > 1:
        prev_key = CellKey(staff_id, day - 1)
        prev = document.schedule.get(prev_key)
        if prev is None or prev == ShiftType.DAY:
            document.schedule[prev_key] = ShiftType.DAY


def erase_cell(document: ScheduleDocument, staff_id: int, day: int) -> None:
    key = CellKey(staff_id, day)
    document.schedule.pop(key, None)
    document.locked_cells.discard(key)


def clear_schedule(document: ScheduleDocument) -> None:
    document.schedule = {}
    document.locked_cells = set()
    logger.info("Schedule and locks cleared")
