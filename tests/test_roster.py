from __future__ import annotations

from datetime import date

import pytest

import roster
from scheduler_logic import AppSettings, CellKey, NgPair, ShiftSystem, ShiftType, Staff
from storage import ScheduleDocument


def _document() -> ScheduleDocument:
    return ScheduleDocument(
        staff_list=[
            Staff(1, "Aoki", shift_system=ShiftSystem.TWO_SHIFT),
            Staff(2, "Baba", shift_system=ShiftSystem.THREE_SHIFT),
            Staff(3, "Chiba", shift_system=ShiftSystem.THREE_SHIFT),
        ],
        current_date=date(2024, 4, 1),
        settings=AppSettings(target_night=1, target_late=1, target_day_weekday=2, target_day_weekend=2),
    )


# ---------- staff ----------

def test_add_staff_gets_next_id():
    document = _document()
    person = roster.add_staff(document, "  Doi ", shift_system="2shift")
    assert person.id == 4
    assert person.name == "Doi"
    assert person.shift_system == ShiftSystem.TWO_SHIFT
    assert document.staff_list[-1] == person


def test_add_staff_requires_name():
    with pytest.raises(ValueError):
        roster.add_staff(_document(), "   ")


def test_update_staff():
    document = _document()
    updated = roster.update_staff(document, 2, name="Baba K", shift_system="2shift")
    assert document.staff_list[1] == updated
    assert updated.is_two_shift

    with pytest.raises(ValueError):
        roster.update_staff(document, 2, id=9)
    with pytest.raises(ValueError):
        roster.update_staff(document, 42, name="Nobody")


def test_remove_staff_cascades():
    document = _document()
    document.schedule = {CellKey(2, 1): ShiftType.DAY, CellKey(3, 1): ShiftType.NIGHT}
    document.locked_cells = {CellKey(2, 1), CellKey(3, 1)}
    document.ng_pairs = [NgPair(2, 3, id=1), NgPair(1, 3, id=2)]

    roster.remove_staff(document, 2)

    assert [s.id for s in document.staff_list] == [1, 3]
    assert document.schedule == {CellKey(3, 1): ShiftType.NIGHT}
    assert document.locked_cells == {CellKey(3, 1)}
    assert document.ng_pairs == [NgPair(1, 3, id=2)]


def test_set_staff_list_cascades_removed_ids():
    document = _document()
    document.schedule = {CellKey(3, 4): ShiftType.LATE}
    roster.set_staff_list(document, document.staff_list[:2])
    assert document.schedule == {}

    with pytest.raises(ValueError):
        roster.set_staff_list(document, [Staff(1, "A"), Staff(1, "B")])


# ---------- NG pairs ----------

def test_add_ng_pair_rules():
    document = _document()
    pair = roster.add_ng_pair(document, 2, 3)
    assert pair.id == 1

    with pytest.raises(ValueError):
        roster.add_ng_pair(document, 3, 2)
    with pytest.raises(ValueError):
        roster.add_ng_pair(document, 1, 1)
    with pytest.raises(ValueError):
        roster.add_ng_pair(document, 1, 99)

    assert roster.add_ng_pair(document, 1, 2).id == 2


def test_remove_ng_pair():
    document = _document()
    pair = roster.add_ng_pair(document, 1, 2)
    roster.remove_ng_pair(document, pair.id)
    assert document.ng_pairs == []

    with pytest.raises(ValueError):
        roster.remove_ng_pair(document, pair.id)


# ---------- cells ----------

def test_manual_shift_sets_and_locks():
    document = _document()
    roster.apply_manual_shift(document, 1, 10, "paid")
    assert document.schedule[CellKey(1, 10)] == ShiftType.PAID
    assert CellKey(1, 10) in document.locked_cells


def test_three_shift_night_adds_day_before():
    document = _document()
    roster.apply_manual_shift(document, 2, 10, "night")
    assert document.schedule[CellKey(2, 9)] == ShiftType.DAY
    assert CellKey(2, 9) not in document.locked_cells


def test_three_shift_night_keeps_existing_neighbour():
    document = _document()
    document.schedule[CellKey(2, 9)] = ShiftType.OFF
    roster.apply_manual_shift(document, 2, 10, "night")
    assert document.schedule[CellKey(2, 9)] == ShiftType.OFF


def test_two_shift_night_leaves_day_before_alone():
    document = _document()
    roster.apply_manual_shift(document, 1, 10, "night")
    assert CellKey(1, 9) not in document.schedule


def test_request_mode_caps_night_and_late():
    document = _document()
    roster.apply_manual_shift(document, 2, 10, "night", request_mode=True)

    with pytest.raises(ValueError):
        roster.apply_manual_shift(document, 3, 10, "night", request_mode=True)
    # Re-applying the same shift to the same cell is not a new request
    roster.apply_manual_shift(document, 2, 10, "night", request_mode=True)
    # Outside request mode the cap does not apply
    roster.apply_manual_shift(document, 3, 10, "night")
    assert document.schedule[CellKey(3, 10)] == ShiftType.NIGHT


def test_manual_shift_rejects_bad_cells():
    document = _document()
    with pytest.raises(ValueError):
        roster.apply_manual_shift(document, 1, 31, "day")
    with pytest.raises(ValueError):
        roster.apply_manual_shift(document, 99, 1, "day")
    with pytest.raises(ValueError):
        roster.apply_manual_shift(document, 1, 1, "")


def test_erase_and_clear():
    document = _document()
    roster.apply_manual_shift(document, 1, 3, "off")
    roster.apply_manual_shift(document, 2, 4, "day")

    roster.erase_cell(document, 1, 3)
    assert CellKey(1, 3) not in document.schedule
    assert CellKey(1, 3) not in document.locked_cells

    roster.clear_schedule(document)
    assert document.schedule == {}
    assert document.locked_cells == set()
