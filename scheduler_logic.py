"""
Core Scheduler Logic for the Nurse Shift Scheduling System.
Implements the monthly shift generator: rotation rules for two-shift and
three-shift staff, forbidden night pairings, locked cells and fairness caps.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Union
import logging
import math
import random

from utils import (
    count_weekend_days,
    get_days_in_month,
    get_saturdays_with_sunday,
    is_weekend_or_holiday,
)

logger = logging.getLogger(__name__)


class ShiftType(str, Enum):
    DAY = "day"
    LATE = "late"
    NIGHT = "night"
    OFF = "off"
    PAID = "paid"


class ShiftCategory(str, Enum):
    WORK = "work"
    LATE = "late"
    NIGHT = "night"
    OFF = "off"


class ShiftSystem(str, Enum):
    TWO_SHIFT = "2shift"
    THREE_SHIFT = "3shift"


# A schedule cell holds a built-in ShiftType or the code of a custom shift
ShiftValue = Union[ShiftType, str]

BUILTIN_CATEGORIES = {
    ShiftType.DAY: ShiftCategory.WORK,
    ShiftType.LATE: ShiftCategory.LATE,
    ShiftType.NIGHT: ShiftCategory.NIGHT,
    ShiftType.OFF: ShiftCategory.OFF,
    ShiftType.PAID: ShiftCategory.OFF,
}

# Maximum run of consecutive work days for anyone
MAX_CONSECUTIVE_WORK = 5

# Per-staff monthly counts above these are flagged in the statistics
MAX_NIGHT_PER_STAFF = 5
MAX_LATE_PER_STAFF = 5

# Custom shift codes registered at runtime: code -> category
_custom_categories: Dict[str, ShiftCategory] = {}


@dataclass
class ShiftDef:
    """Display definition of a shift type, as offered in the editor palette."""
    id: str
    name: str
    symbol: str
    color: str
    category: ShiftCategory = ShiftCategory.WORK


DEFAULT_SHIFTS = [
    ShiftDef("day", "Day", "日", "#FFEDD5", ShiftCategory.WORK),
    ShiftDef("late", "Late", "準", "#F3E8FF", ShiftCategory.LATE),
    ShiftDef("night", "Night", "深", "#E0E7FF", ShiftCategory.NIGHT),
    ShiftDef("off", "Off", "休", "#F3F4F6", ShiftCategory.OFF),
    ShiftDef("paid", "Paid Leave", "有", "#FCE7F3", ShiftCategory.OFF),
]


def register_custom_shift(code: str, category: ShiftCategory = ShiftCategory.WORK) -> None:
    """Register a custom shift code. Built-in codes keep their fixed category."""
    if code in {s.value for s in ShiftType}:
        return
    _custom_categories[code] = category


def clear_custom_shifts() -> None:
    _custom_categories.clear()


def parse_shift(value) -> Optional[ShiftValue]:
    """Convert a raw cell value to a ShiftType (or custom code). Empty means unassigned."""
    if value is None or value == "":
        return None
    if isinstance(value, ShiftType):
        return value
    try:
        return ShiftType(value)
    except ValueError:
        return str(value)


def shift_code(shift: ShiftValue) -> str:
    """Plain string code of a shift, for display and JSON."""
    if isinstance(shift, ShiftType):
        return shift.value
    return str(shift)


def get_shift_category(shift: Optional[ShiftValue]) -> Optional[ShiftCategory]:
    parsed = parse_shift(shift)
    if parsed is None:
        return None
    if isinstance(parsed, ShiftType):
        return BUILTIN_CATEGORIES[parsed]
    return _custom_categories.get(parsed, ShiftCategory.WORK)


def is_work(shift: Optional[ShiftValue]) -> bool:
    category = get_shift_category(shift)
    return category is not None and category != ShiftCategory.OFF


def is_off_category(shift: Optional[ShiftValue]) -> bool:
    return get_shift_category(shift) == ShiftCategory.OFF


def is_night_type(shift: Optional[ShiftValue]) -> bool:
    return get_shift_category(shift) in (ShiftCategory.LATE, ShiftCategory.NIGHT)


class CellKey(NamedTuple):
    """Schedule cell address: one staff member on one day of the month."""
    staff_id: int
    day: int

    def to_token(self) -> str:
        return f"{self.staff_id}_{self.day}"

    @classmethod
    def from_token(cls, token: str) -> "CellKey":
        staff_part, day_part = token.rsplit("_", 1)
        return cls(int(staff_part), int(day_part))


Schedule = Dict[CellKey, ShiftValue]


def as_cell_key(key) -> CellKey:
    """Accept a CellKey, a (staff_id, day) tuple or a "staffId_day" token."""
    if isinstance(key, CellKey):
        return key
    if isinstance(key, str):
        return CellKey.from_token(key)
    staff_id, day = key
    return CellKey(int(staff_id), int(day))


@dataclass(frozen=True)
class Staff:
    """A staff member and the rotation system they work under."""
    id: int
    name: str
    role: str = "Nurse"
    shift_system: ShiftSystem = ShiftSystem.THREE_SHIFT

    @property
    def is_two_shift(self) -> bool:
        return self.shift_system == ShiftSystem.TWO_SHIFT

    @property
    def is_three_shift(self) -> bool:
        return self.shift_system == ShiftSystem.THREE_SHIFT


@dataclass(frozen=True)
class NgPair:
    """Two staff members who must never share a night-type shift on the same day."""
    staff1: int
    staff2: int
    id: Optional[int] = None

    def partner_of(self, staff_id: int) -> Optional[int]:
        if self.staff1 == staff_id:
            return self.staff2
        if self.staff2 == staff_id:
            return self.staff1
        return None

    def matches(self, a: int, b: int) -> bool:
        """True if this pair joins a and b, in either order."""
        return {self.staff1, self.staff2} == {a, b}


@dataclass
class AppSettings:
    """Per-day headcount targets."""
    target_night: int = 4
    target_late: int = 4
    target_day_weekday: int = 14
    target_day_weekend: int = 8


class Scheduler:
    """
    Monthly shift generator.

    Starting from the locked cells of the caller's schedule it runs a lock
    propagation pre-pass and then five ordered phases over one working
    schedule:

    Phase 1:   Night and late shifts, day by day
    Phase 1.5: Saturday/Sunday off pairs
    Phase 2:   Day-shift fill on weekends and holidays
    Phase 3:   Weekday off-quota balancing
    Phase 4:   Residual fill of remaining weekday cells

    The result is a greedy heuristic. Shortfalls in one phase are absorbed by
    the later ones and never raised.
    """

    def __init__(
        self,
        year: int,
        month: int,
        staff: List[Staff],
        settings: AppSettings,
        ng_pairs: Optional[Iterable[NgPair]] = None,
        holidays: Optional[Iterable[int]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.year = year
        self.month = month
        self.staff = list(staff)
        self.ng_pairs = list(ng_pairs or [])
        self.holidays = set(holidays or ())
        self.rng = rng or random.Random()

        self.target_night = max(0, int(settings.target_night))
        self.target_late = max(0, int(settings.target_late))
        self.target_day_weekday = max(0, int(settings.target_day_weekday))
        self.target_day_weekend = max(0, int(settings.target_day_weekend))

        self.num_days = get_days_in_month(year, month)
        self.days = list(range(1, self.num_days + 1))
        self.holiday_days = [
            d for d in self.days if is_weekend_or_holiday(year, month, d, self.holidays)
        ]
        holiday_set = set(self.holiday_days)
        self.weekdays = [d for d in self.days if d not in holiday_set]
        self.saturdays = get_saturdays_with_sunday(year, month)

        self.staff_2shift = [s for s in self.staff if s.is_two_shift]
        self.staff_3shift = [s for s in self.staff if s.is_three_shift]

        # Working schedule: (staff_id, day) -> shift
        self.schedule: Schedule = {}
        self.locked: Set[CellKey] = set()

        self._calculate_limits()

    def _calculate_limits(self):
        """Per-staff monthly caps used by the balancing selector."""
        total_night_slots = self.num_days * self.target_night
        total_late_slots = self.num_days * self.target_late

        self.max_night_3shift = self._calculate_limit(total_night_slots, len(self.staff_3shift))
        self.max_late_2shift = self._calculate_limit(total_late_slots, len(self.staff_2shift))
        self.max_late_3shift = self._calculate_limit(total_late_slots, len(self.staff_3shift))

    @staticmethod
    def _calculate_limit(total_slots: int, staff_count: int) -> int:
        if staff_count == 0:
            return 0
        return math.ceil(total_slots / staff_count)

    # ==================== SCHEDULE ACCESS ====================

    def get_shift(self, staff_id: int, day: int) -> Optional[ShiftValue]:
        return self.schedule.get(CellKey(staff_id, day))

    def _set_shift(self, staff_id: int, day: int, shift: ShiftValue):
        if 1 <= day <= self.num_days:
            self.schedule[CellKey(staff_id, day)] = shift

    def _set_if_empty(self, staff_id: int, day: int, shift: ShiftValue):
        if 1 <= day <= self.num_days and self.get_shift(staff_id, day) is None:
            self.schedule[CellKey(staff_id, day)] = shift

    def _is_locked(self, staff_id: int, day: int) -> bool:
        return CellKey(staff_id, day) in self.locked

    def count_shift(self, day: int, shift: ShiftValue) -> int:
        """Number of staff holding exactly this shift on a day."""
        return sum(1 for s in self.staff if self.get_shift(s.id, day) == shift)

    def count_staff_total(self, staff_id: int, shift: ShiftValue) -> int:
        """Number of days this month a staff member holds exactly this shift."""
        return sum(1 for d in self.days if self.get_shift(staff_id, d) == shift)

    # ==================== CONSTRAINT PREDICATES ====================

    def would_exceed_consecutive_work(self, staff_id: int, day: int, length: int = 1) -> bool:
        """
        Check whether committing a block of `length` work days starting at
        `day` would create a run longer than MAX_CONSECUTIVE_WORK.

        Committed neighbour cells are taken as they are; the new block is
        hypothetical.
        """
        back_count = 0
        for i in range(1, MAX_CONSECUTIVE_WORK + 1):
            if day - i < 1:
                break
            if is_work(self.get_shift(staff_id, day - i)):
                back_count += 1
            else:
                break

        end_day = day + length - 1
        forward_count = 0
        for i in range(1, MAX_CONSECUTIVE_WORK + 1):
            if end_day + i > self.num_days:
                break
            if is_work(self.get_shift(staff_id, end_day + i)):
                forward_count += 1
            else:
                break

        return back_count + length + forward_count > MAX_CONSECUTIVE_WORK

    def has_ng_conflict(self, staff_id: int, day: int, shift: ShiftValue) -> bool:
        """True if a forbidden partner already holds a night-type shift on this day."""
        if not is_night_type(shift):
            return False
        for pair in self.ng_pairs:
            partner_id = pair.partner_of(staff_id)
            if partner_id is None:
                continue
            if is_night_type(self.get_shift(partner_id, day)):
                return True
        return False

    # ==================== BALANCING SELECTOR ====================

    def select_best_candidate(
        self, candidates: List[Staff], shift: ShiftValue, strict_limit: int
    ) -> Optional[Staff]:
        """
        Pick the candidate with the fewest monthly assignments of `shift`.

        Candidates at or above the cap are dropped first; if that empties the
        pool the cap is relaxed by one, and failing that the whole pool is used.
        Ties are broken at random.
        """
        if not candidates:
            return None

        counts = {s.id: self.count_staff_total(s.id, shift) for s in candidates}

        valid = [s for s in candidates if counts[s.id] < strict_limit]
        if not valid:
            valid = [s for s in candidates if counts[s.id] < strict_limit + 1]
        if not valid:
            valid = list(candidates)

        min_count = min(counts[s.id] for s in valid)
        best = [s for s in valid if counts[s.id] == min_count]
        return self.rng.choice(best)

    def _balance_sort(self, candidates: List[Staff], shift: ShiftValue) -> List[Staff]:
        """Order candidates by monthly count of `shift`, random among equals."""
        shuffled = list(candidates)
        self.rng.shuffle(shuffled)
        return sorted(shuffled, key=lambda s: self.count_staff_total(s.id, shift))

    # ==================== LOCK PROPAGATION ====================

    def _propagate_locks(self):
        """Force the neighbour shifts implied by each locked cell's rotation."""
        for person in self.staff:
            for day in self.days:
                if not self._is_locked(person.id, day):
                    continue
                shift = self.get_shift(person.id, day)
                if shift is None:
                    continue

                if person.is_three_shift and shift == ShiftType.NIGHT:
                    self._propagate_three_shift_night(person.id, day)
                elif person.is_three_shift and shift == ShiftType.LATE:
                    self._propagate_three_shift_late(person.id, day)
                elif person.is_two_shift and shift == ShiftType.NIGHT:
                    if day > 1 and not self._is_locked(person.id, day - 1):
                        self._set_shift(person.id, day - 1, ShiftType.LATE)
                    if day < self.num_days and not self._is_locked(person.id, day + 1):
                        self._set_shift(person.id, day + 1, ShiftType.OFF)
                elif person.is_two_shift and shift == ShiftType.LATE:
                    if day < self.num_days and not self._is_locked(person.id, day + 1):
                        self._set_shift(person.id, day + 1, ShiftType.NIGHT)

    def _propagate_three_shift_night(self, staff_id: int, day: int):
        if day > 1 and not self._is_locked(staff_id, day - 1):
            self._set_shift(staff_id, day - 1, ShiftType.DAY)

        next_day = day + 1
        if next_day > self.num_days or self._is_locked(staff_id, next_day):
            return
        if self.count_shift(next_day, ShiftType.LATE) < self.target_late:
            self._set_shift(staff_id, next_day, ShiftType.LATE)
            if day + 2 <= self.num_days and not self._is_locked(staff_id, day + 2):
                self._set_shift(staff_id, day + 2, ShiftType.OFF)
        else:
            self._set_shift(staff_id, next_day, ShiftType.OFF)

    def _propagate_three_shift_late(self, staff_id: int, day: int):
        if day < self.num_days and not self._is_locked(staff_id, day + 1):
            self._set_shift(staff_id, day + 1, ShiftType.OFF)
        if day > 1 and not self._is_locked(staff_id, day - 1):
            self._set_shift(staff_id, day - 1, ShiftType.NIGHT)
            if day > 2 and not self._is_locked(staff_id, day - 2):
                self._set_shift(staff_id, day - 2, ShiftType.DAY)

    # ==================== MAIN ENTRY ====================

    def _to_month_cell(self, key) -> Optional[CellKey]:
        """Parse an input cell key; unreadable keys and days outside the month are dropped."""
        try:
            cell = as_cell_key(key)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unreadable cell key {key!r}")
            return None
        if not 1 <= cell.day <= self.num_days:
            logger.warning(f"Ignoring cell {cell.to_token()}: day outside {self.year}-{self.month:02d}")
            return None
        return cell

    def generate(self, current_schedule: Dict, locked_cells: Iterable) -> Schedule:
        """
        Generate a complete schedule for the month.

        Args:
            current_schedule: Mapping (staff_id, day) -> shift. Only locked
                cells are kept; everything else is regenerated.
            locked_cells: Cells the generator must not overwrite.

        Returns:
            A new mapping CellKey -> shift covering every staff member and day.
        """
        self.locked = set()
        for key in locked_cells:
            cell = self._to_month_cell(key)
            if cell is not None:
                self.locked.add(cell)

        self.schedule = {}
        for key, value in current_schedule.items():
            try:
                key = as_cell_key(key)
            except (TypeError, ValueError):
                logger.debug(f"Skipping unreadable schedule key {key!r}")
                continue
            if key not in self.locked:
                continue
            shift = parse_shift(value)
            if shift is not None:
                self.schedule[key] = shift

        logger.info(
            f"Generating {self.year}-{self.month:02d} for {len(self.staff)} staff "
            f"({len(self.staff_2shift)} two-shift, {len(self.staff_3shift)} three-shift), "
            f"{len(self.schedule)} locked cells"
        )

        self._propagate_locks()

        # ========== PHASE 1: NIGHT AND LATE ==========
        for day in self.days:
            self._phase1_assign_nights(day)

        # ========== PHASE 1.5: WEEKEND OFF PAIRS ==========
        self._phase1_5_assign_weekend_offs(1)
        self._phase1_5_assign_weekend_offs(2)

        # ========== PHASE 2: WEEKEND / HOLIDAY DAY SHIFTS ==========
        self._phase2_fill_holidays()

        # ========== PHASE 3: WEEKDAY OFF QUOTA ==========
        self._phase3_balance_weekday_offs()

        # ========== PHASE 4: RESIDUAL FILL ==========
        self._phase4_fill_remaining()

        return dict(self.schedule)

    # ==================== PHASE 1 ====================

    def _phase1_assign_nights(self, day: int):
        """PHASE 1: Three-shift nights, then two-shift lates, then three-shift lates."""
        self._assign_three_shift_nights(day)
        self._assign_two_shift_lates(day)
        self._assign_three_shift_lates(day)

    def _can_take_three_shift_night(self, person: Staff, day: int) -> bool:
        if self.get_shift(person.id, day) is not None:
            return False
        if self.get_shift(person.id, day + 1) is not None:
            return False
        after = self.get_shift(person.id, day + 2)
        if after is not None and not is_off_category(after):
            return False

        # Night needs a day shift (existing or new) on the day before
        block_start = day
        if day > 1:
            prev = self.get_shift(person.id, day - 1)
            if prev is not None and prev != ShiftType.DAY:
                return False
            if prev is None:
                block_start = day - 1
        block_length = day - block_start + 1
        if day < self.num_days and self.count_shift(day + 1, ShiftType.LATE) < self.target_late:
            block_length += 1  # the late that will follow
        if self.would_exceed_consecutive_work(person.id, block_start, block_length):
            return False

        return not self.has_ng_conflict(person.id, day, ShiftType.NIGHT)

    def _assign_three_shift_nights(self, day: int) -> int:
        needed = max(0, self.target_night - self.count_shift(day, ShiftType.NIGHT))
        if needed == 0:
            return 0

        pool = [s for s in self.staff_3shift if self._can_take_three_shift_night(s, day)]
        assigned = 0
        for _ in range(needed):
            # Re-check: picks made earlier today may create new NG conflicts
            valid_pool = [s for s in pool if not self.has_ng_conflict(s.id, day, ShiftType.NIGHT)]
            person = self.select_best_candidate(valid_pool, ShiftType.NIGHT, self.max_night_3shift)
            if person is None:
                logger.debug(f"Day {day}: no three-shift candidate for night ({needed - assigned} short)")
                break

            if day > 1 and self.get_shift(person.id, day - 1) is None:
                self._set_shift(person.id, day - 1, ShiftType.DAY)
            self._set_shift(person.id, day, ShiftType.NIGHT)

            if day < self.num_days:
                late_full = self.count_shift(day + 1, ShiftType.LATE) >= self.target_late
                if late_full or self.has_ng_conflict(person.id, day + 1, ShiftType.LATE):
                    self._set_if_empty(person.id, day + 1, ShiftType.OFF)
                else:
                    self._set_if_empty(person.id, day + 1, ShiftType.LATE)
                    self._set_if_empty(person.id, day + 2, ShiftType.OFF)

            pool.remove(person)
            assigned += 1
        return assigned

    def _can_take_two_shift_late(self, person: Staff, day: int) -> bool:
        if self.get_shift(person.id, day) is not None:
            return False
        if day < self.num_days:
            following = self.get_shift(person.id, day + 1)
            if following is not None and following != ShiftType.NIGHT:
                return False
            if self.has_ng_conflict(person.id, day + 1, ShiftType.NIGHT):
                return False
        after = self.get_shift(person.id, day + 2)
        if after is not None and not is_off_category(after):
            return False
        if self.would_exceed_consecutive_work(person.id, day, 2):
            return False
        if self.has_ng_conflict(person.id, day, ShiftType.LATE):
            return False
        if day < self.num_days and self.count_shift(day + 1, ShiftType.NIGHT) >= self.target_night:
            return False
        return True

    def _assign_two_shift_lates(self, day: int) -> int:
        """Two-shift staff always work late -> night -> off."""
        needed = max(0, self.target_late - self.count_shift(day, ShiftType.LATE))
        if needed == 0:
            return 0

        pool = [s for s in self.staff_2shift if self._can_take_two_shift_late(s, day)]
        assigned = 0
        while needed > 0:
            if day < self.num_days and self.count_shift(day + 1, ShiftType.NIGHT) >= self.target_night:
                break

            valid_pool = [
                s for s in pool
                if not self.has_ng_conflict(s.id, day, ShiftType.LATE)
                and (day >= self.num_days or not self.has_ng_conflict(s.id, day + 1, ShiftType.NIGHT))
            ]
            person = self.select_best_candidate(valid_pool, ShiftType.LATE, self.max_late_2shift)
            if person is None:
                logger.debug(f"Day {day}: no two-shift candidate for late ({needed} short)")
                break

            self._set_shift(person.id, day, ShiftType.LATE)
            self._set_shift(person.id, day + 1, ShiftType.NIGHT)
            self._set_if_empty(person.id, day + 2, ShiftType.OFF)

            pool.remove(person)
            needed -= 1
            assigned += 1
        return assigned

    def _can_take_three_shift_late(self, person: Staff, day: int) -> bool:
        if self.get_shift(person.id, day) is not None:
            return False
        following = self.get_shift(person.id, day + 1)
        if following is not None and not is_off_category(following):
            return False
        if self.would_exceed_consecutive_work(person.id, day, 1):
            return False
        return not self.has_ng_conflict(person.id, day, ShiftType.LATE)

    def _assign_three_shift_lates(self, day: int) -> int:
        needed = max(0, self.target_late - self.count_shift(day, ShiftType.LATE))
        if needed == 0:
            return 0

        pool = [s for s in self.staff_3shift if self._can_take_three_shift_late(s, day)]
        assigned = 0
        for _ in range(needed):
            valid_pool = [s for s in pool if not self.has_ng_conflict(s.id, day, ShiftType.LATE)]
            person = self.select_best_candidate(valid_pool, ShiftType.LATE, self.max_late_3shift)
            if person is None:
                logger.debug(f"Day {day}: no three-shift candidate for late ({needed - assigned} short)")
                break

            self._set_shift(person.id, day, ShiftType.LATE)
            self._set_if_empty(person.id, day + 1, ShiftType.OFF)

            pool.remove(person)
            assigned += 1
        return assigned

    # ==================== PHASE 1.5 ====================

    def _can_assign_weekend_off(self, day: int) -> bool:
        """One more off must leave enough people free for the weekend day shift."""
        unavailable = 0
        for person in self.staff:
            shift = self.get_shift(person.id, day)
            if is_off_category(shift) or is_night_type(shift):
                unavailable += 1
        return len(self.staff) - (unavailable + 1) >= self.target_day_weekend

    def _phase1_5_assign_weekend_offs(self, target_pairs: int):
        """
        PHASE 1.5: Give each staff member up to `target_pairs` Saturday+Sunday
        off pairs, chosen from weekends where both cells are still empty.
        """
        staff_order = list(self.staff)
        self.rng.shuffle(staff_order)
        granted = 0

        for person in staff_order:
            current_pairs = sum(
                1 for sat in self.saturdays
                if is_off_category(self.get_shift(person.id, sat))
                and is_off_category(self.get_shift(person.id, sat + 1))
            )
            if current_pairs >= target_pairs:
                continue

            saturdays = list(self.saturdays)
            self.rng.shuffle(saturdays)
            for sat in saturdays:
                if current_pairs >= target_pairs:
                    break
                if self.get_shift(person.id, sat) is not None or self.get_shift(person.id, sat + 1) is not None:
                    continue
                if self._can_assign_weekend_off(sat) and self._can_assign_weekend_off(sat + 1):
                    self._set_shift(person.id, sat, ShiftType.OFF)
                    self._set_shift(person.id, sat + 1, ShiftType.OFF)
                    current_pairs += 1
                    granted += 1

        logger.debug(f"Weekend off pass {target_pairs}: {granted} pairs granted")

    # ==================== PHASE 2 ====================

    def _phase2_fill_holidays(self):
        """PHASE 2: Bring weekend/holiday day shifts up to target; everyone else is off."""
        for day in self.holiday_days:
            if self.count_shift(day, ShiftType.DAY) < self.target_day_weekend:
                available = [s for s in self.staff if self.get_shift(s.id, day) is None]
                for person in self._balance_sort(available, ShiftType.DAY):
                    if self.count_shift(day, ShiftType.DAY) >= self.target_day_weekend:
                        break
                    if not self.would_exceed_consecutive_work(person.id, day, 1):
                        self._set_shift(person.id, day, ShiftType.DAY)
                    else:
                        self._set_shift(person.id, day, ShiftType.OFF)

            for person in self.staff:
                self._set_if_empty(person.id, day, ShiftType.OFF)

    # ==================== PHASE 3 ====================

    def _phase3_balance_weekday_offs(self):
        """
        PHASE 3: Top up each person's off days to the personal quota (the
        number of Saturdays and Sundays this month) using weekday cells,
        without pushing any weekday below its day-shift target.
        """
        off_target = count_weekend_days(self.year, self.month)

        weekday_capacity = {
            d: sum(1 for s in self.staff if self.get_shift(s.id, d) is None)
            for d in self.weekdays
        }

        staff_needs_off = []
        for person in self.staff:
            current_off = sum(1 for d in self.days if is_off_category(self.get_shift(person.id, d)))
            needed = max(0, off_target - current_off)
            if needed > 0:
                staff_needs_off.append({"id": person.id, "count": needed})

        granted = 0
        assigned = True
        while assigned:
            assigned = False
            self.rng.shuffle(staff_needs_off)
            for item in staff_needs_off:
                if item["count"] <= 0:
                    continue
                candidates = [
                    d for d in self.weekdays
                    if self.get_shift(item["id"], d) is None
                    and weekday_capacity[d] > self.target_day_weekday
                ]
                if not candidates:
                    continue
                day = self.rng.choice(candidates)
                self._set_shift(item["id"], day, ShiftType.OFF)
                weekday_capacity[day] -= 1
                item["count"] -= 1
                granted += 1
                assigned = True

        logger.debug(f"Weekday off balancing: {granted} offs granted (quota {off_target})")

    # ==================== PHASE 4 ====================

    def _phase4_fill_remaining(self):
        """PHASE 4: Every empty weekday cell becomes a day shift, or off if that breaks the run limit."""
        for day in self.weekdays:
            for person in self.staff:
                if self.get_shift(person.id, day) is not None:
                    continue
                if not self.would_exceed_consecutive_work(person.id, day, 1):
                    self._set_shift(person.id, day, ShiftType.DAY)
                else:
                    self._set_shift(person.id, day, ShiftType.OFF)

    # ==================== REPORTING ====================

    def get_staff_stats(self) -> Dict[int, dict]:
        return get_staff_stats(self.schedule, self.staff, self.year, self.month)

    def get_daily_stats(self) -> List[dict]:
        settings = AppSettings(
            self.target_night, self.target_late, self.target_day_weekday, self.target_day_weekend
        )
        return get_daily_stats(self.schedule, self.staff, self.year, self.month, settings, self.holidays)


def generate_schedule(
    current_schedule: Dict,
    locked_cells: Iterable,
    staff_list: List[Staff],
    year: int,
    month: int,
    settings: AppSettings,
    ng_pairs: Optional[Iterable[NgPair]] = None,
    holidays: Optional[Iterable[int]] = None,
    rng: Optional[random.Random] = None,
) -> Schedule:
    """
    Generate a complete monthly schedule.

    Args:
        current_schedule: Mapping (staff_id, day) -> shift
        locked_cells: Set of (staff_id, day) cells to preserve
        staff_list: Staff to schedule
        year: Calendar year
        month: Calendar month (1-12)
        settings: Per-day headcount targets
        ng_pairs: Forbidden night pairings
        holidays: Extra holiday day numbers treated like weekends
        rng: Random source; pass a seeded random.Random for reproducible runs

    Returns:
        New mapping CellKey -> shift covering every staff member and day
    """
    scheduler = Scheduler(
        year=year,
        month=month,
        staff=staff_list,
        settings=settings,
        ng_pairs=ng_pairs,
        holidays=holidays,
        rng=rng,
    )
    return scheduler.generate(current_schedule, locked_cells)


def get_staff_stats(schedule: Dict, staff_list: List[Staff], year: int, month: int) -> Dict[int, dict]:
    """Per-staff monthly counts of day, late, night and off (off includes paid leave)."""
    num_days = get_days_in_month(year, month)
    off_target = count_weekend_days(year, month)
    stats = {}
    for person in staff_list:
        counts = {"day": 0, "late": 0, "night": 0, "off": 0}
        for day in range(1, num_days + 1):
            shift = parse_shift(schedule.get(CellKey(person.id, day)))
            if shift == ShiftType.NIGHT:
                counts["night"] += 1
            elif shift == ShiftType.LATE:
                counts["late"] += 1
            elif shift == ShiftType.DAY:
                counts["day"] += 1
            elif is_off_category(shift):
                counts["off"] += 1
        counts["off_target"] = off_target
        counts["night_over_limit"] = counts["night"] > MAX_NIGHT_PER_STAFF
        counts["late_over_limit"] = counts["late"] > MAX_LATE_PER_STAFF
        stats[person.id] = counts
    return stats


def get_daily_stats(
    schedule: Dict,
    staff_list: List[Staff],
    year: int,
    month: int,
    settings: AppSettings,
    holidays: Optional[Iterable[int]] = None,
) -> List[dict]:
    """
    Per-day headcounts of day, late and night with target checks.

    Weekend/holiday day shifts must match the target exactly; weekday day
    shifts only need to reach it.
    """
    holidays = set(holidays or ())
    summary = []
    for day in range(1, get_days_in_month(year, month) + 1):
        counts = {"day": 0, "late": 0, "night": 0}
        for person in staff_list:
            shift = parse_shift(schedule.get(CellKey(person.id, day)))
            if isinstance(shift, ShiftType) and shift.value in counts:
                counts[shift.value] += 1

        is_holiday = is_weekend_or_holiday(year, month, day, holidays)
        if is_holiday:
            target_day = settings.target_day_weekend
            day_ok = counts["day"] == target_day
        else:
            target_day = settings.target_day_weekday
            day_ok = counts["day"] >= target_day

        summary.append({
            "day": day,
            "is_holiday": is_holiday,
            "day_count": counts["day"],
            "late_count": counts["late"],
            "night_count": counts["night"],
            "target_day": target_day,
            "day_ok": day_ok,
            "night_ok": counts["night"] == settings.target_night,
            "late_ok": counts["late"] == settings.target_late,
        })
    return summary


def create_staff_from_dataframe(df) -> List[Staff]:
    """
    Create Staff objects from a pandas DataFrame.

    Expected columns:
    - ID: int (optional; blank rows get the next free id)
    - Name: str
    - Role: str
    - ShiftSystem: "2shift" or "3shift"
    """
    staff = []
    used_ids: Set[int] = set()
    pending = []

    for _, row in df.iterrows():
        name = str(row.get("Name") or "").strip()
        if not name or name.lower() == "nan":
            continue

        role = str(row.get("Role", "") or "").strip()
        if not role or role.lower() == "nan":
            role = "Nurse"

        try:
            system = ShiftSystem(str(row.get("ShiftSystem", "3shift")).strip())
        except ValueError:
            system = ShiftSystem.THREE_SHIFT

        staff_id = None
        raw_id = row.get("ID")
        try:
            if raw_id is not None and str(raw_id).lower() != "nan":
                staff_id = int(raw_id)
        except (TypeError, ValueError):
            staff_id = None

        if staff_id is None or staff_id in used_ids:
            pending.append((len(staff), name, role, system))
            staff.append(None)
            continue

        used_ids.add(staff_id)
        staff.append(Staff(id=staff_id, name=name, role=role, shift_system=system))

    next_id = max(used_ids, default=0) + 1
    for index, name, role, system in pending:
        staff[index] = Staff(id=next_id, name=name, role=role, shift_system=system)
        next_id += 1

    return staff
