"""
Utility functions for the Nurse Shift Scheduling System.
Handles calendar classification, date parsing, and DataFrame helpers.
"""

import calendar
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
import pandas as pd


def get_days_in_month(year: int, month: int) -> int:
    """Number of days in a month (month is 1-12)."""
    return calendar.monthrange(year, month)[1]


def get_month_days(year: int, month: int) -> List[int]:
    """Get all day numbers in a given month."""
    return list(range(1, get_days_in_month(year, month) + 1))


def get_month_dates(year: int, month: int) -> List[date]:
    """Get all dates in a given month."""
    return [date(year, month, day) for day in get_month_days(year, month)]


def is_weekend_day(year: int, month: int, day: int) -> bool:
    """Check if a day of the month is a Saturday or Sunday."""
    return date(year, month, day).weekday() in (5, 6)  # Saturday=5, Sunday=6


def is_weekend_or_holiday(
    year: int, month: int, day: int, holidays: Optional[Iterable[int]] = None
) -> bool:
    """Check if a day is a weekend or one of the given holiday day numbers."""
    if holidays and day in set(holidays):
        return True
    return is_weekend_day(year, month, day)


def get_weekend_days(year: int, month: int) -> List[int]:
    """Get all Saturday and Sunday day numbers in a month."""
    return [d for d in get_month_days(year, month) if is_weekend_day(year, month, d)]


def count_weekend_days(year: int, month: int) -> int:
    """Number of Saturdays and Sundays; this is each person's monthly off quota."""
    return len(get_weekend_days(year, month))


def get_saturdays_with_sunday(year: int, month: int) -> List[int]:
    """Saturdays whose Sunday also falls inside the month."""
    num_days = get_days_in_month(year, month)
    return [
        d for d in get_month_days(year, month)
        if date(year, month, d).weekday() == 5 and d + 1 <= num_days
    ]


def get_day_name(year: int, month: int, day: int) -> str:
    """Get abbreviated day name."""
    return date(year, month, day).strftime("%a")


def format_day_header(year: int, month: int, day: int) -> str:
    """Format a day for a table header."""
    return f"{day}\n{get_day_name(year, month, day)}"


def parse_day_list(day_str: str, year: int, month: int) -> List[int]:
    """
    Parse a comma-separated string of days into day numbers of the month.
    Supports formats:
    - "1,2,3" - individual days
    - "2026-01-01,2026-01-02" - full dates (only those inside the month)
    - "17-20" - day range (days 17, 18, 19, 20)
    Also supports full-width comma (，、) and semicolon (;) as separators.
    """
    if not day_str or day_str.strip() == "":
        return []

    # Handle "nan" string from pandas
    if day_str.strip().lower() == "nan":
        return []

    normalized = (
        day_str.replace("，", ",").replace("、", ",").replace(";", ",").replace("；", ",")
    )
    num_days = get_days_in_month(year, month)

    days = []
    for part in normalized.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                pieces = part.split("-")
                if len(pieces) == 2 and pieces[0].isdigit() and pieces[1].isdigit():
                    # Range format: start-end (e.g., "17-20")
                    start_day = int(pieces[0])
                    end_day = int(pieces[1])
                    days.extend(d for d in range(start_day, end_day + 1) if 1 <= d <= num_days)
                else:
                    d = date.fromisoformat(part)
                    if d.year == year and d.month == month:
                        days.append(d.day)
            else:
                day = int(part)
                if 1 <= day <= num_days:
                    days.append(day)
        except (ValueError, TypeError):
            continue
    return sorted(set(days))


def get_default_staff_data() -> pd.DataFrame:
    """Generate default staff data for demo purposes (35 nurses)."""
    count = 35
    data = {
        "ID": list(range(1, count + 1)),
        "Name": [f"Ns.{i + 1:02d}" for i in range(count)],
        "Role": ["Manager" if i < 3 else "Nurse" for i in range(count)],
        "ShiftSystem": ["2shift" if i % 2 == 0 else "3shift" for i in range(count)],
    }
    return pd.DataFrame(data)


def staff_to_dataframe(staff_list) -> pd.DataFrame:
    """Inverse of create_staff_from_dataframe, for the staff editor."""
    rows = [
        {
            "ID": s.id,
            "Name": s.name,
            "Role": s.role,
            "ShiftSystem": s.shift_system.value,
        }
        for s in staff_list
    ]
    return pd.DataFrame(rows, columns=["ID", "Name", "Role", "ShiftSystem"])


def _shift_lookup(shift_defs=None) -> Dict[str, object]:
    from scheduler_logic import DEFAULT_SHIFTS

    lookup = {d.id: d for d in DEFAULT_SHIFTS}
    for shift_def in shift_defs or []:
        lookup[shift_def.id] = shift_def
    return lookup


def get_shift_symbol(shift, shift_defs=None) -> str:
    """Get display symbol for a shift (empty string for an unassigned cell)."""
    from scheduler_logic import shift_code

    if shift is None or shift == "":
        return ""
    code = shift_code(shift)
    shift_def = _shift_lookup(shift_defs).get(code)
    return shift_def.symbol if shift_def else code


def get_shift_color(shift, shift_defs=None) -> str:
    """Get color code for a shift (for styling)."""
    from scheduler_logic import shift_code

    if shift is None or shift == "":
        return "#FFFFFF"
    shift_def = _shift_lookup(shift_defs).get(shift_code(shift))
    return shift_def.color if shift_def else "#FFFFFF"


def create_schedule_dataframe(
    staff_list, year: int, month: int, schedule: dict, shift_defs=None
) -> pd.DataFrame:
    """
    Create a DataFrame from a schedule dictionary.

    Args:
        staff_list: List of Staff
        year, month: Month being displayed
        schedule: Dict mapping CellKey -> shift
        shift_defs: Optional extra shift definitions for custom symbols

    Returns:
        DataFrame with staff names as rows and day numbers as columns
    """
    from scheduler_logic import CellKey

    data = {}
    for day in get_month_days(year, month):
        data[f"{day}"] = [
            get_shift_symbol(schedule.get(CellKey(s.id, day)), shift_defs) for s in staff_list
        ]

    df = pd.DataFrame(data, index=[s.name for s in staff_list])
    df.index.name = "Staff"
    return df


def create_statistics_dataframe(staff_list, staff_stats: dict) -> pd.DataFrame:
    """
    Create statistics DataFrame from per-staff stats.

    Args:
        staff_list: List of Staff, in display order
        staff_stats: Dict staff_id -> stats dict (see scheduler_logic.get_staff_stats)

    Returns:
        DataFrame with statistics
    """
    rows = []
    for person in staff_list:
        stats = staff_stats.get(person.id, {})
        rows.append({
            "Name": person.name,
            "System": person.shift_system.value,
            "Day": stats.get("day", 0),
            "Late": stats.get("late", 0),
            "Night": stats.get("night", 0),
            "Off": stats.get("off", 0),
            "Off Target": stats.get("off_target", 0),
            "Off Diff": stats.get("off", 0) - stats.get("off_target", 0),
        })

    return pd.DataFrame(rows)


def create_coverage_dataframe(daily_stats: List[dict]) -> pd.DataFrame:
    """Create the per-day headcount DataFrame from scheduler_logic.get_daily_stats."""
    rows = []
    for info in daily_stats:
        rows.append({
            "Day": info["day"],
            "Holiday": "Yes" if info["is_holiday"] else "",
            "Day #": info["day_count"],
            "Day Target": info["target_day"],
            "Late #": info["late_count"],
            "Night #": info["night_count"],
            "OK": info["day_ok"] and info["late_ok"] and info["night_ok"],
        })
    return pd.DataFrame(rows)


def validate_staff_data(df: pd.DataFrame) -> Tuple[bool, str]:
    """
    Validate staff DataFrame has required columns.

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_cols = ["Name", "ShiftSystem"]
    missing = [col for col in required_cols if col not in df.columns]

    if missing:
        return False, f"Missing required columns: {', '.join(missing)}"

    if df.empty:
        return False, "Staff list is empty"

    invalid = set(df["ShiftSystem"].dropna().astype(str)) - {"2shift", "3shift"}
    if invalid:
        return False, f"Unknown shift system(s): {', '.join(sorted(invalid))}"

    if "ID" in df.columns and df["ID"].dropna().duplicated().any():
        return False, "Duplicate staff IDs found"

    return True, ""


def export_schedule_to_csv(schedule_df: pd.DataFrame, stats_df: pd.DataFrame) -> str:
    """
    Export schedule and stats to CSV string.
    """
    output = "=== SHIFT SCHEDULE ===\n"
    output += schedule_df.to_csv()
    output += "\n\n=== STATISTICS ===\n"
    output += stats_df.to_csv(index=False)
    return output
