"""
Persistence for the Nurse Shift Scheduling System.
Saves the working state to a local JSON file and handles JSON import/export.
"""

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Set
import json
import logging
import os

from scheduler_logic import (
    DEFAULT_SHIFTS,
    AppSettings,
    CellKey,
    NgPair,
    ShiftCategory,
    ShiftDef,
    ShiftSystem,
    Staff,
    ShiftType,
    create_staff_from_dataframe,
    parse_shift,
    register_custom_shift,
    shift_code,
)
from utils import get_default_staff_data

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_FILE = BASE_DIR / "data" / "schedule_state.json"
DATA_FILE_ENV = "SHIFT_SCHEDULER_DATA"


@dataclass
class ScheduleDocument:
    """Everything the app keeps between sessions."""
    schedule: Dict[CellKey, object] = field(default_factory=dict)
    staff_list: List[Staff] = field(default_factory=list)
    shift_types: List[ShiftDef] = field(default_factory=lambda: list(DEFAULT_SHIFTS))
    locked_cells: Set[CellKey] = field(default_factory=set)
    ng_pairs: List[NgPair] = field(default_factory=list)
    current_date: date = field(default_factory=lambda: date.today().replace(day=1))
    settings: AppSettings = field(default_factory=AppSettings)
    holidays: List[int] = field(default_factory=list)

    @property
    def year(self) -> int:
        return self.current_date.year

    @property
    def month(self) -> int:
        return self.current_date.month


def default_document() -> ScheduleDocument:
    """A fresh document holding the demo staff list."""
    return ScheduleDocument(staff_list=create_staff_from_dataframe(get_default_staff_data()))


def get_data_file() -> Path:
    override = os.environ.get(DATA_FILE_ENV)
    return Path(override) if override else DEFAULT_DATA_FILE


def export_filename(document: ScheduleDocument) -> str:
    return f"schedule_{document.year}_{document.month:02d}.json"


# ---------- dict conversion ----------

def _staff_to_dict(person: Staff) -> dict:
    return {
        "id": person.id,
        "name": person.name,
        "role": person.role,
        "shiftSystem": person.shift_system.value,
    }


def _staff_from_dict(data: dict) -> Staff:
    try:
        system = ShiftSystem(data.get("shiftSystem", "3shift"))
    except ValueError:
        system = ShiftSystem.THREE_SHIFT
    return Staff(
        id=int(data["id"]),
        name=str(data.get("name", "")),
        role=str(data.get("role") or "Nurse"),
        shift_system=system,
    )


def _shift_def_to_dict(shift_def: ShiftDef) -> dict:
    return {
        "id": shift_def.id,
        "name": shift_def.name,
        "symbol": shift_def.symbol,
        "color": shift_def.color,
        "type": shift_def.category.value,
    }


def _shift_def_from_dict(data: dict) -> ShiftDef:
    try:
        category = ShiftCategory(data.get("type", "work"))
    except ValueError:
        category = ShiftCategory.WORK
    return ShiftDef(
        id=str(data["id"]),
        name=str(data.get("name", data["id"])),
        symbol=str(data.get("symbol", "")),
        color=str(data.get("color", "#FFFFFF")),
        category=category,
    )


def _settings_to_dict(settings: AppSettings) -> dict:
    return {
        "targetNight": settings.target_night,
        "targetLate": settings.target_late,
        "targetDayWeekday": settings.target_day_weekday,
        "targetDayWeekend": settings.target_day_weekend,
    }


def _settings_from_dict(data: dict) -> AppSettings:
    defaults = AppSettings()
    return AppSettings(
        target_night=int(data.get("targetNight", defaults.target_night)),
        target_late=int(data.get("targetLate", defaults.target_late)),
        target_day_weekday=int(data.get("targetDayWeekday", defaults.target_day_weekday)),
        target_day_weekend=int(data.get("targetDayWeekend", defaults.target_day_weekend)),
    )


def _parse_current_date(raw: Optional[str]) -> date:
    # Accepts "2024-04", "2024-04-01" and full ISO timestamps
    if not raw:
        return date.today().replace(day=1)
    text = str(raw)
    if len(text) == 7:
        text += "-01"
    return date.fromisoformat(text[:10]).replace(day=1)


def document_to_dict(document: ScheduleDocument) -> dict:
    schedule = {
        key.to_token(): shift_code(value)
        for key, value in sorted(document.schedule.items())
        if value is not None and value != ""
    }
    return {
        "schedule": schedule,
        "staffList": [_staff_to_dict(s) for s in document.staff_list],
        "shiftTypes": [_shift_def_to_dict(d) for d in document.shift_types],
        "lockedCells": {key.to_token(): True for key in sorted(document.locked_cells)},
        "ngPairs": [
            {"id": pair.id, "staff1": pair.staff1, "staff2": pair.staff2}
            for pair in document.ng_pairs
        ],
        "currentDate": document.current_date.isoformat(),
        "settings": _settings_to_dict(document.settings),
        "holidays": sorted(document.holidays),
    }


def _entries(data: dict, key: str) -> List[dict]:
    """The list section `key` of a document; every entry must be an object."""
    entries = data.get(key) or []
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise TypeError(f"\"{key}\" must be a list of objects")
    return entries


def document_from_dict(data: dict) -> ScheduleDocument:
    """
    Build a document from its JSON form. Missing sections fall back to
    defaults; custom shift types are registered so their category is known.
    """
    document = default_document()

    if "staffList" in data:
        document.staff_list = [_staff_from_dict(s) for s in _entries(data, "staffList")]

    if data.get("shiftTypes"):
        document.shift_types = [_shift_def_from_dict(d) for d in _entries(data, "shiftTypes")]
        builtin = {s.value for s in ShiftType}
        for shift_def in document.shift_types:
            if shift_def.id not in builtin:
                register_custom_shift(shift_def.id, shift_def.category)

    schedule = {}
    for token, value in (data.get("schedule") or {}).items():
        shift = parse_shift(value)
        if shift is not None:
            schedule[CellKey.from_token(token)] = shift
    document.schedule = schedule

    document.locked_cells = {
        CellKey.from_token(token)
        for token, locked in (data.get("lockedCells") or {}).items()
        if locked
    }
    raw_pairs = _entries(data, "ngPairs")
    next_id = max((int(p["id"]) for p in raw_pairs if p.get("id") is not None), default=0) + 1
    pairs = []
    for p in raw_pairs:
        pair_id = p.get("id")
        if pair_id is None:
            pair_id = next_id
            next_id += 1
        pairs.append(NgPair(staff1=int(p["staff1"]), staff2=int(p["staff2"]), id=int(pair_id)))
    document.ng_pairs = pairs
    document.current_date = _parse_current_date(data.get("currentDate"))
    if data.get("settings"):
        document.settings = _settings_from_dict(data["settings"])
    document.holidays = sorted({int(d) for d in data.get("holidays") or []})
    return document


# ---------- file storage ----------

def _safe_json_load(path: Path, default):
    if not path.exists():
        return default
    try:
        raw = path.read_text(encoding="utf-8").strip()
        if not raw:
            return default
        return json.loads(raw)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return default


def _safe_json_save(path: Path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def load_document(path: Optional[Path] = None) -> ScheduleDocument:
    """Load the saved state; a missing or unreadable file gives the default document."""
    path = Path(path) if path else get_data_file()
    data = _safe_json_load(path, default=None)
    if not isinstance(data, dict):
        logger.info(f"No saved state at {path}, starting from defaults")
        return default_document()
    try:
        document = document_from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Saved state at {path} is malformed ({e}), starting from defaults")
        return default_document()
    logger.info(f"Loaded state from {path}: {len(document.staff_list)} staff, {len(document.schedule)} cells")
    return document


def save_document(document: ScheduleDocument, path: Optional[Path] = None) -> Path:
    path = Path(path) if path else get_data_file()
    _safe_json_save(path, document_to_dict(document))
    logger.debug(f"Saved state to {path}")
    return path


def export_document_json(document: ScheduleDocument) -> str:
    return json.dumps(document_to_dict(document), ensure_ascii=False, indent=2)


def import_document_json(text) -> ScheduleDocument:
    """
    Parse an exported JSON backup.

    Raises:
        ValueError: if the text is not JSON or holds neither a schedule nor a staff list
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Not a valid JSON file: {e}") from e
    if not isinstance(data, dict) or ("schedule" not in data and "staffList" not in data):
        raise ValueError("File does not contain a schedule or staff list")
    try:
        document = document_from_dict(data)
    except (AttributeError, KeyError, TypeError) as e:
        raise ValueError(f"Malformed backup file: {e}") from e
    logger.info(f"Imported backup for {document.year}-{document.month:02d}")
    return document
