"""
Display preferences: KPI slots, objectives panel metrics and date preset.

Stored in a small versioned JSON file. Every reader tolerates missing or
malformed values by falling back to the defaults below.
"""

import json
import math
import os
from pathlib import Path
from typing import Optional

from services.metrics import MetricKey, SELECTABLE_METRICS
from services.date_ranges import DATE_PRESETS, DEFAULT_PRESET

SCHEMA_VERSION = 1

DATA_DIR = Path(os.getenv("PERFO_DATA_DIR", Path(__file__).parent.parent.parent / "data"))
PREFERENCES_FILE = DATA_DIR / "preferences.json"

KPI_SLOT_COUNT = 8
DEFAULT_KPI_SLOTS = ["spend", "revenue", "conversions", "clicks", "impressions", "ctr", "cpc", "cpm"]

DEFAULT_OBJECTIVES = {
    "obj1_metric": "conversions",
    "obj2_metric": "roas",
    "ind1_metric": "conversions",
    "ind2_metric": "roas",
    "obj1_target": 0.0,
    "obj2_target": 0.0,
}

SELECTABLE = {m.value for m in SELECTABLE_METRICS}


def _load_preferences() -> dict:
    """Load the preferences document, returning an empty one on any problem."""
    try:
        with open(PREFERENCES_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return {"schema_version": SCHEMA_VERSION}

    if not isinstance(data, dict):
        return {"schema_version": SCHEMA_VERSION}
    return data


def _save_preferences(data: dict):
    """Save the preferences document."""
    stored = data.get("schema_version")
    data["schema_version"] = max(SCHEMA_VERSION, stored) if isinstance(stored, int) else SCHEMA_VERSION
    PREFERENCES_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(PREFERENCES_FILE, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)


def _section(data: dict, name: str) -> dict:
    section = data.get(name)
    if not isinstance(section, dict):
        section = {}
        data[name] = section
    return section


def _metric_value(value) -> str:
    return value.value if isinstance(value, MetricKey) else value


def _is_selectable(value) -> bool:
    return isinstance(value, str) and value in SELECTABLE


def _slots_key(account_id: str, platform: str) -> str:
    return f"{account_id}:{platform}"


def normalize_slots(slots) -> list[str]:
    """
    Clean a KPI slot list: invalid entries take the default for their slot,
    duplicates are removed keeping the first occurrence.
    """
    if not isinstance(slots, list):
        slots = []

    cleaned = []
    for i in range(KPI_SLOT_COUNT):
        value = _metric_value(slots[i]) if i < len(slots) else None
        cleaned.append(value if _is_selectable(value) else DEFAULT_KPI_SLOTS[i])

    deduped = list(dict.fromkeys(cleaned))
    if len(deduped) < len(cleaned):
        dupes = sorted({m for m in cleaned if cleaned.count(m) > 1})
        print(f"[Preferences] Duplicate KPI slots removed: {dupes}")
    return deduped


def get_kpi_slots(account_id: str, platform: str = "all") -> list[str]:
    """KPI slots for an account and platform tab."""
    data = _load_preferences()
    stored = data.get("kpi_slots")
    slots = stored.get(_slots_key(account_id, platform)) if isinstance(stored, dict) else None
    if slots is None:
        return list(DEFAULT_KPI_SLOTS)
    return normalize_slots(slots)


def set_kpi_slots(account_id: str, platform: str, slots: list) -> list[str]:
    """Save KPI slots. Unknown metrics are rejected."""
    values = [_metric_value(s) for s in slots]
    invalid = [s for s in values if not _is_selectable(s)]
    if invalid:
        raise ValueError(f"Invalid metrics: {invalid}")

    cleaned = normalize_slots(values)
    data = _load_preferences()
    _section(data, "kpi_slots")[_slots_key(account_id, platform)] = cleaned
    _save_preferences(data)
    return cleaned


def _finite_or_zero(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def get_objectives(account_id: str) -> dict:
    """Objectives panel selection for an account, with defaults filled in."""
    data = _load_preferences()
    stored = data.get("objectives")
    saved = stored.get(account_id) if isinstance(stored, dict) else None
    if not isinstance(saved, dict):
        saved = {}

    result = dict(DEFAULT_OBJECTIVES)
    for key, default in DEFAULT_OBJECTIVES.items():
        if key not in saved:
            continue
        if key.endswith("_metric"):
            result[key] = saved[key] if _is_selectable(saved[key]) else default
        else:
            result[key] = _finite_or_zero(saved[key])
    return result


def set_objectives(account_id: str, **values) -> dict:
    """Update objectives panel values. Only known keys are stored."""
    current = get_objectives(account_id)

    for key, value in values.items():
        if key not in DEFAULT_OBJECTIVES or value is None:
            continue
        if key.endswith("_metric"):
            value = _metric_value(value)
            if not _is_selectable(value):
                raise ValueError(f"Invalid metric for {key}: {value}")
            current[key] = value
        else:
            current[key] = _finite_or_zero(value)

    data = _load_preferences()
    _section(data, "objectives")[account_id] = current
    _save_preferences(data)
    return current


def get_date_preset() -> str:
    """Last selected date preset."""
    preset = _load_preferences().get("date_preset")
    return preset if isinstance(preset, str) and preset in DATE_PRESETS else DEFAULT_PRESET


def set_date_preset(preset: str) -> str:
    """Save the selected date preset."""
    if not isinstance(preset, str) or preset not in DATE_PRESETS:
        raise ValueError(f"Invalid date preset: {preset}")
    data = _load_preferences()
    data["date_preset"] = preset
    _save_preferences(data)
    return preset


def get_all(account_id: Optional[str] = None, platform: str = "all") -> dict:
    """All preferences relevant to a view."""
    result = {"date_preset": get_date_preset()}
    if account_id:
        result["kpi_slots"] = get_kpi_slots(account_id, platform)
        result["objectives"] = get_objectives(account_id)
    return result
