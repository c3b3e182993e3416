"""
Goal store for per-campaign and account-level KPI targets.

Goals live in a versioned JSON document:

    {"schema_version": 2, "goals": [{"id": 1, "entity_key": "meta:123", ...}]}

Older unversioned files (a plain {entity_key: {"kpi": ..., "target": ...}} map)
are migrated on read. A malformed file or entry falls back to defaults
instead of raising, and unknown fields are carried through untouched.
"""

import json
import math
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from services.metrics import MetricKey

SCHEMA_VERSION = 2

DATA_DIR = Path(os.getenv("PERFO_DATA_DIR", Path(__file__).parent.parent.parent / "data"))
GOALS_FILE = DATA_DIR / "goals.json"

VALID_METRICS = {m.value for m in MetricKey}


class GoalValidationError(ValueError):
    """Raised when a goal is missing its entity, metric or a finite target."""


def _empty_document() -> dict:
    return {"schema_version": SCHEMA_VERSION, "goals": []}


def _normalize_goal(entry: dict) -> Optional[dict]:
    """Validate a stored goal entry, returning None if it cannot be used."""
    if not isinstance(entry, dict):
        return None

    entity_key = str(entry.get("entity_key") or "").strip()
    metric = entry.get("metric")
    try:
        target = float(entry.get("target"))
    except (TypeError, ValueError):
        return None

    if not entity_key or not isinstance(metric, str) or metric not in VALID_METRICS or not math.isfinite(target):
        return None

    goal = dict(entry)
    goal["entity_key"] = entity_key
    goal["target"] = target
    return goal


def _migrate_v1(data: dict | list) -> dict:
    """Convert an unversioned goal map (or bare list) into a v2 document."""
    goals = []

    if isinstance(data, dict):
        for entity_key, config in data.items():
            if not isinstance(config, dict):
                continue
            goals.append({
                "entity_key": entity_key,
                "metric": config.get("kpi") or config.get("metric"),
                "target": config.get("target"),
                "note": config.get("note"),
                "title": config.get("title"),
            })
    elif isinstance(data, list):
        goals = [g for g in data if isinstance(g, dict)]

    for index, goal in enumerate(goals, start=1):
        goal.setdefault("id", index)

    print(f"[Goals] Migrated {len(goals)} goal(s) from unversioned store")
    return {"schema_version": SCHEMA_VERSION, "goals": goals}


def _load_document() -> dict:
    """Load the goals document, migrating or defaulting as needed."""
    try:
        with open(GOALS_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return _empty_document()
    except json.JSONDecodeError as e:
        print(f"[Goals] Could not parse {GOALS_FILE.name}, starting empty: {e}")
        return _empty_document()

    if isinstance(data, dict) and "schema_version" in data:
        version = data.get("schema_version")
        if not isinstance(version, int):
            print(f"[Goals] Unknown schema_version {version!r}, starting empty")
            return _empty_document()
        if not isinstance(data.get("goals"), list):
            data["goals"] = []
        return data

    return _migrate_v1(data)


def _save_document(document: dict):
    """Write the goals document."""
    GOALS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(GOALS_FILE, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, default=str)


def load_goals() -> list[dict]:
    """All valid goals. Invalid entries are skipped with a warning."""
    goals = []
    for entry in _load_document()["goals"]:
        goal = _normalize_goal(entry)
        if goal is None:
            print(f"[Goals] Skipping malformed goal entry: {entry!r}")
            continue
        goals.append(goal)
    return goals


def list_goals(entity_prefix: Optional[str] = None) -> list[dict]:
    """Goals, optionally only those whose entity_key starts with a prefix."""
    goals = load_goals()
    if entity_prefix:
        goals = [g for g in goals if g["entity_key"].startswith(entity_prefix)]
    return goals


def get_goal(goal_id: int) -> Optional[dict]:
    """Get a single goal by ID."""
    for goal in load_goals():
        if goal.get("id") == goal_id:
            return goal
    return None


def validate_goal(entity_key: str, metric: str, target: float):
    """Presence checks only. Zero and negative targets are allowed."""
    if not entity_key or not str(entity_key).strip():
        raise GoalValidationError("entity_key is required")
    if not isinstance(metric, str) or metric not in VALID_METRICS:
        raise GoalValidationError(f"Invalid metric: {metric}")
    try:
        target = float(target)
    except (TypeError, ValueError):
        raise GoalValidationError("target must be a number")
    if not math.isfinite(target):
        raise GoalValidationError("target must be a finite number")


def upsert_goal(
    entity_key: str,
    metric: str,
    target: float,
    note: Optional[str] = None,
    title: Optional[str] = None,
) -> dict:
    """
    Create or replace the goal for an entity and metric.

    One goal exists per (entity_key, metric); saving again overwrites it
    (last writer wins).
    """
    if isinstance(metric, MetricKey):
        metric = metric.value
    validate_goal(entity_key, metric, target)
    entity_key = str(entity_key).strip()

    document = _load_document()
    goals = document["goals"]
    now = datetime.now().isoformat()

    for entry in goals:
        if isinstance(entry, dict) and entry.get("entity_key") == entity_key and entry.get("metric") == metric:
            entry["target"] = float(target)
            entry["note"] = note
            entry["title"] = title
            entry["updated_at"] = now
            _save_document(document)
            return entry

    max_id = max((g.get("id", 0) for g in goals if isinstance(g, dict) and isinstance(g.get("id"), int)), default=0)
    goal = {
        "id": max_id + 1,
        "entity_key": entity_key,
        "metric": metric,
        "target": float(target),
        "note": note,
        "title": title,
        "created_at": now,
        "updated_at": now,
    }
    goals.append(goal)
    _save_document(document)
    print(f"[Goals] Saved goal {goal['id']} for {entity_key} ({metric} -> {target})")
    return goal


def update_goal(
    goal_id: int,
    metric: Optional[str] = None,
    target: Optional[float] = None,
    note: Optional[str] = None,
    title: Optional[str] = None,
) -> Optional[dict]:
    """Update an existing goal. Returns None if the ID does not exist."""
    document = _load_document()

    for entry in document["goals"]:
        if isinstance(entry, dict) and entry.get("id") == goal_id:
            if isinstance(metric, MetricKey):
                metric = metric.value
            new_metric = metric if metric is not None else entry.get("metric")
            new_target = target if target is not None else entry.get("target")
            validate_goal(entry.get("entity_key"), new_metric, new_target)

            entry["metric"] = new_metric
            entry["target"] = float(new_target)
            if note is not None:
                entry["note"] = note
            if title is not None:
                entry["title"] = title
            entry["updated_at"] = datetime.now().isoformat()

            # One goal per (entity_key, metric): the updated goal replaces any other holder
            replaced = [
                g.get("id") for g in document["goals"]
                if isinstance(g, dict) and g is not entry
                and g.get("entity_key") == entry.get("entity_key") and g.get("metric") == new_metric
            ]
            if replaced:
                document["goals"] = [
                    g for g in document["goals"]
                    if not (isinstance(g, dict) and g is not entry and g.get("id") in replaced)
                ]
                print(f"[Goals] Goal {goal_id} replaced goal(s) {replaced} for {entry.get('entity_key')} ({new_metric})")

            _save_document(document)
            return entry

    return None


def delete_goal(goal_id: int) -> bool:
    """Delete a goal by ID."""
    document = _load_document()
    original_len = len(document["goals"])

    document["goals"] = [
        g for g in document["goals"]
        if not (isinstance(g, dict) and g.get("id") == goal_id)
    ]

    if len(document["goals"]) < original_len:
        _save_document(document)
        return True

    return False
