"""
Data access for the Perfo dashboard.

Pages run in the same process as the backend services, so this module puts
the backend on the path and re-exports what the pages use. Loads go through
a per-session FetchGuard so a stale result never replaces a newer one.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional

import streamlit as st

BACKEND_DIR = Path(__file__).parent.parent / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from services.auth import check_credentials, create_session_token, safe_redirect, verify_session_token
from services.clients import ClientValidationError, create_client, delete_client, list_clients
from services.data_loader import (
    STORE_ERRORS,
    get_account_options,
    get_accounts_overview,
    get_client_dashboard,
    get_entity_table,
    get_kpi_grid,
    get_objectives_panel,
    get_today_monitor,
)
from services.date_ranges import DATE_PRESETS, DEFAULT_PRESET, DateRange, preset_range
from services.fetch_guard import FetchGuard
from services.formatting import (
    EMPTY,
    format_int,
    format_metric,
    format_money,
    format_pct,
    metric_label,
    pretty_status,
)
from services.goal_store import GoalValidationError, delete_goal, list_goals, upsert_goal
from services.goals import goal_key
from services.metrics import MetricKey, SELECTABLE_METRICS
from services import preferences


def _guard() -> FetchGuard:
    if "fetch_guard" not in st.session_state:
        st.session_state["fetch_guard"] = FetchGuard()
    return st.session_state["fetch_guard"]


def guarded_load(view: str, params: dict, loader: Callable[[], Any]) -> Optional[Any]:
    """
    Run a load for a view and keep its result only if it is still the latest.

    Returns:
        The fresh result, or the last applied result for the view when this
        one was discarded as stale
    """
    guard = _guard()
    ticket = guard.begin(view, params)
    result = loader()

    state_key = f"view_result:{view}"
    if guard.apply(ticket, result, lambda value: st.session_state.__setitem__(state_key, value)):
        return result
    return st.session_state.get(state_key)


def date_range_picker(key: str) -> DateRange:
    """Sidebar preset selector plus optional custom dates."""
    presets = list(DATE_PRESETS)
    saved = preferences.get_date_preset()

    options = presets + ["custom"]
    preset = st.sidebar.selectbox(
        "Período",
        options,
        index=options.index(saved),
        format_func=lambda p: DATE_PRESETS.get(p, "Personalizado"),
        key=f"{key}_preset",
    )

    if preset != "custom":
        if preset != saved:
            preferences.set_date_preset(preset)
        return preset_range(preset)

    default = preset_range(DEFAULT_PRESET)
    start = st.sidebar.date_input("Desde", value=date.fromisoformat(default.date_from), key=f"{key}_from")
    end = st.sidebar.date_input("Hasta", value=date.fromisoformat(default.date_to), key=f"{key}_to")
    try:
        return DateRange(str(start), str(end))
    except ValueError as e:
        st.sidebar.error(str(e))
        return default
