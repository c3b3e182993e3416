"""
Display formatting for dashboard metrics (es-AR conventions).

Numbers use "." for thousands and "," for decimals; undefined values render
as an em dash.
"""

import math
from typing import Optional

from services.metrics import MetricKey

EMPTY = "—"

METRIC_LABELS = {
    "spend": "Inversión",
    "revenue": "Revenue",
    "conversions": "Resultados",
    "clicks": "Clicks",
    "impressions": "Impresiones",
    "ctr": "CTR",
    "cpc": "CPC",
    "cpm": "CPM",
    "roas": "ROAS",
    "cpa": "CPA",
}

PLATFORM_LABELS = {
    "meta": "Meta Ads",
    "google": "Google Ads",
    "all": "Todas las plataformas",
}


def _is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and not math.isfinite(value))


def format_number(value: Optional[float], decimals: int = 0) -> str:
    """Format with es-AR separators and a fixed number of decimals."""
    if _is_missing(value):
        return EMPTY
    text = f"{value:,.{decimals}f}"
    # 1,234.56 -> 1.234,56
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_int(value: Optional[float]) -> str:
    """Counters: no decimals unless the value is fractional (e.g. Google conversions)."""
    if _is_missing(value):
        return EMPTY
    if float(value).is_integer():
        return format_number(value, 0)
    return format_number(value, 2)


def format_money(value: Optional[float], decimals: int = 2) -> str:
    """Format as pesos, e.g. "$ 1.234,56"."""
    if _is_missing(value):
        return EMPTY
    return f"$ {format_number(value, decimals)}"


def format_pct(value: Optional[float], decimals: int = 2) -> str:
    if _is_missing(value):
        return EMPTY
    return f"{format_number(value, decimals)}%"


def format_roas(value: Optional[float]) -> str:
    if _is_missing(value):
        return EMPTY
    return f"{format_number(value, 2)}x"


def format_metric(metric: str, value: Optional[float]) -> str:
    """Format a metric value the way KPI cards show it."""
    metric = MetricKey(metric)
    if metric in (MetricKey.SPEND, MetricKey.REVENUE, MetricKey.CPM, MetricKey.CPA):
        return format_money(value, 2)
    if metric == MetricKey.CPC:
        return format_money(value, 3)
    if metric == MetricKey.CTR:
        return format_pct(value)
    if metric == MetricKey.ROAS:
        return format_roas(value)
    return format_int(value)


def metric_label(metric: str) -> str:
    return METRIC_LABELS.get(str(getattr(metric, "value", metric)), str(metric))


def pretty_status(raw: Optional[str]) -> str:
    """Map platform status vocabularies to Activa / Pausada / Inactiva."""
    if not raw:
        return EMPTY
    status = raw.upper()
    if ("ACTIVE" in status and "INACTIVE" not in status) or "DELIVERING" in status:
        return "Activa"
    if "PAUS" in status:
        return "Pausada"
    if "DISABLE" in status or "INACTIVE" in status:
        return "Inactiva"
    return raw
