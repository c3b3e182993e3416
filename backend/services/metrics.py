"""
Metrics aggregation for Meta Ads and Google Ads performance rows.

The insights store returns one row per entity per day. Rows are parsed into
PerformanceRecord objects first (bad rows come back as RecordRejection with a
reason), then summed per grouping key. Ratio metrics (CTR, CPC, CPM, ROAS, CPA)
are always derived from the summed counters, never averaged from daily ratios.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union


class MetricKey(str, Enum):
    """Metrics that can be shown in a KPI slot or tracked by a goal."""
    CONVERSIONS = "conversions"
    SPEND = "spend"
    REVENUE = "revenue"
    IMPRESSIONS = "impressions"
    CLICKS = "clicks"
    CTR = "ctr"
    CPC = "cpc"
    CPM = "cpm"
    ROAS = "roas"
    CPA = "cpa"


# Metrics offered in the dashboard selectors (CPA is only used by client KPIs)
SELECTABLE_METRICS = [
    MetricKey.CONVERSIONS,
    MetricKey.ROAS,
    MetricKey.SPEND,
    MetricKey.REVENUE,
    MetricKey.IMPRESSIONS,
    MetricKey.CLICKS,
    MetricKey.CTR,
    MetricKey.CPC,
    MetricKey.CPM,
]

COUNTER_FIELDS = ("impressions", "clicks", "spend", "conversions", "revenue")

# Grouping key for account-level totals
ALL = "all"


def to_amount(value: Any) -> float:
    """Coerce a counter value from the store to a finite, non-negative float."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


@dataclass
class PerformanceRecord:
    """One entity-day of performance data."""
    entity_id: str
    entity_name: Optional[str] = None
    date: str = ""
    status: Optional[str] = None
    platform: Optional[str] = None
    parent_id: Optional[str] = None
    impressions: float = 0.0
    clicks: float = 0.0
    spend: float = 0.0
    conversions: float = 0.0
    revenue: float = 0.0
    results_payload: Any = None


@dataclass
class RecordRejection:
    """A store row that could not be attributed to an entity."""
    row_index: int
    reason: str


def _lookup(row: dict, path: Optional[str]) -> Any:
    """Read a possibly dotted field (e.g. "raw.campaign_id") from a row."""
    if not path:
        return None
    value: Any = row
    for part in path.split("."):
        if isinstance(value, str):
            # jsonb columns sometimes come back serialized
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return None
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_record(
    row: Any,
    row_index: int = 0,
    id_field: str = "entity_id",
    name_field: str = "entity_name",
    status_field: str = "status",
    parent_field: Optional[str] = None,
    conversions_field: str = "conversions",
    revenue_field: str = "revenue",
    results_field: str = "results_arr",
) -> Union[PerformanceRecord, RecordRejection]:
    """
    Parse a raw store row into a PerformanceRecord.

    Field names differ between tables and views (the Meta front view calls
    conversions "conv", Google rows use "campaign_id"/"ad_id"), so the caller
    passes the column names to read.

    Returns:
        PerformanceRecord, or RecordRejection when the row has no usable id
        (or the parent id is required and missing).
    """
    if not isinstance(row, dict):
        return RecordRejection(row_index, "row is not a mapping")

    entity_id = _clean_id(_lookup(row, id_field))
    if entity_id is None:
        return RecordRejection(row_index, f"missing {id_field}")

    parent_id = None
    if parent_field:
        parent_id = _clean_id(_lookup(row, parent_field))
        if parent_id is None:
            return RecordRejection(row_index, f"missing {parent_field}")

    return PerformanceRecord(
        entity_id=entity_id,
        entity_name=_clean_text(row.get(name_field)),
        date=str(row.get("date") or "")[:10],
        status=_clean_text(row.get(status_field)),
        platform=_clean_text(row.get("platform")),
        parent_id=parent_id,
        impressions=to_amount(row.get("impressions")),
        clicks=to_amount(row.get("clicks")),
        spend=to_amount(row.get("spend")),
        conversions=to_amount(row.get(conversions_field)),
        revenue=to_amount(row.get(revenue_field)),
        results_payload=row.get(results_field),
    )


def parse_records(rows: Iterable[Any], **field_map) -> tuple[list[PerformanceRecord], list[RecordRejection]]:
    """Parse a batch of rows, splitting valid records from rejections."""
    records = []
    rejections = []
    for index, row in enumerate(rows or []):
        parsed = parse_record(row, row_index=index, **field_map)
        if isinstance(parsed, RecordRejection):
            rejections.append(parsed)
        else:
            records.append(parsed)
    return records, rejections


def parse_results_payload(payload: Any) -> dict[str, float]:
    """
    Normalize a results payload into {indicator: summed value}.

    Accepts a list of {indicator|action_type, value|values[0].value} items, a
    JSON string holding such a list, or an object with a "results" list.
    Anything else (or malformed JSON) yields an empty dict.
    """
    if not payload:
        return {}

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return {}

    if isinstance(payload, dict):
        payload = payload.get("results") or []

    if not isinstance(payload, list):
        return {}

    indicators: dict[str, float] = {}
    for item in payload:
        if not isinstance(item, dict):
            continue
        indicator = str(item.get("indicator") or item.get("action_type") or "").strip()
        if not indicator:
            continue

        raw_value = None
        values = item.get("values")
        if isinstance(values, list) and values and isinstance(values[0], dict):
            raw_value = values[0].get("value")
        if raw_value is None:
            raw_value = item.get("value")

        indicators[indicator] = indicators.get(indicator, 0.0) + to_amount(raw_value)

    return indicators


def is_purchase_indicator(indicator: str) -> bool:
    """Purchase count indicators: ending in ".purchase" or mentioning "fb_pixel_purchase"."""
    return indicator.endswith(".purchase") or "fb_pixel_purchase" in indicator


def is_purchase_value_indicator(indicator: str) -> bool:
    """Purchase value indicators, e.g. "offsite_conversion.custom.123.purchase.value"."""
    return "purchase.value" in indicator


def resolve_conversions_revenue(record: PerformanceRecord) -> tuple[float, float]:
    """
    Conversions and revenue for a record.

    The flattened counters win. Each one falls back to the results payload
    only when it is zero, because custom conversions are sometimes reported
    only inside the payload.
    """
    conversions = record.conversions
    revenue = record.revenue

    if conversions == 0 or revenue == 0:
        indicators = parse_results_payload(record.results_payload)

        if conversions == 0:
            purchase_keys = [k for k in indicators if is_purchase_indicator(k)]
            if purchase_keys:
                conversions = sum(indicators[k] for k in purchase_keys)

        if revenue == 0:
            value_keys = [k for k in indicators if is_purchase_value_indicator(k)]
            if value_keys:
                revenue = sum(indicators[k] for k in value_keys)

    return conversions, revenue


def derive_ratios(
    spend: float,
    impressions: float,
    clicks: float,
    revenue: float = 0.0,
    conversions: float = 0.0,
) -> dict[str, Optional[float]]:
    """Derived metrics, None whenever the denominator is not positive."""
    return {
        "ctr": clicks / impressions * 100 if impressions > 0 else None,
        "cpc": spend / clicks if clicks > 0 else None,
        "cpm": spend * 1000 / impressions if impressions > 0 else None,
        "roas": revenue / spend if spend > 0 else None,
        "cpa": spend / conversions if conversions > 0 else None,
    }


@dataclass
class AggregatedTotals:
    """Summed counters for one grouping key over a date window."""
    key: str
    name: Optional[str] = None
    status: Optional[str] = None
    platform: Optional[str] = None
    parent_id: Optional[str] = None
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    revenue: float = 0.0
    active_dates: set = field(default_factory=set)
    children: list = field(default_factory=list)

    @property
    def days_active(self) -> int:
        """Distinct dates with at least one row."""
        return len(self.active_dates)

    @property
    def ctr(self) -> Optional[float]:
        return self.clicks / self.impressions * 100 if self.impressions > 0 else None

    @property
    def cpc(self) -> Optional[float]:
        return self.spend / self.clicks if self.clicks > 0 else None

    @property
    def cpm(self) -> Optional[float]:
        return self.spend * 1000 / self.impressions if self.impressions > 0 else None

    @property
    def roas(self) -> Optional[float]:
        return self.revenue / self.spend if self.spend > 0 else None

    @property
    def cpa(self) -> Optional[float]:
        return self.spend / self.conversions if self.conversions > 0 else None

    def add(self, record: PerformanceRecord):
        """Add one record's counters, resolving conversions/revenue fallbacks."""
        conversions, revenue = resolve_conversions_revenue(record)
        self.impressions += record.impressions
        self.clicks += record.clicks
        self.spend += record.spend
        self.conversions += conversions
        self.revenue += revenue
        if record.date:
            self.active_dates.add(record.date)

        if self.name is None and record.entity_name:
            self.name = record.entity_name
        if self.status is None and record.status:
            self.status = record.status
        if self.platform is None and record.platform:
            self.platform = record.platform
        if self.parent_id is None and record.parent_id:
            self.parent_id = record.parent_id

    def to_dict(self) -> dict:
        data = {
            "id": self.key,
            "name": self.name,
            "status": self.status,
            "platform": self.platform,
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            "revenue": self.revenue,
            "days_active": self.days_active,
            "ctr": self.ctr,
            "cpc": self.cpc,
            "cpm": self.cpm,
            "roas": self.roas,
            "cpa": self.cpa,
        }
        if self.parent_id is not None:
            data["parent_id"] = self.parent_id
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


GroupBy = Union[str, Callable[[PerformanceRecord], Optional[str]]]

RECORD_KEY_FIELDS = ("entity_id", "parent_id", "platform", "date")


def _group_key_fn(group_by: GroupBy) -> Callable[[PerformanceRecord], Optional[str]]:
    if callable(group_by):
        return group_by
    if group_by in RECORD_KEY_FIELDS:
        return lambda record: getattr(record, group_by)
    # Any other string is a constant key ("all" for account totals)
    return lambda record: group_by


def aggregate(records: Iterable[PerformanceRecord], group_by: GroupBy = "entity_id") -> dict[str, AggregatedTotals]:
    """
    Sum records per grouping key.

    Args:
        records: Parsed performance records, in any order
        group_by: Callable returning the key for a record, a record field name
            ("entity_id", "parent_id", "platform", "date"), or a constant key
            such as ALL

    Returns:
        Dict of key -> AggregatedTotals, in first-seen order. Records whose
        key resolves to None/empty are dropped.
    """
    key_fn = _group_key_fn(group_by)
    groups: dict[str, AggregatedTotals] = {}

    for record in records:
        key = key_fn(record)
        if key is None or key == "":
            continue
        key = str(key)
        if key not in groups:
            groups[key] = AggregatedTotals(key=key)
        groups[key].add(record)

    return groups


def sort_by_spend(totals: Union[dict, Iterable[AggregatedTotals]]) -> list[AggregatedTotals]:
    """Order totals by descending spend; equal spend keeps insertion order."""
    items = list(totals.values()) if isinstance(totals, dict) else list(totals)
    return sorted(items, key=lambda t: t.spend, reverse=True)


def combine(totals: Iterable[AggregatedTotals], key: str = ALL) -> AggregatedTotals:
    """Sum already aggregated totals (e.g. Meta + Google) into one."""
    combined = AggregatedTotals(key=key)
    for t in totals:
        combined.spend += t.spend
        combined.impressions += t.impressions
        combined.clicks += t.clicks
        combined.conversions += t.conversions
        combined.revenue += t.revenue
        combined.active_dates |= t.active_dates
    return combined


def metric_value(totals: AggregatedTotals, metric: Union[MetricKey, str]) -> Optional[float]:
    """Actual value of a metric: raw counter or derived ratio (None if undefined)."""
    metric = MetricKey(metric)
    return getattr(totals, metric.value)


def totals_from_rows(rows: Iterable[Any], key: str = ALL, **field_map) -> AggregatedTotals:
    """Parse rows and sum them into a single totals object."""
    records, _ = parse_records(rows, **field_map)
    groups = aggregate(records, key)
    return groups.get(key) or AggregatedTotals(key=key)
