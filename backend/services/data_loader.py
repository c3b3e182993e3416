"""
Data loading for the Perfo API and dashboard.

Fetches performance rows from the insights store, parses them into
PerformanceRecord objects and aggregates them into the shapes each view needs
(account totals, KPI grid, campaign trees, client dashboard, monitor,
accounts overview).

Every call is a fresh fetch. A store failure never raises out of a view
function: it is logged and returned as {"error": ...} next to empty data.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Optional

# Add connectors directory to path for the insights store client
CONNECTORS_DIR = Path(__file__).parent.parent.parent / "connectors"
sys.path.insert(0, str(CONNECTORS_DIR))

from supabase_insights import InsightsStoreError, SupabaseInsightsConnector, normalize_meta_account_id

from services import goal_store, preferences
from services.date_ranges import mtd_range, today_local
from services.formatting import format_metric, metric_label, pretty_status
from services.goals import HealthTier, classify_health, evaluate, evaluate_goal, goal_key, is_lower_better
from services.metrics import (
    ALL,
    AggregatedTotals,
    MetricKey,
    SELECTABLE_METRICS,
    aggregate,
    combine,
    metric_value,
    parse_records,
    sort_by_spend,
    to_amount,
)

# Store failures and missing configuration both degrade to an error payload
STORE_ERRORS = (InsightsStoreError, ValueError)

TREE_COLUMNS = "level, entity_id, date, impressions, clicks, spend, conversions, raw"
OVERVIEW_COLUMNS = "account_id, spend, impressions, clicks, conversions, date, level"

VIEW_MODES = ("all", "meta", "google")

# Client KPI metric vocabulary (per platform) -> metric it is computed as.
# Checked in order; the first match wins.
PLATFORM_KPI_METRICS = [
    (("cpa", "cost_per_conversion"), MetricKey.CPA),
    (("cpm",), MetricKey.CPM),
    (("cost_micros",), MetricKey.SPEND),
    (("impressions",), MetricKey.IMPRESSIONS),
    (("clicks",), MetricKey.CLICKS),
    (("conversions",), MetricKey.CONVERSIONS),
]

_store = None


def get_store():
    """The shared insights store client."""
    global _store
    if _store is None:
        _store = SupabaseInsightsConnector()
    return _store


def set_store(store):
    """Replace the insights store (e.g. with an in-memory fake)."""
    global _store
    _store = store


def _log_rejections(view: str, rejections: list):
    if rejections:
        reasons = sorted({r.reason for r in rejections})
        print(f"[Data] {view}: skipped {len(rejections)} row(s) ({', '.join(reasons)})")


# =============================================================================
# ACCOUNT VIEW
# =============================================================================

def _load_account_totals(account_id: str, date_from: str, date_to: str, platform: str = "all") -> AggregatedTotals:
    rows = get_store().get_insights(account_id, "campaign", date_from, date_to, platform=platform)
    records, rejections = parse_records(rows)
    _log_rejections(f"Account {account_id}", rejections)
    return aggregate(records, ALL).get(ALL) or AggregatedTotals(key=ALL)


def get_account_totals(account_id: str, date_from: str, date_to: str, platform: str = "all") -> dict:
    """
    Summed counters and derived ratios for one account over a date window.

    Returns:
        {"account_id", "platform", "date_from", "date_to", "totals"}; "totals"
        is None and "error" is set when the store fails
    """
    result = {
        "account_id": account_id,
        "platform": platform,
        "date_from": date_from,
        "date_to": date_to,
    }
    try:
        totals = _load_account_totals(account_id, date_from, date_to, platform)
    except STORE_ERRORS as e:
        print(f"[Data] Account totals failed for {account_id}: {e}")
        return {**result, "totals": None, "error": str(e)}

    return {**result, "totals": totals.to_dict()}


def _dedupe_slots(slots: list) -> list[str]:
    selectable = {m.value for m in SELECTABLE_METRICS}
    values = [getattr(s, "value", s) for s in slots]
    cleaned = [s for s in values if s in selectable]
    deduped = list(dict.fromkeys(cleaned))
    if len(deduped) < len(values):
        print(f"[Data] KPI slots cleaned: {values} -> {deduped}")
    return deduped


def get_kpi_grid(
    account_id: str,
    date_from: str,
    date_to: str,
    platform: str = "all",
    slots: Optional[list] = None,
) -> dict:
    """
    KPI cards for an account, in slot order.

    Args:
        slots: Metrics to show; defaults to the saved slots for the account
            and platform. Duplicates are removed keeping the first one.
    """
    if slots is None:
        slots = preferences.get_kpi_slots(account_id, platform)
    slots = _dedupe_slots(slots)

    error = None
    totals = None
    try:
        totals = _load_account_totals(account_id, date_from, date_to, platform)
    except STORE_ERRORS as e:
        print(f"[Data] KPI grid failed for {account_id}: {e}")
        error = str(e)

    cards = []
    for metric in slots:
        value = metric_value(totals, metric) if totals is not None else None
        cards.append({
            "metric": metric,
            "label": metric_label(metric),
            "value": value,
            "display": format_metric(metric, value),
        })

    result = {"account_id": account_id, "platform": platform, "cards": cards}
    if error:
        result["error"] = error
    return result


def get_objectives_panel(account_id: str, date_from: str, date_to: str) -> dict:
    """Two objective progress bars and two indicators, per the saved selection."""
    selection = preferences.get_objectives(account_id)

    error = None
    totals = None
    try:
        totals = _load_account_totals(account_id, date_from, date_to)
    except STORE_ERRORS as e:
        print(f"[Data] Objectives panel failed for {account_id}: {e}")
        error = str(e)

    objectives = []
    for slot in ("obj1", "obj2"):
        metric = selection[f"{slot}_metric"]
        progress = evaluate(metric, selection[f"{slot}_target"], totals)
        objectives.append({
            "slot": slot,
            "label": metric_label(metric),
            "display_actual": format_metric(metric, progress.actual),
            "display_target": format_metric(metric, progress.target),
            **progress.to_dict(),
        })

    indicators = []
    for slot in ("ind1", "ind2"):
        metric = selection[f"{slot}_metric"]
        value = metric_value(totals, metric) if totals is not None else None
        indicators.append({
            "slot": slot,
            "metric": metric,
            "label": metric_label(metric),
            "value": value,
            "display": format_metric(metric, value),
        })

    result = {"account_id": account_id, "objectives": objectives, "indicators": indicators}
    if error:
        result["error"] = error
    return result


# =============================================================================
# CAMPAIGN TREES
# =============================================================================

def _load_meta_tree(account_id: str, date_from: str, date_to: str) -> list[AggregatedTotals]:
    """Meta campaigns with their ad sets and ads attached as children."""
    store = get_store()

    rows = store.get_meta_campaign_insights(account_id, date_from, date_to)
    records, rejections = parse_records(rows, conversions_field="conv")
    _log_rejections("Meta campaigns", rejections)
    campaigns = aggregate(records)

    try:
        statuses = store.get_campaign_statuses(list(campaigns))
    except InsightsStoreError as e:
        print(f"[Data] Campaign statuses unavailable: {e}")
        statuses = {}

    for cid, campaign in campaigns.items():
        campaign.platform = "meta"
        campaign.name = campaign.name or "Campaña sin nombre"
        campaign.status = pretty_status(statuses.get(cid))

    adsets = _load_meta_children(store, account_id, "adset", "raw.campaign_id", date_from, date_to)
    ads = _load_meta_children(store, account_id, "ad", "raw.adset_id", date_from, date_to)

    adset_names = _entity_names(store, "adsets", list(adsets))
    ad_names = _entity_names(store, "ads", list(ads))

    for ad_id, ad in ads.items():
        ad.platform = "meta"
        ad.name = ad_names.get(ad_id) or f"Ad {ad_id[-6:]}"
        if ad.parent_id in adsets:
            adsets[ad.parent_id].children.append(ad)

    for adset_id, adset in adsets.items():
        adset.platform = "meta"
        adset.name = adset_names.get(adset_id) or f"Conjunto {adset_id[-6:]}"
        if adset.parent_id in campaigns:
            campaigns[adset.parent_id].children.append(adset)

    return list(campaigns.values())


def _load_meta_children(store, account_id: str, level: str, parent_field: str, date_from: str, date_to: str) -> dict:
    """Ad set or ad totals keyed by id; rows without a parent id are dropped."""
    try:
        rows = store.get_insights(
            account_id, level, date_from, date_to,
            columns=TREE_COLUMNS, limit=SupabaseInsightsConnector.TREE_ROW_LIMIT,
        )
    except InsightsStoreError as e:
        print(f"[Data] Meta {level} rows unavailable: {e}")
        return {}

    records, rejections = parse_records(rows, parent_field=parent_field)
    _log_rejections(f"Meta {level}s", rejections)
    return aggregate(records)


def _entity_names(store, table: str, ids: list[str]) -> dict[str, str]:
    try:
        return store.get_entity_names(table, ids)
    except InsightsStoreError as e:
        print(f"[Data] Names from {table} unavailable: {e}")
        return {}


def _apply_latest_labels(groups: dict[str, AggregatedTotals], records: list):
    """Google rows: the last non-null name and status seen win."""
    for record in records:
        totals = groups.get(record.entity_id)
        if totals is None:
            continue
        if record.entity_name:
            totals.name = record.entity_name
        if record.status:
            totals.status = record.status


def _load_google_campaigns(account_id: str, date_from: str, date_to: str) -> list[AggregatedTotals]:
    """Google campaigns with their ads attached as children."""
    store = get_store()

    rows = store.get_google_campaign_insights(account_id, date_from, date_to)
    records, rejections = parse_records(
        rows, id_field="campaign_id", name_field="campaign_name", conversions_field="conv",
    )
    _log_rejections("Google campaigns", rejections)
    campaigns = aggregate(records)
    _apply_latest_labels(campaigns, records)

    for campaign in campaigns.values():
        campaign.platform = "google"
        campaign.name = campaign.name or "Campaña sin nombre"
        campaign.status = campaign.status or "—"

    if not campaigns:
        return []

    try:
        ad_rows = store.get_google_ad_rows(account_id, list(campaigns), date_from, date_to)
    except InsightsStoreError as e:
        print(f"[Data] Google ad rows unavailable: {e}")
        ad_rows = []

    ad_records, rejections = parse_records(
        ad_rows, id_field="ad_id", name_field="ad_name", parent_field="campaign_id",
    )
    _log_rejections("Google ads", rejections)
    ads = aggregate(ad_records)
    _apply_latest_labels(ads, ad_records)

    campaign_names = {}
    for row in ad_rows:
        if isinstance(row, dict) and row.get("campaign_name"):
            campaign_names.setdefault(str(row.get("campaign_id")), row["campaign_name"])

    for ad_id, ad in ads.items():
        ad.platform = "google"
        if not ad.name:
            campaign_name = campaign_names.get(ad.parent_id)
            ad.name = f"[{campaign_name}] {ad_id}" if campaign_name else f"Ad {ad_id}"
        ad.status = ad.status or "—"
        if ad.parent_id in campaigns:
            campaigns[ad.parent_id].children.append(ad)

    return list(campaigns.values())


def get_meta_campaign_tree(account_id: str, date_from: str, date_to: str) -> dict:
    """Meta campaigns -> ad sets -> ads for an ad account."""
    meta_id = normalize_meta_account_id(account_id)
    try:
        campaigns = _load_meta_tree(meta_id, date_from, date_to)
    except STORE_ERRORS as e:
        print(f"[Data] Meta campaign tree failed for {meta_id}: {e}")
        return {"account_id": meta_id, "campaigns": [], "error": str(e)}

    return {"account_id": meta_id, "campaigns": [c.to_dict() for c in campaigns]}


def get_google_campaigns(account_id: str, date_from: str, date_to: str) -> dict:
    """Google campaigns with their ads for a Google Ads account."""
    try:
        campaigns = _load_google_campaigns(account_id, date_from, date_to)
    except STORE_ERRORS as e:
        print(f"[Data] Google campaigns failed for {account_id}: {e}")
        return {"account_id": account_id, "campaigns": [], "error": str(e)}

    return {"account_id": account_id, "campaigns": [c.to_dict() for c in campaigns]}


ENTITY_LEVELS = {
    "meta": ("campaign", "adset", "ad"),
    "google": ("campaign", "ad"),
}


def get_entity_table(account_id: str, platform: str, level: str, date_from: str, date_to: str) -> dict:
    """
    Flat entity rows for one level of an account's campaign tree.

    Ad set and ad rows carry the name of the entity above them. Rows are
    ordered by descending spend.
    """
    levels = ENTITY_LEVELS.get(platform)
    if levels is None:
        raise ValueError(f"Invalid platform: {platform}")
    if level not in levels:
        raise ValueError(f"Invalid level for {platform}: {level}")

    if platform == "meta":
        tree = get_meta_campaign_tree(account_id, date_from, date_to)
    else:
        tree = get_google_campaigns(account_id, date_from, date_to)

    parents = [(None, c) for c in tree["campaigns"]]
    for _ in range(levels.index(level)):
        parents = [(entry.get("name"), child) for _, entry in parents for child in entry.get("children", [])]

    rows = []
    for parent_name, entry in parents:
        row = {k: v for k, v in entry.items() if k != "children"}
        row["parent_name"] = parent_name
        rows.append(row)
    rows.sort(key=lambda r: r.get("spend") or 0, reverse=True)

    result = {"account_id": tree["account_id"], "platform": platform, "level": level, "rows": rows}
    if tree.get("error"):
        result["error"] = tree["error"]
    return result


# =============================================================================
# CLIENT DASHBOARD
# =============================================================================

def resolve_platform_metric(meta_metric: Optional[str], google_metric: Optional[str]) -> MetricKey:
    """Map the client's per-platform KPI metric names to one metric (default conversions)."""
    wanted = {meta_metric or "", google_metric or ""}
    for names, metric in PLATFORM_KPI_METRICS:
        if wanted & set(names):
            return metric
    return MetricKey.CONVERSIONS


def _to_target(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number


def compute_kpi_health(
    target,
    meta_metric: Optional[str],
    google_metric: Optional[str],
    kpi_name: Optional[str],
    meta_totals: AggregatedTotals,
    google_totals: AggregatedTotals,
) -> dict:
    """
    Health of a client KPI over Meta + Google combined.

    Returns:
        {"name", "metric", "target", "value", "health", "lower_is_better"};
        health is "unavailable" without a finite target or a defined value
    """
    metric = resolve_platform_metric(meta_metric, google_metric)
    lower = is_lower_better(metric)
    target = _to_target(target)

    value = metric_value(combine([meta_totals, google_totals]), metric)
    health = classify_health(value, target, lower)

    return {
        "name": kpi_name,
        "metric": metric.value,
        "target": target,
        "value": value if health != HealthTier.UNAVAILABLE else None,
        "health": health.value,
        "lower_is_better": lower,
    }


def _goals_by_entity() -> dict[str, list[dict]]:
    goals = {}
    for goal in goal_store.load_goals():
        goals.setdefault(goal["entity_key"], []).append(goal)
    return goals


def _campaign_entry(campaign: AggregatedTotals, goals: dict[str, list[dict]]) -> dict:
    entry = campaign.to_dict()
    key = goal_key(campaign.platform, campaign.key)
    entry["goal_key"] = key
    entry["goals"] = [
        {
            "id": goal.get("id"),
            "title": goal.get("title"),
            "note": goal.get("note"),
            **evaluate_goal(goal, campaign).to_dict(),
        }
        for goal in goals.get(key, [])
    ]
    return entry


def get_client_dashboard(
    client_id: str,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    view: str = "all",
) -> Optional[dict]:
    """
    Everything the client detail page shows.

    Args:
        client_id: Client row id
        date_from / date_to: Window (defaults to month to date)
        view: "all", "meta" or "google" (filters the campaign list and totals)

    Returns:
        Dashboard dict, None if the client does not exist, or {"error": ...}
        when the client itself cannot be loaded
    """
    if view not in VIEW_MODES:
        raise ValueError(f"Invalid view: {view}. Valid options: {list(VIEW_MODES)}")

    if not date_from or not date_to:
        default = mtd_range()
        date_from = date_from or default.date_from
        date_to = date_to or default.date_to

    try:
        client = get_store().get_client(client_id)
    except STORE_ERRORS as e:
        print(f"[Data] Client {client_id} failed: {e}")
        return {"client_id": client_id, "error": str(e)}

    if client is None:
        return None

    errors = []
    meta_campaigns: list[AggregatedTotals] = []
    google_campaigns: list[AggregatedTotals] = []

    meta_id = normalize_meta_account_id(client.get("meta_account_id"))
    if meta_id:
        try:
            meta_campaigns = _load_meta_tree(meta_id, date_from, date_to)
        except STORE_ERRORS as e:
            print(f"[Data] Meta campaigns failed for client {client_id}: {e}")
            errors.append(f"Meta: {e}")

    google_id = str(client.get("google_account_id") or "").strip()
    if google_id:
        try:
            google_campaigns = _load_google_campaigns(google_id, date_from, date_to)
        except STORE_ERRORS as e:
            print(f"[Data] Google campaigns failed for client {client_id}: {e}")
            errors.append(f"Google: {e}")

    if view == "meta":
        visible = meta_campaigns
    elif view == "google":
        visible = google_campaigns
    else:
        visible = meta_campaigns + google_campaigns
    visible = sort_by_spend(visible)

    totals = combine(visible)
    all_spend = sum(c.spend for c in meta_campaigns + google_campaigns)
    budget = _to_target(client.get("budget"))

    meta_totals = combine(meta_campaigns, key="meta")
    google_totals = combine(google_campaigns, key="google")
    kpis = [
        {"slot": "kpi1", **compute_kpi_health(
            client.get("kpi1_target"), client.get("meta_kpi1_metric"), client.get("google_kpi1_metric"),
            client.get("kpi1_name") or "KPI 1", meta_totals, google_totals,
        )},
    ]
    if client.get("kpi2_name"):
        kpis.append({"slot": "kpi2", **compute_kpi_health(
            client.get("kpi2_target"), client.get("meta_kpi2_metric"), client.get("google_kpi2_metric"),
            client.get("kpi2_name"), meta_totals, google_totals,
        )})

    goals = _goals_by_entity()

    result = {
        "client": client,
        "date_from": date_from,
        "date_to": date_to,
        "view": view,
        "campaigns": [_campaign_entry(c, goals) for c in visible],
        "totals": totals.to_dict(),
        "budget": {
            "budget": budget,
            "spend": all_spend,
            "available": budget - all_spend if budget is not None else None,
        },
        "kpis": kpis,
    }
    if errors:
        result["error"] = "; ".join(errors)
    return result


def get_goal_progress(goal: dict, account_id: str, date_from: str, date_to: str) -> dict:
    """
    Evaluate one stored goal over a date window.

    Campaign goals ("meta:<id>", "google:<id>") are evaluated against that
    campaign's totals in the given account; any other key is an account-level
    goal evaluated against the account totals.
    """
    platform, _, entity_id = goal["entity_key"].partition(":")
    result = {"goal": goal, "date_from": date_from, "date_to": date_to}

    totals = None
    try:
        if platform == "meta" and entity_id:
            campaigns = _load_meta_tree(normalize_meta_account_id(account_id), date_from, date_to)
            totals = next((c for c in campaigns if c.key == entity_id), None)
        elif platform == "google" and entity_id:
            campaigns = _load_google_campaigns(account_id, date_from, date_to)
            totals = next((c for c in campaigns if c.key == entity_id), None)
        else:
            totals = _load_account_totals(account_id, date_from, date_to)
    except STORE_ERRORS as e:
        print(f"[Data] Goal {goal.get('id')} progress failed: {e}")
        result["error"] = str(e)

    result["progress"] = evaluate_goal(goal, totals).to_dict()
    return result


# =============================================================================
# MONITOR AND OVERVIEW
# =============================================================================

def get_today_monitor(account_id: str, today: Optional[date] = None) -> dict:
    """Today's impressions and active flag per campaign."""
    day = (today or today_local()).isoformat()
    try:
        rows = get_store().get_today_campaigns(account_id, day)
    except STORE_ERRORS as e:
        print(f"[Data] Today monitor failed for {account_id}: {e}")
        return {"account_id": account_id, "date": day, "campaigns": [], "error": str(e)}

    campaigns: dict[str, dict] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        cid = str(row.get("campaign_id") or "").strip()
        if not cid:
            continue

        entry = campaigns.setdefault(cid, {
            "campaign_id": cid,
            "name": None,
            "platform": None,
            "impressions": 0.0,
            "is_active": None,
        })
        entry["impressions"] += to_amount(row.get("impressions"))
        if entry["name"] is None and row.get("campaign_name"):
            entry["name"] = row["campaign_name"]
        if entry["platform"] is None and row.get("platform"):
            entry["platform"] = row["platform"]
        if isinstance(row.get("is_active"), bool):
            entry["is_active"] = row["is_active"]

    # Rows without a flag count as active when they served impressions today
    for entry in campaigns.values():
        if entry["is_active"] is None:
            entry["is_active"] = entry["impressions"] > 0

    return {"account_id": account_id, "date": day, "campaigns": list(campaigns.values())}


def health_score(spend: float, impressions: float, clicks: float, conversions: float) -> Optional[int]:
    """Rough 30-100 account health for the overview list (None = no activity)."""
    if spend == 0 and impressions == 0:
        return None
    if spend > 0 and conversions == 0:
        return 35

    score = 70
    ctr = clicks / impressions if impressions > 0 else 0
    if ctr > 0.015:
        score += 10
    if conversions > 0:
        score += 10
    return max(30, min(100, score))


def get_accounts_overview(today: Optional[date] = None) -> dict:
    """
    Month-to-date spend, available budget and health score per managed account.

    Returns:
        {"accounts": [...] sorted by MTD spend, "totals": {budget, spent, available}}
    """
    period = mtd_range(today)
    empty_totals = {"budget": 0.0, "spent": 0.0, "available": 0.0}

    try:
        store = get_store()
        accounts = store.list_accounts()
        rows = store.get_insights(None, "campaign", period.date_from, period.date_to, columns=OVERVIEW_COLUMNS)
    except STORE_ERRORS as e:
        print(f"[Data] Accounts overview failed: {e}")
        return {"period": period.to_dict(), "accounts": [], "totals": empty_totals, "error": str(e)}

    records, rejections = parse_records(rows, id_field="account_id")
    _log_rejections("Accounts overview", rejections)
    by_account = aggregate(records)

    result = []
    for account in accounts:
        account_id = str(account.get("id") or "")
        totals = by_account.get(account_id) or AggregatedTotals(key=account_id)
        budget = _to_target(account.get("monthly_budget"))

        result.append({
            "id": account_id,
            "name": account.get("name") or "(sin nombre)",
            "is_active": bool(account.get("is_active")),
            "monthly_budget": budget,
            "platforms": account.get("platforms") or ["meta"],
            "spend_mtd": totals.spend,
            "available": budget - totals.spend if budget is not None else None,
            "health_score": health_score(totals.spend, totals.impressions, totals.clicks, totals.conversions),
        })

    result = sorted(result, key=lambda a: a["spend_mtd"], reverse=True)

    budget_total = sum(a["monthly_budget"] or 0 for a in result)
    spent_total = sum(a["spend_mtd"] for a in result)

    return {
        "period": period.to_dict(),
        "accounts": result,
        "totals": {
            "budget": budget_total,
            "spent": spent_total,
            "available": budget_total - spent_total if budget_total else 0.0,
        },
    }


def get_account_options() -> dict:
    """Meta and Google accounts for the selectors."""
    store = get_store()
    result = {"meta": [], "google": []}
    errors = []

    try:
        result["meta"] = [
            {"id": row.get("id"), "label": row.get("name") or row.get("account_num") or row.get("id")}
            for row in store.list_ad_accounts()
        ]
    except STORE_ERRORS as e:
        print(f"[Data] Meta accounts unavailable: {e}")
        errors.append(str(e))

    try:
        result["google"] = [
            {"id": row["account_id"], "label": row["label"]}
            for row in store.list_google_accounts()
        ]
    except STORE_ERRORS as e:
        print(f"[Data] Google accounts unavailable: {e}")
        errors.append(str(e))

    if errors:
        result["error"] = "; ".join(errors)
    return result
