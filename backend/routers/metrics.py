"""
Metrics API endpoints.

Account totals, KPI grid, objectives panel, campaign trees, today monitor and
the accounts overview. Store failures come back as {"error": ...} payloads
with empty data rather than as HTTP errors.
"""

from fastapi import APIRouter, HTTPException
from typing import Optional

from services.data_loader import (
    get_account_options,
    get_account_totals,
    get_entity_table,
    get_accounts_overview,
    get_google_campaigns,
    get_kpi_grid,
    get_meta_campaign_tree,
    get_objectives_panel,
    get_today_monitor,
)
from services.date_ranges import DATE_PRESETS, DEFAULT_PRESET, DateRange, resolve_range

router = APIRouter()

VALID_PLATFORMS = ["all", "meta", "google"]


def resolve_or_400(
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> DateRange:
    """Resolve query date params, turning bad input into a 400."""
    try:
        return resolve_range(preset, date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def check_platform(platform: str):
    if platform not in VALID_PLATFORMS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid platform: {platform}. Valid options: {VALID_PLATFORMS}",
        )


@router.get("/date-presets")
async def list_date_presets():
    """Date presets for the range picker."""
    return {
        "presets": [{"value": k, "label": v} for k, v in DATE_PRESETS.items()],
        "default": DEFAULT_PRESET,
    }


@router.get("/accounts/overview")
async def accounts_overview():
    """Month-to-date spend, budget and health per managed account."""
    return get_accounts_overview()


@router.get("/accounts/options")
async def account_options():
    """Meta and Google accounts for selectors."""
    return get_account_options()


@router.get("/accounts/{account_id}/totals")
async def account_totals(
    account_id: str,
    platform: str = "all",
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Summed counters and derived ratios for an account."""
    check_platform(platform)
    period = resolve_or_400(preset, date_from, date_to)
    return get_account_totals(account_id, period.date_from, period.date_to, platform)


@router.get("/accounts/{account_id}/kpis")
async def account_kpis(
    account_id: str,
    platform: str = "all",
    slots: Optional[str] = None,
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """
    KPI grid for an account.

    Args:
        slots: Comma-separated metrics; defaults to the saved slots
    """
    check_platform(platform)
    period = resolve_or_400(preset, date_from, date_to)
    slot_list = [s.strip() for s in slots.split(",") if s.strip()] if slots else None
    return get_kpi_grid(account_id, period.date_from, period.date_to, platform, slot_list)


@router.get("/accounts/{account_id}/objectives")
async def account_objectives(
    account_id: str,
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Objectives panel (two goals + two indicators) for an account."""
    period = resolve_or_400(preset, date_from, date_to)
    return get_objectives_panel(account_id, period.date_from, period.date_to)


@router.get("/accounts/{account_id}/meta-campaigns")
async def meta_campaigns(
    account_id: str,
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Meta campaigns with ad sets and ads."""
    period = resolve_or_400(preset, date_from, date_to)
    return get_meta_campaign_tree(account_id, period.date_from, period.date_to)


@router.get("/accounts/{account_id}/google-campaigns")
async def google_campaigns(
    account_id: str,
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Google campaigns with their ads."""
    period = resolve_or_400(preset, date_from, date_to)
    return get_google_campaigns(account_id, period.date_from, period.date_to)


@router.get("/accounts/{account_id}/entities")
async def entity_table(
    account_id: str,
    platform: str = "meta",
    level: str = "campaign",
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Flat campaign, ad set or ad rows for one platform."""
    period = resolve_or_400(preset, date_from, date_to)
    try:
        return get_entity_table(account_id, platform, level, period.date_from, period.date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/accounts/{account_id}/today")
async def today_monitor(account_id: str):
    """Today's impressions and active flag per campaign."""
    return get_today_monitor(account_id)
