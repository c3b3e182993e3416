"""
Preferences API endpoints.

KPI slots, objectives panel selection and the selected date preset.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from routers.metrics import check_platform
from services.preferences import (
    get_all,
    set_date_preset,
    set_kpi_slots,
    set_objectives,
)

router = APIRouter()


class KpiSlotsRequest(BaseModel):
    """Request body for saving KPI slots."""
    account_id: str
    platform: str = "all"
    slots: list[str]


class ObjectivesRequest(BaseModel):
    """Request body for saving the objectives panel selection."""
    account_id: str
    obj1_metric: Optional[str] = None
    obj2_metric: Optional[str] = None
    ind1_metric: Optional[str] = None
    ind2_metric: Optional[str] = None
    obj1_target: Optional[float] = None
    obj2_target: Optional[float] = None


class DatePresetRequest(BaseModel):
    preset: str


@router.get("")
async def get_preferences(account_id: Optional[str] = None, platform: str = "all"):
    """Preferences relevant to a view."""
    check_platform(platform)
    return get_all(account_id, platform)


@router.put("/kpi-slots")
async def save_kpi_slots(request: KpiSlotsRequest):
    """Save the KPI slots for an account and platform tab."""
    check_platform(request.platform)
    try:
        slots = set_kpi_slots(request.account_id, request.platform, request.slots)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "kpi_slots": slots}


@router.put("/objectives")
async def save_objectives(request: ObjectivesRequest):
    """Save the objectives panel selection for an account."""
    values = request.model_dump(exclude={"account_id"})
    try:
        objectives = set_objectives(request.account_id, **values)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "objectives": objectives}


@router.put("/date-preset")
async def save_date_preset(request: DatePresetRequest):
    """Save the selected date preset."""
    try:
        preset = set_date_preset(request.preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "date_preset": preset}
