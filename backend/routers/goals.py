"""
Goals API endpoints.

Per-campaign and account-level KPI goals, and their progress over a window.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from routers.metrics import resolve_or_400
from services.data_loader import get_goal_progress
from services.goal_store import (
    GoalValidationError,
    delete_goal,
    get_goal,
    list_goals,
    upsert_goal,
    update_goal,
)
from services.metrics import MetricKey

router = APIRouter()


class GoalRequest(BaseModel):
    """Request body for creating (or replacing) a goal."""
    entity_key: str
    metric: MetricKey
    target: float
    note: Optional[str] = None
    title: Optional[str] = None


class UpdateGoalRequest(BaseModel):
    """Request body for updating a goal."""
    metric: Optional[MetricKey] = None
    target: Optional[float] = None
    note: Optional[str] = None
    title: Optional[str] = None


@router.get("")
async def get_goals(entity_prefix: Optional[str] = None):
    """List goals, optionally filtered by entity key prefix (e.g. "meta:")."""
    goals = list_goals(entity_prefix)
    return {"goals": goals, "count": len(goals)}


@router.get("/metrics")
async def get_goal_metrics():
    """Metrics a goal can track."""
    return {"metrics": [m.value for m in MetricKey]}


@router.post("")
async def save_goal(request: GoalRequest):
    """Create a goal, or replace the one for the same entity and metric."""
    try:
        goal = upsert_goal(
            entity_key=request.entity_key,
            metric=request.metric,
            target=request.target,
            note=request.note,
            title=request.title,
        )
    except GoalValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "goal": goal}


@router.put("/{goal_id}")
async def edit_goal(goal_id: int, request: UpdateGoalRequest):
    """Update a goal."""
    try:
        updated = update_goal(
            goal_id=goal_id,
            metric=request.metric,
            target=request.target,
            note=request.note,
            title=request.title,
        )
    except GoalValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    return {"success": True, "goal": updated}


@router.delete("/{goal_id}")
async def remove_goal(goal_id: int):
    """Delete a goal."""
    if not delete_goal(goal_id):
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    return {"success": True, "deleted_id": goal_id}


@router.get("/{goal_id}/progress")
async def goal_progress(
    goal_id: int,
    account_id: str,
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Evaluate a goal against the account's data for a window."""
    goal = get_goal(goal_id)
    if not goal:
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    period = resolve_or_400(preset, date_from, date_to)
    return get_goal_progress(goal, account_id, period.date_from, period.date_to)
