"""
Clients API endpoints.

Client registry (list / create / delete) and the client dashboard.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from routers.metrics import resolve_or_400
from services.clients import (
    ClientValidationError,
    create_client,
    delete_client,
    get_client,
    list_clients,
)
from services.data_loader import STORE_ERRORS, get_client_dashboard

router = APIRouter()


class NewClientRequest(BaseModel):
    """Request body for creating a client."""
    name: str
    meta_account_id: Optional[str] = None
    google_account_id: Optional[str] = None
    budget: Optional[float] = None
    kpi1_name: Optional[str] = None
    kpi1_target: Optional[float] = None
    meta_kpi1_metric: Optional[str] = None
    google_kpi1_metric: Optional[str] = None
    kpi2_name: Optional[str] = None
    kpi2_target: Optional[float] = None
    meta_kpi2_metric: Optional[str] = None
    google_kpi2_metric: Optional[str] = None


@router.get("")
async def get_clients():
    """List all clients."""
    try:
        clients = list_clients()
    except STORE_ERRORS as e:
        raise HTTPException(status_code=502, detail=f"Could not load clients: {e}")
    return {"clients": clients, "count": len(clients)}


@router.post("")
async def add_client(request: NewClientRequest):
    """Create a client. Name, one ad account and KPI 1 are required."""
    try:
        client = create_client(**request.model_dump())
    except ClientValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except STORE_ERRORS as e:
        raise HTTPException(status_code=502, detail=f"Could not create client: {e}")
    return {"success": True, "client": client}


@router.get("/{client_id}")
async def get_single_client(client_id: str):
    """Get a single client row."""
    try:
        client = get_client(client_id)
    except STORE_ERRORS as e:
        raise HTTPException(status_code=502, detail=f"Could not load client: {e}")
    if not client:
        raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
    return client


@router.delete("/{client_id}")
async def remove_client(client_id: str):
    """Delete a client."""
    try:
        deleted = delete_client(client_id)
    except STORE_ERRORS as e:
        raise HTTPException(status_code=502, detail=f"Could not delete client: {e}")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
    return {"success": True, "deleted_id": client_id}


@router.get("/{client_id}/dashboard")
async def client_dashboard(
    client_id: str,
    view: str = "all",
    preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
):
    """Campaigns, totals, budget, KPI health and campaign goals for a client."""
    period = resolve_or_400(preset, date_from, date_to)
    try:
        dashboard = get_client_dashboard(client_id, period.date_from, period.date_to, view)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if dashboard is None:
        raise HTTPException(status_code=404, detail=f"Client {client_id} not found")
    if "client" not in dashboard:
        raise HTTPException(status_code=502, detail=dashboard.get("error", "Could not load client"))
    return dashboard
