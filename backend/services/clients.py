"""
Client registry: agency clients with their ad accounts and KPI definitions.

Client rows live in the insights store. KPI 1 is required; KPI 2 is optional
and its fields are stored empty when it has no name.
"""

from typing import Optional

from services.data_loader import get_store


class ClientValidationError(ValueError):
    """Raised when a new client is missing its name, an account or KPI 1."""


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ClientValidationError(f"{field_name} must be a number")


def build_client_payload(
    name: str,
    meta_account_id: Optional[str] = None,
    google_account_id: Optional[str] = None,
    budget=None,
    kpi1_name: Optional[str] = None,
    kpi1_target=None,
    meta_kpi1_metric: Optional[str] = None,
    google_kpi1_metric: Optional[str] = None,
    kpi2_name: Optional[str] = None,
    kpi2_target=None,
    meta_kpi2_metric: Optional[str] = None,
    google_kpi2_metric: Optional[str] = None,
) -> dict:
    """Validate the new-client form and build the row to insert."""
    name = _clean(name)
    if not name:
        raise ClientValidationError("El nombre del cliente es obligatorio.")

    meta_account_id = _clean(meta_account_id)
    google_account_id = _clean(google_account_id)
    if not meta_account_id and not google_account_id:
        raise ClientValidationError("Seleccioná al menos una cuenta (Meta o Google).")

    kpi1_name = _clean(kpi1_name)
    if not kpi1_name:
        raise ClientValidationError("Tenés que definir al menos el KPI 1.")

    kpi2_name = _clean(kpi2_name)
    has_kpi2 = kpi2_name is not None

    return {
        "name": name,
        "budget": _number(budget, "budget"),
        "meta_account_id": meta_account_id,
        "google_account_id": google_account_id,
        "kpi1_name": kpi1_name,
        "kpi1_target": _number(kpi1_target, "kpi1_target"),
        "meta_kpi1_metric": _clean(meta_kpi1_metric),
        "google_kpi1_metric": _clean(google_kpi1_metric),
        "kpi2_name": kpi2_name,
        "kpi2_target": _number(kpi2_target, "kpi2_target") if has_kpi2 else None,
        "meta_kpi2_metric": _clean(meta_kpi2_metric) if has_kpi2 else None,
        "google_kpi2_metric": _clean(google_kpi2_metric) if has_kpi2 else None,
    }


def list_clients() -> list[dict]:
    """All clients, ordered by name."""
    return get_store().list_clients()


def get_client(client_id: str) -> Optional[dict]:
    return get_store().get_client(client_id)


def create_client(**fields) -> dict:
    """Validate and insert a client. Returns the stored row."""
    payload = build_client_payload(**fields)
    client = get_store().create_client(payload)
    print(f"[Clients] Created client {client.get('id')} ({payload['name']})")
    return client


def delete_client(client_id: str) -> bool:
    deleted = get_store().delete_client(client_id)
    if deleted:
        print(f"[Clients] Deleted client {client_id}")
    return deleted
