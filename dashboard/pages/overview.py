"""
Accounts Overview - Budget, month-to-date spend and a rough health score per account.
"""

import streamlit as st
import pandas as pd

from data_loader import format_money, get_accounts_overview, guarded_load


def health_label(score) -> str:
    if score is None:
        return "Sin actividad"
    if score >= 80:
        return f"🟢 {score}"
    if score >= 50:
        return f"🟡 {score}"
    return f"🔴 {score}"


def render():
    st.title("Gestión de Campañas Publicitarias")

    overview = guarded_load("overview", {}, get_accounts_overview)
    if overview.get("error"):
        st.error(f"No se pudieron cargar las cuentas: {overview['error']}")

    totals = overview["totals"]
    col1, col2, col3 = st.columns(3)
    col1.metric("Presupuesto total", format_money(totals["budget"], 0))
    col2.metric("Gastado", format_money(totals["spent"], 0))
    col3.metric("Disponible", format_money(totals["available"], 0))

    query = st.text_input("Buscar cliente…")
    accounts = [
        a for a in overview["accounts"]
        if query.lower() in (a["name"] or "").lower()
    ]

    if not accounts:
        st.info("No hay cuentas para mostrar.")
        return

    df = pd.DataFrame([
        {
            "Nombre cliente": a["name"],
            "Salud campaña": health_label(a["health_score"]),
            "Actividad": "Activa" if a["is_active"] else "Inactiva",
            "Plataformas": ", ".join(a["platforms"]),
            "Gastado (mes)": format_money(a["spend_mtd"], 0),
            "Presupuesto disponible": format_money(a["available"], 0),
        }
        for a in accounts
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)
