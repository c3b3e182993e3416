"""
Today Monitor - Today's impressions and active state per campaign.
"""

import streamlit as st
import pandas as pd

from data_loader import format_int, get_account_options, get_today_monitor, guarded_load


def render():
    st.title("Monitoreo de campañas")
    st.markdown("*Nombre, plataforma, impresiones de hoy y estado (activa/inactiva)*")

    options = get_account_options()
    if "error" in options:
        st.warning(f"No se pudieron cargar todas las cuentas: {options['error']}")

    accounts = {a["id"]: a["label"] for a in options["meta"]}
    if not accounts:
        st.info("No se encontraron cuentas.")
        return

    account_id = st.selectbox("Cuenta", list(accounts), format_func=lambda a: accounts.get(a, a))

    monitor = guarded_load("monitor", {"account": account_id}, lambda: get_today_monitor(account_id))
    st.caption(f"Hoy: {monitor['date']}")

    if monitor.get("error"):
        st.error(f"Error: {monitor['error']}")
        return

    campaigns = monitor["campaigns"]
    if not campaigns:
        st.info("Sin campañas con datos hoy.")
        return

    active = sum(1 for c in campaigns if c["is_active"])
    col1, col2, col3 = st.columns(3)
    col1.metric("Campañas", len(campaigns))
    col2.metric("Activas", active)
    col3.metric("Impresiones hoy", format_int(sum(c["impressions"] for c in campaigns)))

    df = pd.DataFrame([
        {
            "Campaña": c["name"] or c["campaign_id"],
            "Plataforma": (c["platform"] or "—").capitalize(),
            "Impresiones": format_int(c["impressions"]),
            "Estado": "🟢 Activa" if c["is_active"] else "⚪ Inactiva",
        }
        for c in campaigns
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)
