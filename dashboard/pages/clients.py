"""
Clients - Client registry.

Lists clients and creates new ones with their Meta / Google accounts and KPIs.
"""

import streamlit as st
import pandas as pd

from data_loader import (
    STORE_ERRORS,
    ClientValidationError,
    create_client,
    delete_client,
    format_money,
    get_account_options,
    list_clients,
)

# KPI metric vocabulary per platform
META_KPI_METRICS = ["", "conversions", "cpa", "cpm", "impressions", "clicks"]
GOOGLE_KPI_METRICS = ["", "conversions", "cost_per_conversion", "cost_micros", "cpm", "impressions", "clicks"]


def render():
    st.title("Clientes")
    st.markdown("*Clientes de la agencia con sus cuentas y KPIs*")

    try:
        clients = list_clients()
    except STORE_ERRORS as e:
        st.error(f"No se pudieron cargar los clientes: {e}")
        clients = []

    if clients:
        rows = [
            {
                "Cliente": c.get("name") or "Cliente sin nombre",
                "Presupuesto": format_money(c.get("budget"), 0),
                "Meta": c.get("meta_account_id") or "—",
                "Google": c.get("google_account_id") or "—",
                "KPI 1": c.get("kpi1_name") or "—",
                "KPI 2": c.get("kpi2_name") or "—",
            }
            for c in clients
        ]
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

        col1, col2 = st.columns([3, 1])
        with col1:
            selected = st.selectbox(
                "Cliente",
                clients,
                format_func=lambda c: c.get("name") or str(c.get("id")),
                key="clients_selected",
            )
        with col2:
            st.write("")
            if st.button("Ver detalle", type="primary"):
                st.session_state["client_id"] = selected.get("id")
                st.session_state["nav_page"] = "📋 Detalle de cliente"
                st.rerun()
            if st.button("Eliminar"):
                try:
                    delete_client(selected.get("id"))
                    st.success(f"Cliente {selected.get('name')} eliminado")
                    st.rerun()
                except STORE_ERRORS as e:
                    st.error(f"No se pudo eliminar: {e}")
    else:
        st.info("Todavía no hay clientes cargados.")

    st.markdown("---")
    render_new_client_form()


def render_new_client_form():
    """Form for creating a client."""
    st.subheader("Nuevo cliente")

    options = get_account_options()
    if "error" in options:
        st.warning(f"No se pudieron cargar todas las cuentas: {options['error']}")

    meta_choices = [None] + [a["id"] for a in options["meta"]]
    meta_labels = {a["id"]: a["label"] for a in options["meta"]}
    google_choices = [None] + [a["id"] for a in options["google"]]
    google_labels = {a["id"]: a["label"] for a in options["google"]}

    with st.form("new_client"):
        name = st.text_input("Nombre del cliente")
        budget = st.number_input("Presupuesto mensual", min_value=0.0, value=0.0, step=1000.0)

        col1, col2 = st.columns(2)
        with col1:
            meta_account = st.selectbox(
                "Cuenta de Meta", meta_choices,
                format_func=lambda a: "—" if a is None else meta_labels.get(a, a),
            )
        with col2:
            google_account = st.selectbox(
                "Cuenta de Google", google_choices,
                format_func=lambda a: "—" if a is None else google_labels.get(a, a),
            )

        st.markdown("**KPI 1** (obligatorio)")
        k1 = st.columns(4)
        kpi1_name = k1[0].text_input("Nombre", key="kpi1_name")
        kpi1_target = k1[1].number_input("Objetivo", min_value=0.0, value=0.0, key="kpi1_target")
        meta_kpi1 = k1[2].selectbox("Métrica Meta", META_KPI_METRICS, key="meta_kpi1")
        google_kpi1 = k1[3].selectbox("Métrica Google", GOOGLE_KPI_METRICS, key="google_kpi1")

        st.markdown("**KPI 2** (opcional)")
        k2 = st.columns(4)
        kpi2_name = k2[0].text_input("Nombre", key="kpi2_name")
        kpi2_target = k2[1].number_input("Objetivo", min_value=0.0, value=0.0, key="kpi2_target")
        meta_kpi2 = k2[2].selectbox("Métrica Meta", META_KPI_METRICS, key="meta_kpi2")
        google_kpi2 = k2[3].selectbox("Métrica Google", GOOGLE_KPI_METRICS, key="google_kpi2")

        submitted = st.form_submit_button("Crear cliente", type="primary")

    if not submitted:
        return

    try:
        client = create_client(
            name=name,
            meta_account_id=meta_account,
            google_account_id=google_account,
            budget=budget or None,
            kpi1_name=kpi1_name,
            kpi1_target=kpi1_target or None,
            meta_kpi1_metric=meta_kpi1,
            google_kpi1_metric=google_kpi1,
            kpi2_name=kpi2_name,
            kpi2_target=kpi2_target or None,
            meta_kpi2_metric=meta_kpi2,
            google_kpi2_metric=google_kpi2,
        )
    except ClientValidationError as e:
        st.error(str(e))
        return
    except STORE_ERRORS as e:
        st.error(f"No se pudo crear el cliente: {e}")
        return

    st.session_state["client_id"] = client.get("id")
    st.session_state["nav_page"] = "📋 Detalle de cliente"
    st.rerun()
