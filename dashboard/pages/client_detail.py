"""
Client Detail - KPI health, budget and the full campaign tree for a client.

Meta campaigns expand into ad sets and ads; Google campaigns into ads.
Campaign goals are edited here and evaluated against the selected window.
"""

import streamlit as st
import pandas as pd

from data_loader import (
    STORE_ERRORS,
    EMPTY,
    GoalValidationError,
    MetricKey,
    SELECTABLE_METRICS,
    date_range_picker,
    delete_goal,
    format_int,
    format_metric,
    format_money,
    format_pct,
    get_client_dashboard,
    goal_key,
    guarded_load,
    list_clients,
    list_goals,
    metric_label,
    upsert_goal,
)

HEALTH_LABELS = {
    "good": "🟢 En objetivo",
    "warn": "🟡 Cerca del objetivo",
    "bad": "🔴 Fuera de objetivo",
    "unavailable": "⚪ Sin datos",
}

VIEW_LABELS = {"all": "Todas", "meta": "Meta", "google": "Google"}


def campaign_frame(entries: list[dict]) -> pd.DataFrame:
    """Table rows for campaigns, ad sets or ads."""
    return pd.DataFrame([
        {
            "Nombre": e.get("name") or e.get("id"),
            "Plataforma": (e.get("platform") or "").capitalize(),
            "Estado": e.get("status") or EMPTY,
            "Inversión": format_money(e.get("spend")),
            "Impresiones": format_int(e.get("impressions")),
            "Clicks": format_int(e.get("clicks")),
            "Resultados": format_int(e.get("conversions")),
            "CTR": format_pct(e.get("ctr")),
            "CPC": format_money(e.get("cpc"), 3),
            "CPM": format_money(e.get("cpm")),
        }
        for e in entries
    ])


def render():
    st.title("Detalle de cliente")

    try:
        clients = list_clients()
    except STORE_ERRORS as e:
        st.error(f"No se pudieron cargar los clientes: {e}")
        return

    if not clients:
        st.info("Todavía no hay clientes cargados.")
        return

    ids = [c.get("id") for c in clients]
    current = st.session_state.get("client_id")
    client_id = st.selectbox(
        "Cliente",
        ids,
        index=ids.index(current) if current in ids else 0,
        format_func=lambda i: next((c.get("name") for c in clients if c.get("id") == i), str(i)),
    )
    st.session_state["client_id"] = client_id

    period = date_range_picker("client")
    view = st.radio("Plataforma", list(VIEW_LABELS), format_func=VIEW_LABELS.get, horizontal=True)

    params = {"client_id": client_id, "from": period.date_from, "to": period.date_to, "view": view}
    dashboard = guarded_load(
        "client_detail", params,
        lambda: get_client_dashboard(client_id, period.date_from, period.date_to, view),
    )

    if dashboard is None:
        st.error("No se encontró al cliente.")
        return
    if "client" not in dashboard:
        st.error(f"Error cargando cliente: {dashboard.get('error')}")
        return
    if dashboard.get("error"):
        st.warning(f"Algunos datos no se pudieron cargar: {dashboard['error']}")

    render_header(dashboard)
    st.markdown("---")
    render_campaigns(dashboard)
    st.markdown("---")
    render_goal_editor(dashboard)


def render_header(dashboard: dict):
    client = dashboard["client"]
    budget = dashboard["budget"]
    totals = dashboard["totals"]

    st.subheader(client.get("name") or "Cliente")
    st.caption(f"{dashboard['date_from']} → {dashboard['date_to']}")

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Presupuesto mensual", format_money(budget["budget"], 0))
    with col2:
        st.metric("Invertido", format_money(budget["spend"]))
    with col3:
        st.metric("Disponible", format_money(budget["available"]))

    kpi_cols = st.columns(len(dashboard["kpis"]))
    for col, kpi in zip(kpi_cols, dashboard["kpis"]):
        with col:
            st.markdown(f"**{kpi.get('name') or kpi['slot'].upper()}**")
            target = kpi.get("target")
            st.caption(f"Objetivo: {target if target is not None else 'Sin objetivo definido'}")
            st.markdown(HEALTH_LABELS.get(kpi["health"], kpi["health"]))
            if kpi.get("value") is not None:
                st.caption(f"Actual ({metric_label(kpi['metric'])}): {format_metric(kpi['metric'], kpi['value'])}")

    cols = st.columns(6)
    cols[0].metric("Inversión", format_money(totals["spend"]))
    cols[1].metric("Impresiones", format_int(totals["impressions"]))
    cols[2].metric("Clicks", format_int(totals["clicks"]))
    cols[3].metric("CTR", format_pct(totals["ctr"]))
    cols[4].metric("CPC", format_money(totals["cpc"], 3))
    cols[5].metric("CPM", format_money(totals["cpm"]))


def render_campaigns(dashboard: dict):
    campaigns = dashboard["campaigns"]
    st.subheader(f"Campañas ({len(campaigns)})")

    if not campaigns:
        st.info("No hay campañas con datos en el período.")
        return

    st.dataframe(campaign_frame(campaigns), use_container_width=True, hide_index=True)

    for campaign in campaigns:
        children = campaign.get("children", [])
        goals = campaign.get("goals", [])
        if not children and not goals:
            continue

        with st.expander(f"{campaign.get('name')} · {(campaign.get('platform') or '').capitalize()}"):
            for goal in goals:
                render_goal_progress(goal)

            if campaign.get("platform") == "meta":
                for adset in children:
                    st.markdown(f"**{adset.get('name')}**")
                    st.dataframe(campaign_frame([adset]), use_container_width=True, hide_index=True)
                    ads = adset.get("children", [])
                    if ads:
                        st.caption("Anuncios")
                        st.dataframe(campaign_frame(ads), use_container_width=True, hide_index=True)
            elif children:
                st.caption("Anuncios")
                st.dataframe(campaign_frame(children), use_container_width=True, hide_index=True)


def render_goal_progress(goal: dict):
    label = goal.get("title") or metric_label(goal["metric"])
    if goal["status"] == "no-data":
        st.caption(f"🎯 {label}: sin datos para {metric_label(goal['metric'])}")
        return

    actual = format_metric(goal["metric"], goal["actual"])
    target = format_metric(goal["metric"], goal["target"])
    st.caption(f"🎯 {label}: {actual} de {target} ({goal['progress_pct']:.0f}%)")
    st.progress(int(round(goal["progress_pct"])))


def render_goal_editor(dashboard: dict):
    """Create, replace or delete campaign goals."""
    st.subheader("Objetivos por campaña")

    campaigns = dashboard["campaigns"]
    if not campaigns:
        st.info("No hay campañas para asignar objetivos.")
        return

    keys = {goal_key(c.get("platform"), c["id"]): c.get("name") or c["id"] for c in campaigns}

    with st.form("campaign_goal"):
        col1, col2, col3 = st.columns([3, 2, 2])
        with col1:
            entity_key = st.selectbox("Campaña", list(keys), format_func=lambda k: keys[k])
        with col2:
            metric = st.selectbox(
                "KPI", [m.value for m in SELECTABLE_METRICS] + [MetricKey.CPA.value],
                format_func=metric_label,
            )
        with col3:
            target = st.number_input("Objetivo", value=0.0)
        title = st.text_input("Título (opcional)")
        submitted = st.form_submit_button("Guardar objetivo", type="primary")

    if submitted:
        try:
            upsert_goal(entity_key, metric, target, title=title or None)
            st.success("Objetivo guardado")
            st.rerun()
        except GoalValidationError as e:
            st.error(str(e))

    existing = [g for g in list_goals() if g["entity_key"] in keys]
    for goal in existing:
        col1, col2 = st.columns([0.9, 0.1])
        with col1:
            st.markdown(
                f"**{keys[goal['entity_key']]}** · {metric_label(goal['metric'])} → "
                f"{format_metric(goal['metric'], goal['target'])}"
            )
        with col2:
            if st.button("🗑️", key=f"delete_goal_{goal['id']}"):
                delete_goal(goal["id"])
                st.rerun()
