"""
Account View - KPI grid per platform tab, the objectives panel and the
entity table by level (campaigns, ad sets, ads).
"""

import streamlit as st
import pandas as pd

from data_loader import (
    EMPTY,
    SELECTABLE_METRICS,
    date_range_picker,
    format_int,
    format_metric,
    format_money,
    format_pct,
    get_account_options,
    get_entity_table,
    get_kpi_grid,
    get_objectives_panel,
    guarded_load,
    metric_label,
    preferences,
    pretty_status,
)

PLATFORM_TABS = [("all", "Todas"), ("meta", "Meta"), ("google", "Google")]
METRIC_CHOICES = [m.value for m in SELECTABLE_METRICS]


def render():
    st.title("Cuenta")

    options = get_account_options()
    if "error" in options:
        st.warning(f"No se pudieron cargar todas las cuentas: {options['error']}")

    accounts = options["meta"] + options["google"]
    if not accounts:
        st.info("No se encontraron cuentas.")
        return

    labels = {a["id"]: a["label"] for a in accounts}
    platforms = {a["id"]: "meta" for a in options["meta"]}
    platforms.update({a["id"]: "google" for a in options["google"]})
    account_id = st.selectbox("Cuenta", list(labels), format_func=lambda a: labels.get(a, a))
    period = date_range_picker("account")

    st.caption(f"{labels.get(account_id)} · {period.date_from} → {period.date_to}")

    tabs = st.tabs([label for _, label in PLATFORM_TABS])
    for tab, (platform, _) in zip(tabs, PLATFORM_TABS):
        with tab:
            render_kpi_grid(account_id, platform, period)

    st.markdown("---")
    render_objectives(account_id, period)

    st.markdown("---")
    render_entity_table(account_id, platforms[account_id], period)


LEVEL_LABELS = {"campaign": "Campañas", "adset": "Conjuntos de anuncios", "ad": "Anuncios"}
PARENT_LABELS = {"adset": "Campaña", "ad": "Pertenece a"}
LEVELS = {"meta": ["campaign", "adset", "ad"], "google": ["campaign", "ad"]}


def entity_frame(rows: list[dict], level: str) -> pd.DataFrame:
    """Table rows for one level; ad sets and ads show their parent."""
    records = []
    for r in rows:
        record = {"Nombre": r.get("name") or r.get("id")}
        if level in PARENT_LABELS:
            record[PARENT_LABELS[level]] = r.get("parent_name") or EMPTY
        record.update({
            "Estado": pretty_status(r.get("status")),
            "Inversión": format_money(r.get("spend")),
            "Impresiones": format_int(r.get("impressions")),
            "Clicks": format_int(r.get("clicks")),
            "Resultados": format_int(r.get("conversions")),
            "CTR": format_pct(r.get("ctr")),
            "CPC": format_money(r.get("cpc"), 3),
        })
        records.append(record)
    return pd.DataFrame(records)


def render_entity_table(account_id: str, platform: str, period):
    level = st.radio(
        "Nivel", LEVELS[platform],
        format_func=lambda lv: LEVEL_LABELS[lv],
        horizontal=True,
        key=f"level_{platform}",
    )

    params = {"account": account_id, "level": level, "from": period.date_from, "to": period.date_to}
    table = guarded_load(
        f"entities:{platform}", params,
        lambda: get_entity_table(account_id, platform, level, period.date_from, period.date_to),
    )
    if table.get("error"):
        st.error(f"No se pudieron cargar las {LEVEL_LABELS[level].lower()}: {table['error']}")

    rows = table["rows"]
    st.subheader(f"{LEVEL_LABELS[level]} ({len(rows)})")
    if not rows:
        st.info("Sin datos para el período.")
        return
    st.dataframe(entity_frame(rows, level), use_container_width=True, hide_index=True)


def render_kpi_grid(account_id: str, platform: str, period):
    params = {"account": account_id, "platform": platform, "from": period.date_from, "to": period.date_to}
    grid = guarded_load(
        f"kpi_grid:{platform}", params,
        lambda: get_kpi_grid(account_id, period.date_from, period.date_to, platform),
    )
    if grid.get("error"):
        st.error(f"No se pudieron cargar los KPIs: {grid['error']}")

    cards = grid["cards"]
    for row_start in range(0, len(cards), 3):
        cols = st.columns(3)
        for col, card in zip(cols, cards[row_start:row_start + 3]):
            with col:
                st.metric(card["label"], card["display"])

    with st.expander("Configurar KPIs"):
        current = preferences.get_kpi_slots(account_id, platform)
        selected = st.multiselect(
            "KPIs a mostrar (hasta 8, en orden)",
            METRIC_CHOICES,
            default=current,
            format_func=metric_label,
            max_selections=preferences.KPI_SLOT_COUNT,
            key=f"slots_{platform}",
        )
        if st.button("Guardar KPIs", key=f"save_slots_{platform}"):
            try:
                preferences.set_kpi_slots(account_id, platform, selected)
                st.success("KPIs guardados")
                st.rerun()
            except ValueError as e:
                st.error(str(e))


def render_objectives(account_id: str, period):
    st.subheader("Objetivos")

    params = {"account": account_id, "from": period.date_from, "to": period.date_to}
    panel = guarded_load(
        "objectives", params,
        lambda: get_objectives_panel(account_id, period.date_from, period.date_to),
    )
    if panel.get("error"):
        st.error(f"No se pudieron cargar los objetivos: {panel['error']}")

    cols = st.columns(2)
    for col, objective in zip(cols, panel["objectives"]):
        with col:
            st.markdown(f"**{objective['label']}**")
            if objective["status"] == "no-data":
                st.caption("Sin datos para el período")
            else:
                st.caption(f"{objective['display_actual']} de {objective['display_target']}")
            st.progress(int(round(objective["progress_pct"])))
            if objective.get("remaining"):
                st.caption(f"Faltan {format_metric(objective['metric'], objective['remaining'])}")

    cols = st.columns(2)
    for col, indicator in zip(cols, panel["indicators"]):
        with col:
            st.metric(indicator["label"], indicator["display"])

    with st.expander("Configurar objetivos"):
        selection = preferences.get_objectives(account_id)
        with st.form("objectives_form"):
            values = {}
            col1, col2 = st.columns(2)
            for col, slot in ((col1, "obj1"), (col2, "obj2")):
                with col:
                    values[f"{slot}_metric"] = st.selectbox(
                        f"Objetivo {slot[-1]}", METRIC_CHOICES,
                        index=METRIC_CHOICES.index(selection[f"{slot}_metric"]),
                        format_func=metric_label,
                    )
                    values[f"{slot}_target"] = st.number_input(
                        f"Meta {slot[-1]}", value=float(selection[f"{slot}_target"]),
                    )
            col1, col2 = st.columns(2)
            for col, slot in ((col1, "ind1"), (col2, "ind2")):
                with col:
                    values[f"{slot}_metric"] = st.selectbox(
                        f"Indicador {slot[-1]}", METRIC_CHOICES,
                        index=METRIC_CHOICES.index(selection[f"{slot}_metric"]),
                        format_func=metric_label,
                    )
            submitted = st.form_submit_button("Guardar", type="primary")

        if submitted:
            try:
                preferences.set_objectives(account_id, **values)
                st.rerun()
            except ValueError as e:
                st.error(str(e))
