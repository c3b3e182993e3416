"""
Login - Shared dashboard login.

Stores a signed session token in the Streamlit session on success.
"""

import streamlit as st

from data_loader import check_credentials, create_session_token, safe_redirect

# Landing page per path after login
REDIRECT_PAGES = {
    "/clients": "👥 Clientes",
    "/client": "📋 Detalle de cliente",
    "/account": "📊 Cuenta",
    "/monitor": "⏱️ Monitoreo de hoy",
    "/manage": "🗂️ Gestión de cuentas",
}


def render():
    st.title("Perfo Ads Monitor")
    st.markdown("*Ingresá para ver el tablero*")

    with st.form("login"):
        username = st.text_input("Usuario")
        password = st.text_input("Contraseña", type="password")
        submitted = st.form_submit_button("Ingresar", type="primary")

    if not submitted:
        return

    if not check_credentials(username, password):
        st.error("Usuario o contraseña incorrectos.")
        return

    try:
        token = create_session_token(username)
    except ValueError as e:
        st.error(f"Login no configurado: {e}")
        return

    target = safe_redirect(st.query_params.get("next"))
    section = "/" + target.split("?")[0].strip("/").split("/")[0]
    st.session_state["session_token"] = token
    st.session_state["username"] = username
    st.session_state["nav_page"] = REDIRECT_PAGES.get(section, REDIRECT_PAGES["/clients"])
    st.rerun()
