"""
Perfo Ads Monitor Dashboard

Agency view of Meta Ads and Google Ads performance per client and account.
"""

# CRITICAL: Setup paths before ANY other imports
import sys
from pathlib import Path

DASHBOARD_DIR = Path(__file__).parent
PAGES_DIR = DASHBOARD_DIR / "pages"

# Force path to be first
sys.path = [str(DASHBOARD_DIR)] + [p for p in sys.path if p != str(DASHBOARD_DIR)]

# Now safe to import everything else
import streamlit as st
import importlib.util

st.set_page_config(
    page_title="Perfo Ads Monitor",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS
st.markdown("""
<style>
    [data-testid="stSidebarNav"] { display: none; }
    .health-good { color: #10B981; font-weight: 700; }
    .health-warn { color: #F59E0B; font-weight: 700; }
    .health-bad { color: #EF4444; font-weight: 700; }
    .health-unavailable { color: #6B7280; }
</style>
""", unsafe_allow_html=True)

from data_loader import verify_session_token

PAGES = {
    "👥 Clientes": "clients",
    "📋 Detalle de cliente": "client_detail",
    "📊 Cuenta": "account_view",
    "⏱️ Monitoreo de hoy": "monitor",
    "🗂️ Gestión de cuentas": "overview",
}


def load_page_module(page_name: str):
    """Load a page module by name using importlib."""
    page_path = PAGES_DIR / f"{page_name}.py"
    spec = importlib.util.spec_from_file_location(page_name, page_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[page_name] = module
    spec.loader.exec_module(module)
    return module


def is_logged_in() -> bool:
    token = st.session_state.get("session_token")
    return bool(token) and verify_session_token(token) is not None


def main():
    if not is_logged_in():
        st.session_state.pop("session_token", None)
        load_page_module("login").render()
        return

    st.sidebar.title("Perfo Ads Monitor")

    labels = list(PAGES)
    page = st.sidebar.radio(
        "Navegación",
        labels,
        index=labels.index(st.session_state.get("nav_page", labels[0])),
    )
    st.session_state["nav_page"] = page

    st.sidebar.markdown("---")
    st.sidebar.caption(f"Sesión: {st.session_state.get('username', '')}")
    if st.sidebar.button("Cerrar sesión"):
        for key in ("session_token", "username", "nav_page"):
            st.session_state.pop(key, None)
        st.rerun()

    module = load_page_module(PAGES[page])
    module.render()


if __name__ == "__main__":
    main()
