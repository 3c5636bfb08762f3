import logging

import streamlit as st

import db
from schooladmin.config import get_setting

logging.basicConfig(
    level=get_setting("SCHOOL_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =========================
# 1️⃣ App Config
# =========================
st.set_page_config(page_title="🏫 School Admin", layout="wide")


@st.cache_resource(show_spinner=False)
def _bootstrap_db():
    # schema + demo seed, once per server process
    return db.bootstrap()


_bootstrap_db()


# =========================
# 2️⃣ Password Check
# =========================
def check_password(email: str, password: str):
    conn = db.get_connection()
    cur = conn.cursor()
    cur.execute("""
        SELECT id, fk_school_id, name, email, role
        FROM users
        WHERE email=? AND password=? AND role='Admin'
    """, (email, db.hash_password(password)))
    row = cur.fetchone()
    conn.close()

    if not row:
        return None

    school_id = row[1]
    configured = get_setting("SCHOOL_ID")
    if configured:
        school_id = int(configured)

    return {
        "id": row[0],
        "school_id": school_id,
        "name": row[2],
        "email": row[3],
        "role": row[4],
    }


# =========================
# 3️⃣ Login Page
# =========================
def render_login():
    st.markdown("<h2 style='text-align:center;'>🏫 School Admin</h2>", unsafe_allow_html=True)

    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        login_btn = st.form_submit_button("Log In")

    if login_btn:
        user = check_password(email.strip(), password.strip())
        if user:
            logger.info("Admin %s logged in", user["email"])
            st.session_state["user"] = user
            st.rerun()
        else:
            st.error("❌ Invalid credentials")


# =========================
# 4️⃣ Dashboard
# =========================
if "user" not in st.session_state:
    render_login()
else:
    from schooladmin.admin_dashboard import render_admin_dashboard
    render_admin_dashboard(st.session_state["user"])

    st.sidebar.markdown("---")
    if st.sidebar.button("🚪 Logout"):
        st.session_state.clear()
        st.rerun()
