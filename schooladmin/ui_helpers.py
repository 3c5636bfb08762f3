import streamlit as st

import db


def render_card(title: str, subtitle: str | None = None):
    st.markdown(f"### {title}")
    if subtitle:
        st.caption(subtitle)


def end_card():
    st.divider()


def show_result(result, success_message: str | None = None) -> bool:
    """Toast on success, inline error otherwise. Returns result.success."""
    if result.success:
        st.toast(success_message or result.message or "Saved.")
        return True
    st.error(f"❌ {result.message}")
    return False


def with_connection(fn):
    """Bind a repository function to a short-lived connection per call."""
    def call(*args, **kwargs):
        conn = db.get_connection()
        try:
            return fn(conn, *args, **kwargs)
        finally:
            conn.close()
    return call
