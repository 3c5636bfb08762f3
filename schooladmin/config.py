# schooladmin/config.py

import os
import datetime as dt
from typing import Optional

try:
    import streamlit as st
except Exception:  # running outside Streamlit
    st = None


BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULTS = {
    "SCHOOL_DB_PATH": os.path.join(BASE_DIR, "data", "school.db"),
    "SCHOOL_LOG_LEVEL": "INFO",
}


def _get_secret(key: str) -> Optional[str]:
    """
    Safely read a key from st.secrets if Streamlit is present; otherwise None.
    """
    if st is None:
        return None
    try:
        return st.secrets[key]
    except Exception:
        return None


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Resolution order:
    1) st.secrets[key]
    2) os.environ[key]
    3) default argument, then DEFAULTS
    """
    value = _get_secret(key)
    if value:
        return str(value)

    value = os.getenv(key)
    if value:
        return value

    if default is not None:
        return default
    return DEFAULTS.get(key)


def current_academic_year(today: Optional[dt.date] = None) -> str:
    configured = get_setting("ACADEMIC_YEAR")
    if configured:
        return configured
    today = today or dt.date.today()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start}-{str(start + 1)[-2:]}"
