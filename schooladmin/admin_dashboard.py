# schooladmin/admin_dashboard.py
import logging
from datetime import date

import pandas as pd
import streamlit as st

import db
from schooladmin.admission_repo import (
    create_student_admission,
    generate_roll_number,
    get_classes_by_school,
    get_sections_by_class,
    get_student_details,
    search_admissions,
    update_student_admission,
    validate_admission,
)
from schooladmin.class_routine import (
    CLASS_TYPES,
    RoutineGridLoader,
    default_teacher_for,
    get_available_teachers,
    get_class_routine,
    get_subjects_for_class,
    upsert_class_routine,
)
from schooladmin.config import current_academic_year
from schooladmin.results import unwrap_or
from schooladmin.roll_number_policy import AdmissionRollNumber, RollNumberSession
from schooladmin.schedule_utils import (
    DEFAULT_DURATION,
    PERIOD_DURATIONS,
    default_weekly_schedule,
    display_days,
    first_open_day,
    plan_periods,
    routine_time_slots,
    set_day_hours,
    time_options,
)
from schooladmin.settings_repo import get_settings, update_settings
from schooladmin.ui_helpers import end_card as _end_card
from schooladmin.ui_helpers import render_card as _render_card
from schooladmin.ui_helpers import show_result, with_connection

logger = logging.getLogger(__name__)

GENDERS = ["", "Male", "Female", "Other"]
RELATIONS = ["Father", "Mother", "Guardian"]


MENU_GROUPS = {
    "🎓 Admissions": [
        "📝 New Admission",
        "📋 Admissions",
    ],
    "📚 Academics": [
        "📆 Class Routine",
    ],
    "⚙️ Configuration": [
        "⚙️ School Settings",
    ],
}

ROUTE_ALIASES = {
    "📝 New Admission": "admission_new",
    "📋 Admissions": "admissions",
    "📆 Class Routine": "class_routine",
    "⚙️ School Settings": "settings",
}


def grouped_sidebar():
    st.sidebar.markdown("**MENU**")

    if "selected_menu_admin" not in st.session_state:
        st.session_state.selected_menu_admin = "📋 Admissions"

    for group, items in MENU_GROUPS.items():
        st.sidebar.caption(group)
        for item in items:
            if st.sidebar.button(item, key=f"admin_{item}", use_container_width=True):
                st.session_state.selected_menu_admin = item

    return st.session_state.selected_menu_admin


def _class_picker(classes, label="Class", key=None, selected_id=None):
    ids = [c["id"] for c in classes]
    index = ids.index(selected_id) if selected_id in ids else 0
    labels = {c["id"]: c["display_name"] for c in classes}
    return st.selectbox(label, ids, index=index, format_func=lambda i: labels.get(i, str(i)), key=key)


def _section_picker(sections, label="Section", key=None, selected_id=None):
    ids = [s["id"] for s in sections]
    index = ids.index(selected_id) if selected_id in ids else 0
    labels = {s["id"]: s["name"] for s in sections}
    return st.selectbox(label, ids, index=index, format_func=lambda i: labels.get(i, str(i)), key=key)


def _student_fields(prefix, details=None):
    """Student / parent inputs shared by the new and edit forms (call inside st.form)."""
    d = details or {}
    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Student Name *", value=d.get("student_name") or "", key=f"{prefix}_name")
        email = st.text_input("Student Email", value=d.get("email") or "", key=f"{prefix}_email")
        gender = st.selectbox("Gender", GENDERS,
                              index=GENDERS.index(d.get("gender")) if d.get("gender") in GENDERS else 0,
                              key=f"{prefix}_gender")
        dob = st.text_input("Date of Birth (YYYY-MM-DD)", value=d.get("date_of_birth") or "", key=f"{prefix}_dob")
        phone = st.text_input("Student Phone", value=d.get("student_phone") or "", key=f"{prefix}_phone")
    with c2:
        parent = st.text_input("Parent Name *", value=d.get("parent_name") or "", key=f"{prefix}_parent")
        parent_phone = st.text_input("Parent Phone *", value=d.get("parent_phone") or "", key=f"{prefix}_pphone")
        relation = st.selectbox("Relation", RELATIONS,
                                index=RELATIONS.index(d.get("parent_relation")) if d.get("parent_relation") in RELATIONS else 0,
                                key=f"{prefix}_relation")
        admitted = st.text_input("Admission Date", value=d.get("admission_date") or date.today().isoformat(),
                                 key=f"{prefix}_admitted")
    address = st.text_area("Address", value=d.get("address") or "", key=f"{prefix}_address")
    return {
        "student_name": name, "email": email.strip(), "gender": gender or None,
        "date_of_birth": dob.strip() or None, "student_phone": phone.strip(),
        "parent_name": parent, "parent_phone": parent_phone, "parent_relation": relation,
        "admission_date": admitted.strip() or None, "address": address.strip(),
    }


# --------------------------
# 📝 New Admission
# --------------------------
def render_new_admission(conn, user):
    _render_card("📝 Student Admission", "Roll number is issued per section and shown read-only")

    classes = unwrap_or(get_classes_by_school(conn, user["school_id"]), [])
    if not classes:
        st.warning("⚠️ No classes found. Please create classes first.")
        return

    if "admission_roll" not in st.session_state:
        st.session_state.admission_roll = AdmissionRollNumber(with_connection(generate_roll_number))
    field = st.session_state.admission_roll

    c1, c2, c3 = st.columns([1.2, 1, 1.2])
    with c1:
        class_id = _class_picker(classes, key="adm_class")
    sections = unwrap_or(get_sections_by_class(conn, class_id), [])
    with c2:
        if sections:
            section_id = _section_picker(sections, key=f"adm_section_{class_id}")
        else:
            section_id = None
            st.warning("⚠️ No sections for this class.")

    with st.spinner("Generating roll number..."):
        field.select(class_id, section_id)

    with c3:
        st.text_input("Roll Number", value=field.roll_number, disabled=True,
                      placeholder="Select class and section first")
        if st.button("🔄 Regenerate", disabled=section_id is None):
            with st.spinner("Generating roll number..."):
                field.refresh()
            st.rerun()
    if field.error:
        st.caption(f"Roll number unavailable: {field.error}")

    with st.form("admission_form", clear_on_submit=False):
        form = _student_fields("adm")
        submitted = st.form_submit_button("💾 Submit Admission", disabled=not field.can_submit)

    if submitted:
        form.update(field.payload())
        missing = validate_admission(form)
        if missing:
            st.error("Please fill: " + ", ".join(missing))
            return
        result = create_student_admission(conn, user["school_id"], form)
        if show_result(result):
            del st.session_state["admission_roll"]

    _end_card()


# --------------------------
# 📋 Admissions (list + edit)
# --------------------------
def render_admissions(conn, user):
    _render_card("📋 Admissions", "Search students and edit their admission")

    query = st.text_input("Search by name, student ID, roll number or parent", key="adm_search")
    df = unwrap_or(search_admissions(conn, user["school_id"], query), pd.DataFrame())
    if df.empty:
        st.info("No students found.")
        return
    st.dataframe(df, use_container_width=True, hide_index=True)

    labels = {row["ID"]: f"{row['Name']} ({row['Student ID']}) [Class {row['Class']}-{row['Section']}]"
              for _, row in df.iterrows()}
    student_pk = st.selectbox("Student", list(labels.keys()), format_func=lambda i: labels[i], key="adm_edit_pick")
    if st.button("✏️ Edit Admission"):
        session = RollNumberSession(student_pk, with_connection(generate_roll_number),
                                    with_connection(get_student_details))
        with st.spinner("Loading student data..."):
            loaded = session.open()
        if loaded.success:
            st.session_state.admission_edit = session
        else:
            st.error(f"❌ {loaded.message}")

    session = st.session_state.get("admission_edit")
    if session is not None:
        _render_admission_edit(conn, user, session)

    _end_card()


def _render_admission_edit(conn, user, session):
    details = session.details
    st.subheader(f"✏️ Editing {details.get('student_name', '')}")

    classes = unwrap_or(get_classes_by_school(conn, user["school_id"]), [])
    if not classes:
        st.warning("⚠️ No classes found.")
        return

    c1, c2, c3 = st.columns([1.2, 1, 1.2])
    with c1:
        class_id = _class_picker(classes, key=f"edit_class_{session.student_pk}",
                                 selected_id=details.get("class_id"))
    sections = unwrap_or(get_sections_by_class(conn, class_id), [])
    with c2:
        if sections:
            section_id = _section_picker(sections, key=f"edit_section_{session.student_pk}_{class_id}",
                                         selected_id=details.get("section_id"))
        else:
            section_id = None
            st.warning("⚠️ No sections for this class.")

    with st.spinner("Updating roll number..."):
        session.select(class_id, section_id)

    with c3:
        typed = st.text_input("Roll Number", value=session.roll_number, disabled=not session.editable,
                              help="Editable only after moving the student to another class or section")
        if session.editable and typed.strip() != session.roll_number:
            session.edit_roll_number(typed)

    with st.form(f"admission_edit_{session.student_pk}"):
        form = _student_fields(f"edit_{session.student_pk}", details)
        c_save, c_cancel = st.columns(2)
        save = c_save.form_submit_button("💾 Save Changes", disabled=not session.can_submit)
        cancel = c_cancel.form_submit_button("Cancel")

    if cancel:
        del st.session_state["admission_edit"]
        st.rerun()
    if save:
        form.update(session.payload())
        missing = validate_admission(form)
        if missing:
            st.error("Please fill: " + ", ".join(missing))
            return
        result = update_student_admission(conn, session.student_pk, form)
        if show_result(result):
            del st.session_state["admission_edit"]


# --------------------------
# ⚙️ School Settings
# --------------------------
def _load_settings_state(conn, school_id):
    result = get_settings(conn, school_id)
    if result.success:
        schedule = result.data["weekly_schedule"]
        duration = result.data["subject_duration"]
    else:
        st.toast(result.message or "Failed to load settings")
        schedule, duration = default_weekly_schedule(), DEFAULT_DURATION
    st.session_state.settings_schedule = schedule
    st.session_state.settings_duration = duration
    st.session_state.settings_saved = (schedule, duration)


def render_settings(conn, user):
    _render_card("⚙️ School Settings", "Weekly schedule and period duration")

    if "settings_schedule" not in st.session_state:
        _load_settings_state(conn, user["school_id"])
    schedule = st.session_state.settings_schedule

    st.subheader("🗓️ Weekly Schedule")
    options = time_options()
    for name, idx, day in display_days(schedule):
        c1, c2, c3 = st.columns([1.2, 1, 1])
        is_open = c1.checkbox(name, value=day.open)
        if is_open != day.open:
            st.session_state.settings_schedule = set_day_hours(schedule, idx, open=is_open)
            st.rerun()
        if not day.open:
            c2.caption("Closed")
            continue
        day_options = options if day.start in options and day.end in options else [day.start, day.end] + options
        start = c2.selectbox(f"{name} opens", day_options, index=day_options.index(day.start),
                             label_visibility="collapsed")
        end = c3.selectbox(f"{name} closes", day_options, index=day_options.index(day.end),
                           label_visibility="collapsed")
        if start != day.start:
            st.session_state.settings_schedule = set_day_hours(schedule, idx, start=start)
            st.rerun()
        if end != day.end:
            st.session_state.settings_schedule = set_day_hours(schedule, idx, end=end)
            st.rerun()

    durations = list(PERIOD_DURATIONS)
    duration = st.selectbox("Subject duration (minutes)", durations,
                            index=durations.index(st.session_state.settings_duration))
    st.session_state.settings_duration = duration

    has_changes = (schedule, duration) != st.session_state.settings_saved
    c_save, c_reset = st.columns(2)
    if c_save.button("💾 Save Schedule", disabled=not has_changes, use_container_width=True):
        result = update_settings(conn, user["school_id"], schedule, duration)
        if show_result(result, "Schedule saved."):
            st.session_state.settings_saved = (schedule, duration)
    if c_reset.button("↩️ Discard changes", disabled=not has_changes, use_container_width=True):
        _load_settings_state(conn, user["school_id"])
        st.rerun()

    with st.expander("🔎 Slot preview", expanded=True):
        slots = routine_time_slots(schedule, duration)
        if slots:
            st.write(", ".join(slots))
        else:
            st.info("Open at least one day to see the time slots.")

    with st.expander("🧮 Period planner (break / lunch)"):
        day = first_open_day(schedule)
        if day is None:
            st.info("Open at least one day to plan periods.")
        else:
            p1, p2, p3, p4 = st.columns(4)
            break_duration = p1.number_input("Break (min)", 0, 60, value=15)
            break_after = p2.number_input("Break after period", 0, 12, value=3)
            lunch_duration = p3.number_input("Lunch (min)", 0, 90, value=30)
            lunch_after = p4.number_input("Lunch after period", 0, 12, value=5)
            plan = plan_periods(day.start, day.end, duration,
                                break_duration=int(break_duration), break_after=int(break_after),
                                lunch_duration=int(lunch_duration), lunch_after=int(lunch_after),
                                include_break=break_duration > 0, include_lunch=lunch_duration > 0)
            st.caption(f"{plan.total_periods} periods in {plan.total_hours} hours")
            st.dataframe(pd.DataFrame([p.__dict__ for p in plan.periods]),
                         use_container_width=True, hide_index=True)

    _end_card()


# --------------------------
# 📆 Class Routine
# --------------------------
def render_class_routine(conn, user):
    _render_card("📆 Class Routine", "Rows follow the first open day's hours")

    classes = unwrap_or(get_classes_by_school(conn, user["school_id"]), [])
    if not classes:
        st.warning("⚠️ No classes found.")
        return

    years = sorted({c["academic_year"] for c in classes}, reverse=True)
    default_year = current_academic_year()
    c1, c2 = st.columns(2)
    year = c1.selectbox("Academic Year", years,
                        index=years.index(default_year) if default_year in years else 0, key="rt_year")
    year_classes = [c for c in classes if c["academic_year"] == year]
    with c2:
        class_id = _class_picker(year_classes, key=f"rt_class_{year}")

    grid_key = f"routine_grid_{class_id}_{year}"
    if grid_key not in st.session_state:
        loader = RoutineGridLoader(lambda: get_settings(conn, user["school_id"]))
        with st.spinner("Loading schedule..."):
            grid = loader.load()
        if loader.message:
            st.error(f"❌ {loader.message}")
        stored = get_class_routine(conn, class_id, year)
        if stored.success:
            skipped = grid.load_slots(stored.data["slots"])
            if skipped:
                st.caption(f"{skipped} saved slots no longer match the school schedule and were left out.")
        st.session_state[grid_key] = grid
    grid = st.session_state[grid_key]

    if grid.empty:
        st.info("No open days or period duration configured. Set them under ⚙️ School Settings.")
        return

    subjects = unwrap_or(get_subjects_for_class(conn, class_id), [])
    teachers = unwrap_or(get_available_teachers(conn, user["school_id"]), [])
    subject_names = {s["id"]: s["name"] for s in subjects}
    teacher_names = {t["id"]: t["name"] for t in teachers}
    if not subjects:
        st.warning("⚠️ No subjects for this class.")

    st.dataframe(grid.to_frame(subject_names, teacher_names), use_container_width=True)

    st.subheader("Assign a slot")
    a1, a2, a3 = st.columns(3)
    day = a1.selectbox("Day", grid.days, key="rt_day")
    slot = a2.selectbox("Time", grid.time_slots, key="rt_slot")
    class_type = a3.selectbox("Class Type", list(CLASS_TYPES), format_func=str.capitalize, key="rt_type")

    b1, b2 = st.columns(2)
    subject_ids = [None] + list(subject_names)
    subject_id = b1.selectbox("Subject", subject_ids,
                              format_func=lambda i: "—" if i is None else subject_names[i], key="rt_subject")
    teacher_ids = [None] + list(teacher_names)
    suggested = default_teacher_for(subject_id, subjects)
    teacher_id = b2.selectbox("Teacher", teacher_ids,
                              index=teacher_ids.index(suggested) if suggested in teacher_ids else 0,
                              format_func=lambda i: "—" if i is None else teacher_names[i],
                              key=f"rt_teacher_{subject_id}")

    c_add, c_clear, c_save = st.columns(3)
    if c_add.button("➕ Assign", use_container_width=True):
        try:
            grid.assign(day, slot, subject_id, teacher_id, class_type)
            st.rerun()
        except ValueError as e:
            st.error(str(e))
    if c_clear.button("🗑️ Clear Slot", use_container_width=True):
        grid.clear(day, slot)
        st.rerun()
    if c_save.button("💾 Save Routine", use_container_width=True):
        result = upsert_class_routine(conn, user["school_id"], class_id, year,
                                      user.get("email", ""), grid.to_slot_rows())
        show_result(result)

    _end_card()


def render_admin_dashboard(user):
    choice = grouped_sidebar()
    route = ROUTE_ALIASES.get(choice, "admissions")

    conn = db.get_connection()
    try:
        if route == "admission_new":
            render_new_admission(conn, user)
        elif route == "admissions":
            render_admissions(conn, user)
        elif route == "class_routine":
            render_class_routine(conn, user)
        elif route == "settings":
            render_settings(conn, user)
    finally:
        conn.close()
