# tests/test_settings_repo.py
from schooladmin.schedule_utils import DEFAULT_DURATION, FULL_DAY, ScheduleDay, default_weekly_schedule
from schooladmin.settings_repo import get_settings, update_settings


def _school_week():
    week = default_weekly_schedule()
    week[0] = ScheduleDay(True, "08:00", "13:00")
    week[1] = ScheduleDay(True, "08:00", "13:00")
    week[5] = ScheduleDay(True, FULL_DAY, FULL_DAY)
    return week


def test_settings_not_found(conn, school):
    result = get_settings(conn, school.id)
    assert not result.success
    assert result.message == "Settings not found"


def test_save_and_load_settings(conn, school):
    saved = update_settings(conn, school.id, _school_week(), 40)
    assert saved.success
    assert saved.message == "Settings saved"

    loaded = get_settings(conn, school.id).data
    assert loaded["weekly_schedule"] == _school_week()
    assert loaded["subject_duration"] == 40


def test_save_accepts_plain_dicts_and_overwrites(conn, school):
    update_settings(conn, school.id, _school_week(), 40)
    as_dicts = [d.as_dict() for d in default_weekly_schedule()]
    assert update_settings(conn, school.id, as_dicts, 60).success

    loaded = get_settings(conn, school.id).data
    assert loaded["weekly_schedule"] == default_weekly_schedule()
    assert loaded["subject_duration"] == 60
    assert conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0] == 1


def test_malformed_stored_schedule_falls_back_to_default(conn, school):
    conn.execute("INSERT INTO settings(fk_school_id, weekly_schedule, subject_duration) VALUES (?, ?, ?)",
                 (school.id, "[{\"start\": \"08:00\"}", 17))
    conn.commit()
    loaded = get_settings(conn, school.id).data
    assert loaded["weekly_schedule"] == default_weekly_schedule()
    assert loaded["subject_duration"] == DEFAULT_DURATION


def test_stored_day_without_open_flag_falls_back(conn, school):
    days = ",".join(['{"start": "08:00", "end": "14:00"}'] * 7)
    conn.execute("INSERT INTO settings(fk_school_id, weekly_schedule, subject_duration) VALUES (?, ?, 45)",
                 (school.id, f"[{days}]"))
    conn.commit()
    assert get_settings(conn, school.id).data["weekly_schedule"] == default_weekly_schedule()


def test_update_rejects_bad_input(conn, school):
    assert not update_settings(conn, school.id, _school_week()[:6], 45).success
    assert not update_settings(conn, school.id, _school_week(), 47).success

    broken = _school_week()
    broken[2] = ScheduleDay(True, FULL_DAY, "13:00")
    assert not update_settings(conn, school.id, broken, 45).success
    assert not get_settings(conn, school.id).success


def test_update_rejects_incomplete_day_entries(conn, school):
    week = [d.as_dict() for d in default_weekly_schedule()]
    week[3] = {"open": True, "start": "08:00"}
    result = update_settings(conn, school.id, week, 45)
    assert not result.success
    assert result.message == "Weekly schedule has invalid opening hours"

    week[3] = {"open": "yes", "start": "08:00", "end": "14:00"}
    assert update_settings(conn, school.id, week, 45).message == "Weekly schedule has invalid opening hours"
    assert not get_settings(conn, school.id).success
