# tests/test_class_routine.py
import pytest

from schooladmin.class_routine import (
    RoutineGrid,
    RoutineGridLoader,
    default_teacher_for,
    delete_class_routine,
    get_available_teachers,
    get_class_routine,
    get_subjects_for_class,
    upsert_class_routine,
)
from schooladmin.results import Err, Ok
from schooladmin.schedule_utils import ScheduleDay, default_weekly_schedule
from schooladmin.settings_repo import update_settings

YEAR = "2025-26"


def _settings(open_days=(0, 1), start="08:00", end="09:30", duration=45):
    week = default_weekly_schedule()
    for idx in open_days:
        week[idx] = ScheduleDay(True, start, end)
    return Ok({"weekly_schedule": week, "subject_duration": duration})


@pytest.fixture
def grid():
    return RoutineGrid.from_settings(_settings())


def test_grid_from_settings(grid):
    assert grid.days == ["Sunday", "Monday"]
    assert grid.time_slots == ["08:00-08:45", "08:45-09:30"]
    assert not grid.empty


def test_grid_from_failed_settings_is_empty():
    assert RoutineGrid.from_settings(Err("Settings not found")).empty
    closed = Ok({"weekly_schedule": default_weekly_schedule(), "subject_duration": 45})
    assert RoutineGrid.from_settings(closed).empty


def test_assign_validates_cell(grid, school):
    with pytest.raises(ValueError):
        grid.assign("Friday", "08:00-08:45", school.maths)
    with pytest.raises(ValueError):
        grid.assign("Sunday", "10:00-10:45", school.maths)
    with pytest.raises(ValueError):
        grid.assign("Sunday", "08:00-08:45", school.maths, class_type="lab")
    with pytest.raises(ValueError):
        grid.assign("Sunday", "08:00-08:45")


def test_break_needs_no_subject(grid):
    a = grid.assign("Monday", "08:45-09:30", class_type="break")
    assert a.subject_id is None
    grid.clear("Monday", "08:45-09:30")
    assert grid.get("Monday", "08:45-09:30") is None


def test_grid_frame(grid, school):
    grid.assign("Sunday", "08:00-08:45", school.maths, school.teacher1)
    grid.assign("Monday", "08:00-08:45", school.english, class_type="special")
    grid.assign("Monday", "08:45-09:30", class_type="break")
    frame = grid.to_frame({school.maths: "Mathematics", school.english: "English"},
                          {school.teacher1: "Ms Rahman"})
    assert frame.index.name == "Time"
    assert list(frame.columns) == ["Sunday", "Monday"]
    assert frame.loc["08:00-08:45", "Sunday"] == "Mathematics · Ms Rahman"
    assert frame.loc["08:00-08:45", "Monday"] == "English · (special)"
    assert frame.loc["08:45-09:30", "Monday"] == "Break"
    assert frame.loc["08:45-09:30", "Sunday"] == ""


def test_routine_save_and_reload(conn, school, grid):
    grid.assign("Sunday", "08:00-08:45", school.maths, school.teacher1)
    grid.assign("Monday", "08:45-09:30", class_type="break")
    saved = upsert_class_routine(conn, school.id, school.class5, YEAR, "admin@school.com", grid.to_slot_rows())
    assert saved.success

    routine = get_class_routine(conn, school.class5, YEAR).data
    assert routine["id"] == saved.data
    assert len(routine["slots"]) == 2

    fresh = RoutineGrid.from_settings(_settings())
    assert fresh.load_slots(routine["slots"]) == 0
    assert fresh.assignments == grid.assignments


def test_routine_save_replaces_slots(conn, school, grid):
    grid.assign("Sunday", "08:00-08:45", school.maths)
    grid.assign("Sunday", "08:45-09:30", school.english)
    first = upsert_class_routine(conn, school.id, school.class5, YEAR, "admin", grid.to_slot_rows())

    grid.clear("Sunday", "08:45-09:30")
    second = upsert_class_routine(conn, school.id, school.class5, YEAR, "admin", grid.to_slot_rows())
    assert first.data == second.data
    assert len(get_class_routine(conn, school.class5, YEAR).data["slots"]) == 1


def test_stored_slots_outside_schedule_are_skipped(school):
    grid = RoutineGrid.from_settings(_settings(duration=30))
    rows = [
        {"day": "Sunday", "start_time": "08:00", "end_time": "08:45", "subject_id": school.maths},
        {"day": "Sunday", "start_time": "08:00", "end_time": "08:30", "subject_id": school.maths},
    ]
    assert grid.load_slots(rows) == 1
    assert grid.get("Sunday", "08:00-08:30").class_type == "regular"


def test_routine_not_found_and_delete(conn, school):
    assert get_class_routine(conn, school.class6, YEAR).message == "Class routine not found"

    saved = upsert_class_routine(conn, school.id, school.class6, YEAR, "admin", [])
    assert delete_class_routine(conn, saved.data).success
    assert not get_class_routine(conn, school.class6, YEAR).success
    assert not delete_class_routine(conn, saved.data).success


def test_routine_rejects_foreign_class_and_bad_type(conn, school):
    assert not upsert_class_routine(conn, school.id + 1, school.class5, YEAR, "admin", []).success
    bad = [{"day": "Sunday", "start_time": "08:00", "end_time": "08:45", "class_type": "lab"}]
    assert not upsert_class_routine(conn, school.id, school.class5, YEAR, "admin", bad).success


def test_loader_keeps_newest_settings():
    loader = RoutineGridLoader(lambda: _settings())
    old = loader.begin()
    new = loader.begin()
    assert loader.complete(new, _settings(open_days=(3,)))
    assert not loader.complete(old, _settings(open_days=(0, 1, 2)))
    assert loader.grid.days == ["Wednesday"]
    assert loader.loaded


def test_loader_reports_missing_settings(conn, school):
    from schooladmin.settings_repo import get_settings

    loader = RoutineGridLoader(lambda: get_settings(conn, school.id))
    assert loader.load().empty
    assert loader.message == "Settings not found"

    update_settings(conn, school.id, _settings().data["weekly_schedule"], 45)
    assert loader.load().days == ["Sunday", "Monday"]
    assert loader.message == ""


def test_subjects_and_teachers(conn, school):
    subjects = get_subjects_for_class(conn, school.class5).data
    assert [s["name"] for s in subjects] == ["English", "Mathematics"]
    assert default_teacher_for(school.maths, subjects) == school.teacher1
    assert default_teacher_for(school.english, subjects) is None
    assert default_teacher_for(9999, subjects) is None

    teachers = get_available_teachers(conn, school.id).data
    assert [t["name"] for t in teachers] == ["Mr Karim", "Ms Rahman"]


def test_failed_save_keeps_previous_routine(conn, school, grid):
    grid.assign("Sunday", "08:00-08:45", school.maths, school.teacher1)
    assert upsert_class_routine(conn, school.id, school.class5, YEAR, "admin", grid.to_slot_rows()).success

    bad = [{"day": "Sunday", "start_time": "08:00", "end_time": "08:45", "subject_id": 999999}]
    result = upsert_class_routine(conn, school.id, school.class5, YEAR, "admin", bad)
    assert not result.success
    assert not conn.in_transaction

    # a later commit on the same connection must not persist the half-done replace
    assert update_settings(conn, school.id, _settings().data["weekly_schedule"], 45).success
    slots = get_class_routine(conn, school.class5, YEAR).data["slots"]
    assert len(slots) == 1
    assert slots[0]["subject_id"] == school.maths
