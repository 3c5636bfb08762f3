# schooladmin/settings_repo.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Sequence

from schooladmin.results import Err, Ok, action
from schooladmin.schedule_utils import (
    DAY_NAMES,
    PERIOD_DURATIONS,
    ScheduleDay,
    dump_weekly_schedule,
    parse_duration,
    parse_schedule_day,
    parse_weekly_schedule,
)

logger = logging.getLogger(__name__)


@action("Failed to get settings")
def get_settings(conn, school_id: int):
    cur = conn.cursor()
    cur.execute(
        "SELECT weekly_schedule, subject_duration FROM settings WHERE fk_school_id=?",
        (school_id,),
    )
    row = cur.fetchone()
    if not row:
        return Err("Settings not found")
    return Ok({
        "weekly_schedule": parse_weekly_schedule(row[0]),
        "subject_duration": parse_duration(row[1]),
    })


@action("Failed to update settings")
def update_settings(conn, school_id: int, weekly_schedule: Sequence, subject_duration: int):
    if len(weekly_schedule) != len(DAY_NAMES):
        return Err("Weekly schedule must have one entry per weekday")
    schedule = [parse_schedule_day(d.as_dict() if isinstance(d, ScheduleDay) else d) for d in weekly_schedule]
    if any(day is None for day in schedule):
        return Err("Weekly schedule has invalid opening hours")
    if subject_duration not in PERIOD_DURATIONS:
        return Err(f"Subject duration must be one of {', '.join(map(str, PERIOD_DURATIONS))} minutes")

    cur = conn.cursor()
    cur.execute("""
        INSERT INTO settings (fk_school_id, weekly_schedule, subject_duration, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(fk_school_id) DO UPDATE SET
            weekly_schedule=excluded.weekly_schedule,
            subject_duration=excluded.subject_duration,
            updated_at=excluded.updated_at
    """, (school_id, dump_weekly_schedule(schedule), subject_duration,
          dt.datetime.now().isoformat(timespec="seconds")))
    conn.commit()
    logger.info("Settings saved for school %s", school_id)
    return Ok({"weekly_schedule": schedule, "subject_duration": subject_duration},
              message="Settings saved")
