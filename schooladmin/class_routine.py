# schooladmin/class_routine.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from schooladmin.results import Err, Ok, Result, action
from schooladmin.roll_number_policy import RequestSequencer
from schooladmin.schedule_utils import active_days, routine_time_slots, split_slot

logger = logging.getLogger(__name__)

CLASS_TYPES = ("regular", "special", "break")


@dataclass(frozen=True)
class SlotAssignment:
    subject_id: Optional[int]
    teacher_id: Optional[int]
    class_type: str = "regular"


class RoutineGrid:
    """
    Week grid for one class: rows are time slots, columns are open days.
    Assignments are keyed by (day, slot).
    """

    def __init__(self, days: Sequence[str], time_slots: Sequence[str],
                 assignments: Optional[Dict[Tuple[str, str], SlotAssignment]] = None):
        self.days = list(days)
        self.time_slots = list(time_slots)
        self.assignments: Dict[Tuple[str, str], SlotAssignment] = dict(assignments or {})

    @classmethod
    def from_settings(cls, result: Result) -> "RoutineGrid":
        if not result.success or not result.data:
            return cls([], [])
        schedule = result.data["weekly_schedule"]
        duration = result.data["subject_duration"]
        return cls(active_days(schedule), routine_time_slots(schedule, duration))

    @property
    def empty(self) -> bool:
        return not self.days or not self.time_slots

    def assign(self, day: str, slot: str, subject_id: Optional[int] = None,
               teacher_id: Optional[int] = None, class_type: str = "regular") -> SlotAssignment:
        if day not in self.days:
            raise ValueError(f"{day} is not a school day")
        if slot not in self.time_slots:
            raise ValueError(f"{slot} is not a slot in this routine")
        if class_type not in CLASS_TYPES:
            raise ValueError(f"Unknown class type {class_type!r}")
        if class_type != "break" and not subject_id:
            raise ValueError("Pick a subject for a regular or special class")
        assignment = SlotAssignment(subject_id or None, teacher_id or None, class_type)
        self.assignments[(day, slot)] = assignment
        return assignment

    def clear(self, day: str, slot: str) -> None:
        self.assignments.pop((day, slot), None)

    def get(self, day: str, slot: str) -> Optional[SlotAssignment]:
        return self.assignments.get((day, slot))

    def to_frame(self, subject_names: Optional[Dict] = None, teacher_names: Optional[Dict] = None) -> pd.DataFrame:
        subject_names = subject_names or {}
        teacher_names = teacher_names or {}
        grid = pd.DataFrame("", index=self.time_slots, columns=self.days)
        grid.index.name = "Time"
        for (day, slot), a in self.assignments.items():
            if day not in grid.columns or slot not in grid.index:
                continue
            if a.class_type == "break":
                grid.loc[slot, day] = "Break"
                continue
            parts = [subject_names.get(a.subject_id, str(a.subject_id))]
            if a.teacher_id:
                parts.append(teacher_names.get(a.teacher_id, str(a.teacher_id)))
            if a.class_type == "special":
                parts.append("(special)")
            grid.loc[slot, day] = " · ".join(parts)
        return grid

    def to_slot_rows(self) -> List[Dict[str, Any]]:
        rows = []
        for day in self.days:
            for slot in self.time_slots:
                a = self.assignments.get((day, slot))
                if a is None:
                    continue
                start, end = split_slot(slot)
                rows.append({
                    "day": day,
                    "start_time": start,
                    "end_time": end,
                    "subject_id": a.subject_id,
                    "teacher_id": a.teacher_id,
                    "class_type": a.class_type,
                })
        return rows

    def load_slots(self, rows: Sequence[Dict[str, Any]]) -> int:
        """Fill assignments from stored slots; returns how many no longer fit the grid."""
        skipped = 0
        for r in rows:
            key = (r["day"], f"{r['start_time']}-{r['end_time']}")
            if key[0] not in self.days or key[1] not in self.time_slots:
                skipped += 1
                continue
            self.assignments[key] = SlotAssignment(r.get("subject_id"), r.get("teacher_id"),
                                                   r.get("class_type") or "regular")
        if skipped:
            logger.info("%s stored routine slots do not match the current schedule", skipped)
        return skipped


class RoutineGridLoader:
    """Builds the grid only from the newest settings load."""

    def __init__(self, fetch_settings: Callable[[], Result]):
        self._fetch_settings = fetch_settings
        self._sequencer = RequestSequencer()
        self.grid = RoutineGrid([], [])
        self.loaded = False
        self.message = ""

    def begin(self) -> int:
        self.loaded = False
        return self._sequencer.issue()

    def complete(self, token: int, result: Result) -> bool:
        if not self._sequencer.is_latest(token):
            logger.debug("Discarding stale settings response (token %s)", token)
            return False
        self.grid = RoutineGrid.from_settings(result)
        self.message = "" if result.success else result.message
        self.loaded = True
        return True

    def load(self) -> RoutineGrid:
        token = self.begin()
        self.complete(token, self._fetch_settings())
        return self.grid


def default_teacher_for(subject_id: Any, subjects: Sequence[Dict[str, Any]]) -> Optional[int]:
    for s in subjects:
        if s["id"] == subject_id:
            return s.get("teacher_id")
    return None


# -------------------------
# Repository
# -------------------------
@action("Failed to load subjects")
def get_subjects_for_class(conn, class_id: int):
    cur = conn.cursor()
    cur.execute("""
        SELECT s.id, s.subject_name, s.fk_teacher_id, COALESCE(t.name, '')
        FROM subjects s
        LEFT JOIN users t ON t.id = s.fk_teacher_id
        WHERE s.fk_class_id=?
        ORDER BY s.subject_name
    """, (class_id,))
    return [{"id": r[0], "name": r[1], "teacher_id": r[2], "teacher_name": r[3]} for r in cur.fetchall()]


@action("Failed to load teachers")
def get_available_teachers(conn, school_id: int):
    cur = conn.cursor()
    cur.execute("""
        SELECT id, name FROM users
        WHERE fk_school_id=? AND role='Teacher'
        ORDER BY name
    """, (school_id,))
    return [{"id": r[0], "name": r[1]} for r in cur.fetchall()]


@action("An error occurred while fetching the class routine")
def get_class_routine(conn, class_id: int, academic_year: str):
    cur = conn.cursor()
    cur.execute("""
        SELECT id, created_by, updated_at FROM class_routines
        WHERE fk_class_id=? AND academic_year=?
    """, (class_id, academic_year))
    row = cur.fetchone()
    if not row:
        return Err("Class routine not found")
    cur.execute("""
        SELECT day, start_time, end_time, fk_subject_id, fk_teacher_id, class_type
        FROM routine_slots
        WHERE fk_routine_id=?
        ORDER BY day, start_time
    """, (row[0],))
    slots = [
        {"day": r[0], "start_time": r[1], "end_time": r[2],
         "subject_id": r[3], "teacher_id": r[4], "class_type": r[5]}
        for r in cur.fetchall()
    ]
    return Ok({
        "id": row[0], "class_id": class_id, "academic_year": academic_year,
        "created_by": row[1], "updated_at": row[2], "slots": slots,
    }, message="Class routine retrieved")


@action("An error occurred while saving the class routine")
def upsert_class_routine(conn, school_id: int, class_id: int, academic_year: str,
                         created_by: str, slots: Sequence[Dict[str, Any]]):
    cur = conn.cursor()
    cur.execute("SELECT id FROM classes WHERE id=? AND fk_school_id=?", (class_id, school_id))
    if not cur.fetchone():
        return Err("The selected class does not belong to your school")
    for s in slots:
        if s.get("class_type", "regular") not in CLASS_TYPES:
            return Err(f"Unknown class type {s.get('class_type')!r}")

    now = dt.datetime.now().isoformat(timespec="seconds")
    cur.execute("SELECT id FROM class_routines WHERE fk_class_id=? AND academic_year=?",
                (class_id, academic_year))
    row = cur.fetchone()
    if row:
        routine_id = row[0]
        # replace the whole grid
        cur.execute("DELETE FROM routine_slots WHERE fk_routine_id=?", (routine_id,))
        cur.execute("UPDATE class_routines SET created_by=?, updated_at=? WHERE id=?",
                    (created_by, now, routine_id))
    else:
        cur.execute("""
            INSERT INTO class_routines(fk_school_id, fk_class_id, academic_year, created_by, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """, (school_id, class_id, academic_year, created_by, now))
        routine_id = cur.lastrowid

    for s in slots:
        cur.execute("""
            INSERT INTO routine_slots(fk_routine_id, day, start_time, end_time,
                                      fk_subject_id, fk_teacher_id, class_type)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (routine_id, s["day"], s["start_time"], s["end_time"],
              s.get("subject_id"), s.get("teacher_id"), s.get("class_type", "regular")))
    conn.commit()
    logger.info("Saved routine %s with %s slots", routine_id, len(slots))
    return Ok(routine_id, message="Class routine saved")


@action("An error occurred while deleting the class routine")
def delete_class_routine(conn, routine_id: int):
    cur = conn.cursor()
    cur.execute("DELETE FROM class_routines WHERE id=?", (routine_id,))
    if cur.rowcount == 0:
        return Err("Class routine not found")
    conn.commit()
    return Ok(routine_id, message="Class routine deleted")
