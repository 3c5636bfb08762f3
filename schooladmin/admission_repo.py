# schooladmin/admission_repo.py
from __future__ import annotations

import logging
import re
import sqlite3
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

from schooladmin.results import Err, Ok, action

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    "student_name": "Student name",
    "class_id": "Class",
    "section_id": "Section",
    "roll_number": "Roll number",
    "parent_name": "Parent name",
    "parent_phone": "Parent phone",
}

ADMISSION_COLUMNS = ["ID", "Student ID", "Name", "Class", "Section", "Roll No", "Parent", "Parent Phone", "Admitted"]

_YEAR_PREFIXED = re.compile(r"^(\d{4})(\d{3,})$")
_TRAILING_DIGITS = re.compile(r"(\d+)$")


# -------------------------
# Lookups
# -------------------------
@action("Failed to load classes")
def get_classes_by_school(conn, school_id: int):
    cur = conn.cursor()
    cur.execute("""
        SELECT id, class_name, academic_year, COALESCE(branch_name, '')
        FROM classes
        WHERE fk_school_id=?
        ORDER BY academic_year DESC, CAST(class_name AS INTEGER), class_name
    """, (school_id,))
    return [
        {
            "id": r[0],
            "name": r[1],
            "academic_year": r[2],
            "branch_name": r[3],
            "display_name": f"Class {r[1]} ({r[2]})",
        }
        for r in cur.fetchall()
    ]


@action("Failed to load sections")
def get_sections_by_class(conn, class_id: int):
    cur = conn.cursor()
    cur.execute("""
        SELECT id, section_name, fk_class_id
        FROM sections
        WHERE fk_class_id=?
        ORDER BY section_name
    """, (class_id,))
    return [{"id": r[0], "name": r[1], "class_id": r[2]} for r in cur.fetchall()]


@action("Failed to load student details")
def get_student_details(conn, student_pk: int):
    cur = conn.cursor()
    cur.execute("""
        SELECT u.id, u.student_id, u.name, u.email,
               u.fk_class_id, COALESCE(c.class_name, u.class),
               u.fk_section_id, COALESCE(s.section_name, u.section),
               COALESCE(u.roll_number, ''), u.gender, u.date_of_birth, u.admission_date,
               u.address, u.student_phone, u.parent_name, u.parent_phone, u.parent_relation
        FROM users u
        LEFT JOIN classes c  ON c.id = u.fk_class_id
        LEFT JOIN sections s ON s.id = u.fk_section_id
        WHERE u.id=? AND u.role='Student'
    """, (student_pk,))
    row = cur.fetchone()
    if not row:
        return Err("Student not found")
    keys = [
        "id", "student_id", "student_name", "email",
        "class_id", "class", "section_id", "section",
        "roll_number", "gender", "date_of_birth", "admission_date",
        "address", "student_phone", "parent_name", "parent_phone", "parent_relation",
    ]
    return Ok(dict(zip(keys, row)))


# -------------------------
# Roll numbers
# -------------------------
def _roll_sequence(roll_number: str) -> int:
    """
    Sequence part of a stored roll number.
    "2025007" -> 7 (year prefix dropped), "R12" -> 12, "ABC" -> 0
    """
    roll_number = (roll_number or "").strip()
    match = _YEAR_PREFIXED.match(roll_number)
    if match:
        return int(match.group(2))
    match = _TRAILING_DIGITS.search(roll_number)
    return int(match.group(1)) if match else 0


@action("Failed to generate roll number")
def generate_roll_number(conn, section_id: int, year: Optional[int] = None):
    """
    Next roll number for a section: <year><sequence:03d>.

    Read-only: nothing is reserved until an admission is saved with it.
    """
    cur = conn.cursor()
    cur.execute("""
        SELECT s.section_name, c.class_name
        FROM sections s
        JOIN classes c ON c.id = s.fk_class_id
        WHERE s.id=?
    """, (section_id,))
    section = cur.fetchone()
    if not section:
        logger.warning("Roll number requested for unknown section %s", section_id)
        return Err("Section not found")

    cur.execute("""
        SELECT roll_number FROM users
        WHERE fk_section_id=? AND role='Student'
          AND roll_number IS NOT NULL AND roll_number <> ''
    """, (section_id,))
    taken = {r[0] for r in cur.fetchall()}

    next_number = max((_roll_sequence(r) for r in taken), default=0) + 1
    year = year or date.today().year
    roll_number = f"{year}{next_number:03d}"
    while roll_number in taken:
        next_number += 1
        roll_number = f"{year}{next_number:03d}"

    logger.debug("Generated roll number %s for Class %s %s", roll_number, section[1], section[0])
    return roll_number


# -------------------------
# Admissions
# -------------------------
def validate_admission(form: Dict) -> List[str]:
    """Labels of required fields that are empty."""
    return [label for key, label in REQUIRED_FIELDS.items() if not str(form.get(key) or "").strip()]


def _check_section(cur, class_id, section_id):
    cur.execute("""
        SELECT c.class_name, s.section_name
        FROM sections s JOIN classes c ON c.id = s.fk_class_id
        WHERE s.id=? AND c.id=?
    """, (section_id, class_id))
    return cur.fetchone()


def _roll_taken(cur, section_id, roll_number, exclude_pk=None) -> bool:
    cur.execute("""
        SELECT id FROM users
        WHERE fk_section_id=? AND roll_number=? AND id IS NOT ?
    """, (section_id, roll_number, exclude_pk))
    return cur.fetchone() is not None


@action("Failed to create admission")
def create_student_admission(conn, school_id: int, form: Dict):
    missing = validate_admission(form)
    if missing:
        return Err("Missing required fields: " + ", ".join(missing))

    cur = conn.cursor()
    names = _check_section(cur, form["class_id"], form["section_id"])
    if not names:
        return Err("Section does not belong to the selected class")
    roll_number = str(form["roll_number"]).strip()
    if _roll_taken(cur, form["section_id"], roll_number):
        return Err(f"Roll number {roll_number} is already taken in this section")

    try:
        cur.execute("""
            INSERT INTO users(
                fk_school_id, fk_class_id, fk_section_id, name, email, role,
                class, section, roll_number, gender, date_of_birth, admission_date,
                address, student_phone, parent_name, parent_phone, parent_relation
            ) VALUES (?, ?, ?, ?, ?, 'Student', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            school_id, form["class_id"], form["section_id"],
            form["student_name"].strip(), (form.get("email") or None),
            names[0], names[1], roll_number,
            form.get("gender"), form.get("date_of_birth"),
            form.get("admission_date") or date.today().isoformat(),
            form.get("address"), form.get("student_phone"),
            form["parent_name"].strip(), form["parent_phone"].strip(), form.get("parent_relation"),
        ))
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        logger.warning("Admission rejected: %s", exc)
        return Err("Roll number or email already in use")

    student_pk = cur.lastrowid
    cur.execute("UPDATE users SET student_id=? WHERE id=?", (f"STU{student_pk:05d}", student_pk))
    conn.commit()
    logger.info("Admitted %s to Class %s-%s with roll %s", form["student_name"], names[0], names[1], roll_number)
    return Ok(student_pk, message="Admission saved")


@action("Failed to update student admission")
def update_student_admission(conn, student_pk: int, form: Dict):
    missing = validate_admission(form)
    if missing:
        return Err("Missing required fields: " + ", ".join(missing))

    cur = conn.cursor()
    cur.execute("SELECT id FROM users WHERE id=? AND role='Student'", (student_pk,))
    if not cur.fetchone():
        return Err("Student not found")
    names = _check_section(cur, form["class_id"], form["section_id"])
    if not names:
        return Err("Section does not belong to the selected class")
    roll_number = str(form["roll_number"]).strip()
    if _roll_taken(cur, form["section_id"], roll_number, exclude_pk=student_pk):
        return Err(f"Roll number {roll_number} is already taken in this section")

    try:
        cur.execute("""
            UPDATE users SET
                fk_class_id=?, fk_section_id=?, class=?, section=?, roll_number=?,
                name=?, email=?, gender=?, date_of_birth=?, admission_date=?,
                address=?, student_phone=?, parent_name=?, parent_phone=?, parent_relation=?
            WHERE id=?
        """, (
            form["class_id"], form["section_id"], names[0], names[1], roll_number,
            form["student_name"].strip(), (form.get("email") or None), form.get("gender"),
            form.get("date_of_birth"), form.get("admission_date"),
            form.get("address"), form.get("student_phone"),
            form["parent_name"].strip(), form["parent_phone"].strip(), form.get("parent_relation"),
            student_pk,
        ))
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        logger.warning("Admission update rejected: %s", exc)
        return Err("Roll number or email already in use")
    conn.commit()
    return Ok(student_pk, message="Student admission updated")


@action("Failed to load admissions")
def search_admissions(conn, school_id: int, query: str = ""):
    cur = conn.cursor()
    like = f"%{query.strip()}%"
    cur.execute("""
        SELECT u.id, COALESCE(u.student_id, ''), u.name,
               COALESCE(c.class_name, u.class, ''), COALESCE(s.section_name, u.section, ''),
               COALESCE(u.roll_number, ''), COALESCE(u.parent_name, ''), COALESCE(u.parent_phone, ''),
               COALESCE(u.admission_date, '')
        FROM users u
        LEFT JOIN classes c  ON c.id = u.fk_class_id
        LEFT JOIN sections s ON s.id = u.fk_section_id
        WHERE u.fk_school_id=? AND u.role='Student'
          AND (u.name LIKE ? OR u.student_id LIKE ? OR u.roll_number LIKE ? OR u.parent_name LIKE ?)
        ORDER BY CAST(c.class_name AS INTEGER), s.section_name, u.roll_number
    """, (school_id, like, like, like, like))
    rows = cur.fetchall()
    if not rows:
        return pd.DataFrame(columns=ADMISSION_COLUMNS)
    return pd.DataFrame(rows, columns=ADMISSION_COLUMNS)
