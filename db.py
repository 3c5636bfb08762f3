# db.py — school admin schema (sqlite3)
# - classes / sections are separate: roll numbers are unique per section
# - users keeps legacy text columns (class, section) next to the fk_* links
# - settings holds the weekly schedule as JSON text, one row per school
# - Seeds demo data; every seed helper is idempotent (runs only if empty)
# - Enforces foreign key constraints via PRAGMA foreign_keys = ON

import os
import sqlite3
import hashlib
import logging
from datetime import date

from schooladmin.config import get_setting, current_academic_year
from schooladmin.schedule_utils import ScheduleDay, dump_weekly_schedule, DEFAULT_DURATION

logger = logging.getLogger(__name__)

DB_PATH = get_setting("SCHOOL_DB_PATH")


# -------------------------
# Connection
# -------------------------
def get_connection():
    """
    Create a SQLite connection with foreign keys enforced.
    """
    folder = os.path.dirname(DB_PATH)
    if folder:
        os.makedirs(folder, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    # IMPORTANT: Enforce FK constraints in SQLite (off by default)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


# -------------------------
# Schema
# -------------------------
def init_db():
    """
    Create all tables and helpful indexes.
    """
    conn = get_connection()
    cur = conn.cursor()

    cur.execute("""
    CREATE TABLE IF NOT EXISTS schools (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        address TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS classes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_school_id INTEGER NOT NULL,
        class_name TEXT NOT NULL,                  -- "1", "10", "Nursery"
        academic_year TEXT NOT NULL,               -- e.g. "2025-26"
        branch_name TEXT,
        UNIQUE(fk_school_id, class_name, academic_year),
        FOREIGN KEY(fk_school_id) REFERENCES schools(id) ON DELETE CASCADE
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS sections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_class_id INTEGER NOT NULL,
        section_name TEXT NOT NULL,                -- "A", "B"
        capacity INTEGER,
        UNIQUE(fk_class_id, section_name),
        FOREIGN KEY(fk_class_id) REFERENCES classes(id) ON DELETE CASCADE
    );
    """)

    # Users: students, teachers, parents and admins share one table
    cur.execute("""
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_school_id INTEGER NOT NULL,
        fk_class_id INTEGER,
        fk_section_id INTEGER,
        student_id TEXT UNIQUE,                    -- business code (e.g., S1A01 / T01)
        name TEXT NOT NULL,
        email TEXT UNIQUE,
        password TEXT,                             -- sha256 hex
        role TEXT NOT NULL,                        -- Student / Teacher / Parent / Admin
        class TEXT,                                -- legacy: class name
        section TEXT,                              -- legacy: section name
        roll_number TEXT,
        gender TEXT,
        date_of_birth TEXT,
        admission_date TEXT,
        address TEXT,
        student_phone TEXT,
        parent_name TEXT,
        parent_phone TEXT,
        parent_relation TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(fk_section_id, roll_number),
        FOREIGN KEY(fk_school_id)  REFERENCES schools(id)  ON DELETE CASCADE,
        FOREIGN KEY(fk_class_id)   REFERENCES classes(id)  ON DELETE SET NULL,
        FOREIGN KEY(fk_section_id) REFERENCES sections(id) ON DELETE SET NULL
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS subjects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_school_id INTEGER,
        fk_class_id INTEGER,
        fk_teacher_id INTEGER,                     -- default teacher
        subject_name TEXT NOT NULL,
        FOREIGN KEY(fk_school_id)  REFERENCES schools(id) ON DELETE CASCADE,
        FOREIGN KEY(fk_class_id)   REFERENCES classes(id) ON DELETE CASCADE,
        FOREIGN KEY(fk_teacher_id) REFERENCES users(id)   ON DELETE SET NULL
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS settings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_school_id INTEGER NOT NULL UNIQUE,
        weekly_schedule TEXT,                      -- JSON: 7 x {open,start,end}, Sunday first
        subject_duration INTEGER,                  -- minutes per period
        updated_at TEXT,
        FOREIGN KEY(fk_school_id) REFERENCES schools(id) ON DELETE CASCADE
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS class_routines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_school_id INTEGER NOT NULL,
        fk_class_id INTEGER NOT NULL,
        academic_year TEXT NOT NULL,
        created_by TEXT,
        updated_at TEXT,
        UNIQUE(fk_class_id, academic_year),
        FOREIGN KEY(fk_school_id) REFERENCES schools(id) ON DELETE CASCADE,
        FOREIGN KEY(fk_class_id)  REFERENCES classes(id) ON DELETE CASCADE
    );
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS routine_slots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fk_routine_id INTEGER NOT NULL,
        day TEXT NOT NULL,                         -- "Sunday" .. "Saturday"
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        fk_subject_id INTEGER,
        fk_teacher_id INTEGER,
        class_type TEXT NOT NULL DEFAULT 'regular'
            CHECK (class_type IN ('regular','special','break')),
        UNIQUE(fk_routine_id, day, start_time),
        FOREIGN KEY(fk_routine_id) REFERENCES class_routines(id) ON DELETE CASCADE,
        FOREIGN KEY(fk_subject_id) REFERENCES subjects(id)       ON DELETE SET NULL,
        FOREIGN KEY(fk_teacher_id) REFERENCES users(id)          ON DELETE SET NULL
    );
    """)

    cur.execute("CREATE INDEX IF NOT EXISTS idx_users_section_roll ON users (fk_section_id, roll_number);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users (fk_school_id, role);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_sections_class ON sections (fk_class_id);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_routine_slots ON routine_slots (fk_routine_id, day);")

    conn.commit()
    conn.close()


# -------------------------
# Helper utilities
# -------------------------
def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _get_section_id(cur, class_id, section_name):
    """
    Resolve a (class, section_name) to sections.id
    """
    cur.execute("SELECT id FROM sections WHERE fk_class_id=? AND section_name=?", (class_id, section_name))
    row = cur.fetchone()
    return row[0] if row else None


# -------------------------
# Seeding helpers
# -------------------------
def _ensure_demo_school():
    conn = get_connection()
    cur = conn.cursor()
    cur.execute("SELECT id FROM schools WHERE name=?", ("Demo School",))
    row = cur.fetchone()
    if row:
        school_id = row[0]
    else:
        cur.execute("INSERT INTO schools(name, address) VALUES (?, ?)", ("Demo School", "Demo Address"))
        school_id = cur.lastrowid
        conn.commit()
    conn.close()
    return school_id


def seed_classes_and_sections(school_id):
    """
    Classes 1..10 for the current academic year, sections A/B each.
    """
    academic_year = current_academic_year()
    conn = get_connection()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM classes WHERE fk_school_id=?", (school_id,))
    if cur.fetchone()[0] == 0:
        for cls in range(1, 11):
            cur.execute("""
                INSERT INTO classes(fk_school_id, class_name, academic_year, branch_name)
                VALUES (?, ?, ?, ?)
            """, (school_id, str(cls), academic_year, "Main Campus"))
            class_id = cur.lastrowid
            for sec in ("A", "B"):
                cur.execute("INSERT INTO sections(fk_class_id, section_name, capacity) VALUES (?, ?, ?)",
                            (class_id, sec, 40))
        conn.commit()
        logger.info("Classes 1-10 (A & B) created for %s", academic_year)
    conn.close()


def seed_sample_users(school_id):
    """
    5 students per section with sequential roll numbers, and 3 teachers.
    """
    year = date.today().year
    conn = get_connection()
    cur = conn.cursor()

    cur.execute("SELECT COUNT(*) FROM users WHERE role='Student' AND fk_school_id=?", (school_id,))
    if cur.fetchone()[0] == 0:
        cur.execute("SELECT id, class_name FROM classes WHERE fk_school_id=? ORDER BY id", (school_id,))
        for class_id, class_name in cur.fetchall():
            for sec in ("A", "B"):
                section_id = _get_section_id(cur, class_id, sec)
                for idx in range(1, 6):
                    sid = f"S{class_name}{sec}{idx:02d}"
                    name = f"Student_{class_name}{sec}{idx:02d}"
                    cur.execute("""
                        INSERT INTO users(
                            fk_school_id, fk_class_id, fk_section_id,
                            student_id, name, email, password, role,
                            class, section, roll_number, admission_date,
                            student_phone, parent_name, parent_phone, parent_relation
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, 'Student', ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        school_id, class_id, section_id,
                        sid, name, f"{sid.lower()}@school.com", hash_password("student123"),
                        class_name, sec, f"{year}{idx:03d}", date.today().isoformat(),
                        f"9000000{idx:03d}", f"Parent of {name}", f"9001000{idx:03d}", "Father",
                    ))
        logger.info("Sample students created")

    cur.execute("SELECT COUNT(*) FROM users WHERE role='Teacher' AND fk_school_id=?", (school_id,))
    if cur.fetchone()[0] == 0:
        for t in range(1, 4):
            cur.execute("""
                INSERT INTO users(fk_school_id, student_id, name, email, password, role)
                VALUES (?, ?, ?, ?, ?, 'Teacher')
            """, (school_id, f"T{t:02d}", f"Teacher {t}", f"teacher{t}@school.com", hash_password("teacher123")))
        logger.info("Default teachers created: teacher1..3@school.com")

    conn.commit()
    conn.close()


def seed_default_subjects(school_id):
    subjects = ["Mathematics", "English", "Science", "Social Studies", "ICT"]
    conn = get_connection()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM subjects WHERE fk_school_id=?", (school_id,))
    if cur.fetchone()[0] == 0:
        cur.execute("SELECT id FROM users WHERE role='Teacher' AND fk_school_id=? ORDER BY id", (school_id,))
        teachers = [r[0] for r in cur.fetchall()]
        cur.execute("SELECT id FROM classes WHERE fk_school_id=?", (school_id,))
        for (class_id,) in cur.fetchall():
            for i, subj in enumerate(subjects):
                teacher_id = teachers[i % len(teachers)] if teachers else None
                cur.execute("""
                    INSERT INTO subjects(fk_school_id, fk_class_id, fk_teacher_id, subject_name)
                    VALUES (?, ?, ?, ?)
                """, (school_id, class_id, teacher_id, subj))
        conn.commit()
        logger.info("Subjects seeded")
    conn.close()


def seed_default_settings(school_id):
    """
    Sunday..Thursday open 08:00-14:00, 45 minute periods.
    """
    conn = get_connection()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM settings WHERE fk_school_id=?", (school_id,))
    if cur.fetchone()[0] == 0:
        week = [ScheduleDay(open=i <= 4, start="08:00", end="14:00") for i in range(7)]
        cur.execute("""
            INSERT INTO settings(fk_school_id, weekly_schedule, subject_duration, updated_at)
            VALUES (?, ?, ?, datetime('now'))
        """, (school_id, dump_weekly_schedule(week), DEFAULT_DURATION))
        conn.commit()
        logger.info("Default weekly schedule created")
    conn.close()


def seed_default_admin(school_id):
    email = "admin@school.com"
    conn = get_connection()
    cur = conn.cursor()
    cur.execute("SELECT id, role FROM users WHERE fk_school_id=? AND email=?", (school_id, email))
    row = cur.fetchone()
    if row:
        user_id, role = row
        if role != "Admin":
            cur.execute("UPDATE users SET role='Admin' WHERE id=?", (user_id,))
            conn.commit()
        conn.close()
        return

    cur.execute("""
        INSERT INTO users(fk_school_id, student_id, name, email, password, role)
        VALUES (?, ?, ?, ?, ?, 'Admin')
    """, (school_id, "ADMIN01", "Admin User", email, hash_password("admin123")))
    conn.commit()
    conn.close()
    logger.info("Default admin created: %s", email)


# -------------------------
# Bootstrap
# -------------------------
def bootstrap():
    """
    Create the schema and seed demo data. Safe to call on every app start.
    """
    init_db()
    school_id = _ensure_demo_school()
    seed_classes_and_sections(school_id)
    seed_sample_users(school_id)
    seed_default_subjects(school_id)
    seed_default_settings(school_id)
    seed_default_admin(school_id)
    return school_id
