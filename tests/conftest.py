# tests/conftest.py
from types import SimpleNamespace

import pytest

import db


@pytest.fixture
def conn(monkeypatch, tmp_path):
    # point db.get_connection at a fresh temp database
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "school.db"))
    db.init_db()
    conn = db.get_connection()
    yield conn
    conn.close()


@pytest.fixture
def school(conn):
    """One school, class 5 (A/B) and class 6 (A), two teachers, two subjects."""
    cur = conn.cursor()
    cur.execute("INSERT INTO schools(name) VALUES ('Test School')")
    school_id = cur.lastrowid

    cur.execute("INSERT INTO classes(fk_school_id, class_name, academic_year) VALUES (?, '5', '2025-26')", (school_id,))
    class5 = cur.lastrowid
    cur.execute("INSERT INTO classes(fk_school_id, class_name, academic_year) VALUES (?, '6', '2025-26')", (school_id,))
    class6 = cur.lastrowid

    cur.execute("INSERT INTO sections(fk_class_id, section_name) VALUES (?, 'A')", (class5,))
    sec5a = cur.lastrowid
    cur.execute("INSERT INTO sections(fk_class_id, section_name) VALUES (?, 'B')", (class5,))
    sec5b = cur.lastrowid
    cur.execute("INSERT INTO sections(fk_class_id, section_name) VALUES (?, 'A')", (class6,))
    sec6a = cur.lastrowid

    cur.execute("INSERT INTO users(fk_school_id, name, email, role) VALUES (?, 'Ms Rahman', 't1@test.local', 'Teacher')", (school_id,))
    teacher1 = cur.lastrowid
    cur.execute("INSERT INTO users(fk_school_id, name, email, role) VALUES (?, 'Mr Karim', 't2@test.local', 'Teacher')", (school_id,))
    teacher2 = cur.lastrowid

    cur.execute("INSERT INTO subjects(fk_school_id, fk_class_id, fk_teacher_id, subject_name) VALUES (?, ?, ?, 'Mathematics')",
                (school_id, class5, teacher1))
    maths = cur.lastrowid
    cur.execute("INSERT INTO subjects(fk_school_id, fk_class_id, fk_teacher_id, subject_name) VALUES (?, ?, NULL, 'English')",
                (school_id, class5))
    english = cur.lastrowid
    conn.commit()

    return SimpleNamespace(
        id=school_id, class5=class5, class6=class6,
        sec5a=sec5a, sec5b=sec5b, sec6a=sec6a,
        teacher1=teacher1, teacher2=teacher2,
        maths=maths, english=english,
    )


@pytest.fixture
def add_student(conn, school):
    def _add(class_id, section_id, roll_number, name="Test Student"):
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO users(fk_school_id, fk_class_id, fk_section_id, name, role, roll_number, parent_name, parent_phone)
            VALUES (?, ?, ?, ?, 'Student', ?, 'Parent', '01700000000')
        """, (school.id, class_id, section_id, name, roll_number))
        conn.commit()
        return cur.lastrowid
    return _add