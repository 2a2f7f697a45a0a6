"""Seed the database with a subject catalog, students and exams."""
import json
from pathlib import Path

from marks_ledger.db import get_connection
from marks_ledger.normalize import normalize_code

CONTENT_DIR = Path(__file__).parent / "content"


def is_seeded(db_path: str) -> bool:
    """Check whether the database already holds any subjects."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM subjects").fetchone()[0]
    conn.close()
    return count > 0


def _subject_id(conn, name: str) -> int | None:
    row = conn.execute("SELECT id FROM subjects WHERE name = ?", (name,)).fetchone()
    return row["id"] if row else None


def seed_catalog(db_path: str, data: dict) -> dict:
    """Insert subjects, catalog groups, students and exams from a catalog dict.

    Subjects and component codes already present are left alone, so the
    same catalog can be loaded twice. Returns counts of what was read.
    """
    year = data["academic_year_id"]
    class_id = data["class_id"]
    conn = get_connection(db_path)

    component_count = 0
    for subject in data.get("subjects", []):
        conn.execute("INSERT OR IGNORE INTO subjects (name) VALUES (?)", (subject["name"],))
        subject_id = _subject_id(conn, subject["name"])
        for comp in subject.get("components", []):
            conn.execute(
                """INSERT OR IGNORE INTO subject_components
                (subject_id, component_type, component_code, component_title, credit_hour)
                VALUES (?, ?, ?, ?, ?)""",
                (subject_id, comp["type"], normalize_code(comp["code"]), comp.get("title", ""), comp.get("credit_hour")),
            )
            component_count += 1

    for order, group in enumerate(data.get("groups", []), start=1):
        existing = conn.execute(
            "SELECT id FROM catalog_groups WHERE academic_year_id = ? AND class_id = ? AND name = ?",
            (year, class_id, group["name"]),
        ).fetchone()
        if existing:
            group_id = existing["id"]
        else:
            group_id = conn.execute(
                "INSERT INTO catalog_groups (academic_year_id, class_id, name, sort_order) VALUES (?, ?, ?, ?)",
                (year, class_id, group["name"], order),
            ).lastrowid
        for sort_order, name in enumerate(group.get("subjects", []), start=1):
            conn.execute(
                "INSERT OR IGNORE INTO catalog_group_subjects (catalog_group_id, subject_id, sort_order) VALUES (?, ?, ?)",
                (group_id, _subject_id(conn, name), sort_order),
            )

    for student in data.get("students", []):
        row = conn.execute("SELECT id FROM students WHERE symbol_no = ?", (student["symbol_no"],)).fetchone()
        if row:
            continue
        student_id = conn.execute(
            "INSERT INTO students (full_name, symbol_no, roll_no) VALUES (?, ?, ?)",
            (student["full_name"], student["symbol_no"], student.get("roll_no")),
        ).lastrowid
        enrollment_id = conn.execute(
            "INSERT INTO student_enrollments (student_id, academic_year_id, class_id, section_id) VALUES (?, ?, ?, ?)",
            (student_id, year, class_id, student.get("section_id", 1)),
        ).lastrowid
        for group_name, subject_name in student.get("optional_choices", {}).items():
            conn.execute(
                "INSERT INTO student_optional_choices (enrollment_id, group_name, subject_id) VALUES (?, ?, ?)",
                (enrollment_id, group_name, _subject_id(conn, subject_name)),
            )

    for exam in data.get("exams", []):
        conn.execute(
            "INSERT OR IGNORE INTO exams (name, academic_year_id, class_id, exam_type) VALUES (?, ?, ?, ?)",
            (exam["name"], year, class_id, exam.get("exam_type", "INTERNAL")),
        )

    conn.commit()
    conn.close()
    return {
        "subjects": len(data.get("subjects", [])),
        "components": component_count,
        "groups": len(data.get("groups", [])),
        "students": len(data.get("students", [])),
        "exams": len(data.get("exams", [])),
    }


def seed_all(db_path: str) -> None:
    """Load the bundled demo catalog on first run."""
    if is_seeded(db_path):
        return
    data = json.loads((CONTENT_DIR / "catalog.json").read_text())
    seed_catalog(db_path, data)
