"""Tests for database initialization and connection management."""
from marks_ledger.db import init_db, get_connection


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    tables = {row[0] for row in cursor.fetchall()}
    expected = {
        "exams", "subjects", "subject_components", "catalog_groups",
        "catalog_group_subjects", "exam_component_configs", "students",
        "student_enrollments", "student_optional_choices", "marks",
    }
    assert expected.issubset(tables)
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)  # should not raise
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    assert len(cursor.fetchall()) > 0
    conn.close()


def test_get_connection_returns_row_factory(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute("INSERT INTO subjects (name) VALUES ('English')")
    row = conn.execute("SELECT id, name FROM subjects WHERE name='English'").fetchone()
    assert row["name"] == "English"
    conn.close()


def test_init_db_creates_parent_directory(tmp_path):
    db_path = str(tmp_path / "nested" / "ledger.db")
    init_db(db_path)
    assert (tmp_path / "nested" / "ledger.db").exists()
