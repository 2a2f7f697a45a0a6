"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

from marks_ledger.config import DEFAULT_DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS exams (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    academic_year_id INTEGER NOT NULL,
    class_id INTEGER NOT NULL,
    exam_type TEXT DEFAULT 'INTERNAL',
    is_locked INTEGER DEFAULT 0,
    published_at TEXT,
    UNIQUE(academic_year_id, class_id, name)
);

CREATE TABLE IF NOT EXISTS subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS subject_components (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    component_type TEXT NOT NULL CHECK (component_type IN ('TH', 'IN', 'PR')),
    component_code TEXT NOT NULL UNIQUE,
    component_title TEXT,
    credit_hour REAL
);

CREATE TABLE IF NOT EXISTS catalog_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    academic_year_id INTEGER NOT NULL,
    class_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    sort_order INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS catalog_group_subjects (
    catalog_group_id INTEGER NOT NULL REFERENCES catalog_groups(id),
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    sort_order INTEGER DEFAULT 0,
    PRIMARY KEY (catalog_group_id, subject_id)
);

CREATE TABLE IF NOT EXISTS exam_component_configs (
    exam_id INTEGER NOT NULL REFERENCES exams(id),
    component_code TEXT NOT NULL,
    full_marks REAL NOT NULL,
    pass_marks REAL,
    is_enabled INTEGER DEFAULT 1,
    PRIMARY KEY (exam_id, component_code)
);

CREATE TABLE IF NOT EXISTS students (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_name TEXT NOT NULL,
    symbol_no TEXT UNIQUE,
    roll_no TEXT
);

CREATE TABLE IF NOT EXISTS student_enrollments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_id INTEGER NOT NULL REFERENCES students(id),
    academic_year_id INTEGER NOT NULL,
    class_id INTEGER NOT NULL,
    section_id INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS student_optional_choices (
    enrollment_id INTEGER NOT NULL REFERENCES student_enrollments(id),
    group_name TEXT NOT NULL,
    subject_id INTEGER NOT NULL REFERENCES subjects(id),
    PRIMARY KEY (enrollment_id, group_name)
);

CREATE TABLE IF NOT EXISTS marks (
    exam_id INTEGER NOT NULL REFERENCES exams(id),
    enrollment_id INTEGER NOT NULL REFERENCES student_enrollments(id),
    component_code TEXT NOT NULL,
    marks_obtained REAL,
    updated_at TEXT,
    PRIMARY KEY (exam_id, enrollment_id, component_code)
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
