"""SQLite-backed persistence API for exams, component configs, choices and marks.

Responses are plain dicts in the same shapes the ledger, preset and
optional-choice modules consume. Failures surface as RemoteError, and
writes against a locked exam as ExamLockedError.
"""
import functools
import logging
import sqlite3
from datetime import datetime

from marks_ledger.config import COMPULSORY_GROUP
from marks_ledger.db import get_connection
from marks_ledger.errors import ExamLockedError, RemoteError
from marks_ledger.ledger import is_locked
from marks_ledger.normalize import normalize_code

logger = logging.getLogger(__name__)

TYPE_ORDER = "CASE component_type WHEN 'TH' THEN 0 WHEN 'PR' THEN 1 ELSE 2 END"


def _remote(func):
    """Report database failures as RemoteError."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.Error as exc:
            logger.error("%s failed: %s", func.__name__, exc)
            raise RemoteError("Server error", status=500) from exc
    return wrapper


def _placeholders(values) -> str:
    return ",".join("?" for _ in values)


def _fetch_exam(conn, exam_id: int) -> dict:
    row = conn.execute("SELECT * FROM exams WHERE id = ?", (exam_id,)).fetchone()
    if row is None:
        raise RemoteError("Exam not found", status=404)
    return dict(row)


def _fetch_enrollment(conn, enrollment_id: int) -> dict:
    row = conn.execute(
        """SELECT e.id AS enrollment_id, s.id AS student_id, s.full_name, s.symbol_no, s.roll_no,
            e.academic_year_id, e.class_id, e.section_id
        FROM student_enrollments e JOIN students s ON s.id = e.student_id
        WHERE e.id = ?""",
        (enrollment_id,),
    ).fetchone()
    if row is None:
        raise RemoteError("Enrollment not found", status=404)
    return dict(row)


def _components_by_subject(conn, subject_ids: list) -> dict:
    if not subject_ids:
        return {}
    rows = conn.execute(
        f"""SELECT subject_id, component_type, component_code, component_title, credit_hour
        FROM subject_components
        WHERE subject_id IN ({_placeholders(subject_ids)})
        ORDER BY subject_id, {TYPE_ORDER}, component_code""",
        list(subject_ids),
    ).fetchall()
    out = {}
    for row in rows:
        out.setdefault(row["subject_id"], []).append(dict(row))
    return out


def _catalog_groups(conn, academic_year_id: int, class_id: int) -> list[dict]:
    groups = conn.execute(
        """SELECT id, name, sort_order FROM catalog_groups
        WHERE academic_year_id = ? AND class_id = ?
        ORDER BY sort_order, id""",
        (academic_year_id, class_id),
    ).fetchall()
    out = []
    subject_ids = []
    for group in groups:
        subjects = conn.execute(
            """SELECT s.id, s.name FROM catalog_group_subjects cgs
            JOIN subjects s ON s.id = cgs.subject_id
            WHERE cgs.catalog_group_id = ?
            ORDER BY cgs.sort_order, s.id""",
            (group["id"],),
        ).fetchall()
        subject_ids.extend(s["id"] for s in subjects)
        out.append({**dict(group), "subjects": [dict(s) for s in subjects]})
    components = _components_by_subject(conn, sorted(set(subject_ids)))
    for group in out:
        for subject in group["subjects"]:
            subject["components"] = [dict(c) for c in components.get(subject["id"], [])]
    return out


def _compulsory_subject_ids(conn, academic_year_id: int, class_id: int) -> list[int]:
    rows = conn.execute(
        """SELECT cgs.subject_id FROM catalog_group_subjects cgs
        JOIN catalog_groups g ON g.id = cgs.catalog_group_id
        WHERE g.academic_year_id = ? AND g.class_id = ? AND UPPER(g.name) = ?
        ORDER BY cgs.sort_order""",
        (academic_year_id, class_id, COMPULSORY_GROUP),
    ).fetchall()
    return [r["subject_id"] for r in rows]


# ----------------------------
# EXAMS
# ----------------------------

@_remote
def create_exam(db_path: str, academic_year_id: int, class_id: int, name: str,
                exam_type: str = "INTERNAL") -> int:
    if not name:
        raise RemoteError("academic_year_id, class_id, name required", status=400)
    conn = get_connection(db_path)
    try:
        cur = conn.execute(
            "INSERT INTO exams (name, academic_year_id, class_id, exam_type) VALUES (?, ?, ?, ?)",
            (name, academic_year_id, class_id, exam_type),
        )
        conn.commit()
        return cur.lastrowid
    except sqlite3.IntegrityError:
        raise RemoteError("Exam already exists", status=409) from None
    finally:
        conn.close()


@_remote
def list_exams(db_path: str) -> list[dict]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM exams ORDER BY id DESC").fetchall()
    conn.close()
    return [dict(r) for r in rows]


@_remote
def get_exam(db_path: str, exam_id: int) -> dict:
    conn = get_connection(db_path)
    try:
        return _fetch_exam(conn, exam_id)
    finally:
        conn.close()


@_remote
def lock_exam(db_path: str, exam_id: int) -> None:
    """Publish an exam; no further config or marks writes are accepted."""
    conn = get_connection(db_path)
    try:
        exam = _fetch_exam(conn, exam_id)
        if is_locked(exam):
            raise RemoteError("Exam already published/locked", status=409)
        conn.execute(
            "UPDATE exams SET is_locked = 1, published_at = ? WHERE id = ?",
            (datetime.now().isoformat(), exam_id),
        )
        conn.commit()
    finally:
        conn.close()


@_remote
def get_exam_components(db_path: str, exam_id: int) -> dict:
    """Catalog groups for the exam's year and class, with each component's config."""
    conn = get_connection(db_path)
    try:
        exam = _fetch_exam(conn, exam_id)
        groups = _catalog_groups(conn, exam["academic_year_id"], exam["class_id"])
        configs = {
            r["component_code"]: r
            for r in conn.execute(
                "SELECT component_code, full_marks, pass_marks, is_enabled FROM exam_component_configs WHERE exam_id = ?",
                (exam_id,),
            ).fetchall()
        }
    finally:
        conn.close()
    for group in groups:
        for subject in group["subjects"]:
            for comp in subject["components"]:
                cfg = configs.get(normalize_code(comp["component_code"]))
                comp["full_marks"] = cfg["full_marks"] if cfg else None
                comp["pass_marks"] = cfg["pass_marks"] if cfg else None
                comp["is_enabled"] = bool(cfg["is_enabled"]) if cfg else False
    return {"exam": exam, "groups": groups}


@_remote
def set_exam_components(db_path: str, exam_id: int, updates: list) -> None:
    """Replace an exam's component configuration with a list of ComponentUpdate."""
    conn = get_connection(db_path)
    try:
        exam = _fetch_exam(conn, exam_id)
        if is_locked(exam):
            raise ExamLockedError(exam_id)
        if not updates:
            raise RemoteError("components array required", status=400)
        conn.execute("DELETE FROM exam_component_configs WHERE exam_id = ?", (exam_id,))
        for update in updates:
            code = normalize_code(update.component_code)
            if not code or update.full_marks is None:
                continue
            conn.execute(
                """INSERT INTO exam_component_configs (exam_id, component_code, full_marks, pass_marks, is_enabled)
                VALUES (?, ?, ?, ?, ?)""",
                (exam_id, code, update.full_marks, update.pass_marks, int(update.is_enabled)),
            )
        conn.commit()
    finally:
        conn.close()
    logger.info("Configured %d component(s) for exam %s", len(updates), exam_id)


# ----------------------------
# CATALOG & STUDENTS
# ----------------------------

@_remote
def get_subject_catalog(db_path: str, academic_year_id: int, class_id: int) -> dict:
    conn = get_connection(db_path)
    try:
        groups = _catalog_groups(conn, academic_year_id, class_id)
    finally:
        conn.close()
    return {"academic_year_id": academic_year_id, "class_id": class_id, "groups": groups}


@_remote
def list_enrollments(db_path: str, section_id: int | None = None) -> list[dict]:
    sql = """SELECT e.id AS enrollment_id, s.id AS student_id, s.full_name, s.symbol_no, s.roll_no,
        e.academic_year_id, e.class_id, e.section_id
        FROM student_enrollments e JOIN students s ON s.id = e.student_id"""
    params = []
    if section_id:
        sql += " WHERE e.section_id = ?"
        params.append(section_id)
    sql += " ORDER BY s.full_name, e.id"
    conn = get_connection(db_path)
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


@_remote
def get_student_profile(db_path: str, enrollment_id: int) -> dict:
    conn = get_connection(db_path)
    try:
        enrollment = _fetch_enrollment(conn, enrollment_id)
        compulsory_ids = _compulsory_subject_ids(conn, enrollment["academic_year_id"], enrollment["class_id"])
        choices = [
            dict(r) for r in conn.execute(
                "SELECT group_name, subject_id FROM student_optional_choices WHERE enrollment_id = ? ORDER BY group_name",
                (enrollment_id,),
            ).fetchall()
        ]
        chosen_ids = [c["subject_id"] for c in choices]
        all_ids = list(dict.fromkeys(compulsory_ids + chosen_ids))
        names = {}
        if all_ids:
            names = {
                r["id"]: r["name"]
                for r in conn.execute(
                    f"SELECT id, name FROM subjects WHERE id IN ({_placeholders(all_ids)})", all_ids
                ).fetchall()
            }
        components = _components_by_subject(conn, all_ids)
    finally:
        conn.close()

    def subject(sid):
        return {"id": sid, "name": names.get(sid, ""), "components": components.get(sid, [])}

    return {
        "enrollment": enrollment,
        "compulsory_subjects": [subject(sid) for sid in compulsory_ids],
        "optional_choices": choices,
        "optional_subjects": sorted((subject(sid) for sid in set(chosen_ids)), key=lambda s: s["name"]),
    }


@_remote
def set_optional_choices(db_path: str, enrollment_id: int, choices: list) -> None:
    """Overwrite an enrollment's optional choices with a list of Choice."""
    if not choices:
        raise RemoteError("choices array required", status=400)
    conn = get_connection(db_path)
    try:
        _fetch_enrollment(conn, enrollment_id)
        conn.execute("DELETE FROM student_optional_choices WHERE enrollment_id = ?", (enrollment_id,))
        for choice in choices:
            if not choice.group_name or not choice.subject_id:
                continue
            conn.execute(
                "INSERT INTO student_optional_choices (enrollment_id, group_name, subject_id) VALUES (?, ?, ?)",
                (enrollment_id, choice.group_name, choice.subject_id),
            )
        conn.commit()
    finally:
        conn.close()


# ----------------------------
# MARKS
# ----------------------------

@_remote
def get_mark_ledger(db_path: str, exam_id: int, enrollment_id: int) -> dict:
    """Components of the student's compulsory and chosen subjects with config and saved marks."""
    conn = get_connection(db_path)
    try:
        _fetch_exam(conn, exam_id)
        enrollment = _fetch_enrollment(conn, enrollment_id)
        subject_ids = _compulsory_subject_ids(conn, enrollment["academic_year_id"], enrollment["class_id"])
        subject_ids += [
            r["subject_id"] for r in conn.execute(
                "SELECT subject_id FROM student_optional_choices WHERE enrollment_id = ?", (enrollment_id,)
            ).fetchall()
        ]
        subject_ids = list(dict.fromkeys(subject_ids))
        components = []
        if subject_ids:
            components = conn.execute(
                f"""SELECT sc.subject_id, s.name AS subject_name, sc.component_type, sc.component_code,
                    sc.component_title, sc.credit_hour
                FROM subject_components sc JOIN subjects s ON s.id = sc.subject_id
                WHERE sc.subject_id IN ({_placeholders(subject_ids)})
                ORDER BY s.name, {TYPE_ORDER}""",
                subject_ids,
            ).fetchall()
        configs = {
            r["component_code"]: r
            for r in conn.execute(
                "SELECT component_code, full_marks, is_enabled FROM exam_component_configs WHERE exam_id = ?",
                (exam_id,),
            ).fetchall()
        }
        saved = {
            r["component_code"]: r["marks_obtained"]
            for r in conn.execute(
                "SELECT component_code, marks_obtained FROM marks WHERE exam_id = ? AND enrollment_id = ?",
                (exam_id, enrollment_id),
            ).fetchall()
        }
    finally:
        conn.close()

    ledger = []
    for comp in components:
        code = normalize_code(comp["component_code"])
        cfg = configs.get(code)
        ledger.append({
            "subject_id": comp["subject_id"],
            "subject_name": comp["subject_name"],
            "component_type": comp["component_type"],
            "component_code": code,
            "title": comp["component_title"],
            "credit_hour": comp["credit_hour"],
            "full_marks": cfg["full_marks"] if cfg else None,
            "enabled_in_exam": bool(cfg["is_enabled"]) if cfg else False,
            "marks_obtained": saved.get(code),
        })
    return {"exam_id": exam_id, "enrollment_id": enrollment_id, "ledger": ledger}


@_remote
def upsert_marks(db_path: str, exam_id: int, enrollment_id: int, updates: list) -> None:
    """Write a list of ComponentMarkUpdate; a None mark clears the saved score."""
    conn = get_connection(db_path)
    try:
        exam = _fetch_exam(conn, exam_id)
        if is_locked(exam):
            raise ExamLockedError(exam_id)
        if not updates:
            raise RemoteError("marks array required", status=400)
        _fetch_enrollment(conn, enrollment_id)
        now = datetime.now().isoformat()
        for update in updates:
            code = normalize_code(update.component_code)
            if not code:
                continue
            conn.execute(
                """INSERT INTO marks (exam_id, enrollment_id, component_code, marks_obtained, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(exam_id, enrollment_id, component_code)
                DO UPDATE SET marks_obtained = excluded.marks_obtained, updated_at = excluded.updated_at""",
                (exam_id, enrollment_id, code, update.marks, now),
            )
        conn.commit()
    finally:
        conn.close()
