"""Tests for the SQLite persistence API."""
import pytest

from marks_ledger import store
from marks_ledger.errors import ExamLockedError, RemoteError
from marks_ledger.models import Choice, ComponentMarkUpdate, ComponentUpdate
from marks_ledger.presets import apply_preset, build_persist_payload, flatten_exam_groups, get_preset


def configure(db_path, exam_id, key):
    data = store.get_exam_components(db_path, exam_id)
    components = apply_preset(flatten_exam_groups(data["groups"]), get_preset(key))
    store.set_exam_components(db_path, exam_id, build_persist_payload(components))


def test_list_and_get_exams(seeded_db):
    exams = store.list_exams(seeded_db)
    assert [e["name"] for e in exams] == ["Pre-Board", "First Terminal"]
    assert store.get_exam(seeded_db, 1)["exam_type"] == "FIRST_TERMINAL"


def test_get_missing_exam(seeded_db):
    with pytest.raises(RemoteError) as exc_info:
        store.get_exam(seeded_db, 99)
    assert exc_info.value.status == 404


def test_create_duplicate_exam(seeded_db):
    exam_id = store.create_exam(seeded_db, 2081, 11, "Final")
    assert store.get_exam(seeded_db, exam_id)["name"] == "Final"
    with pytest.raises(RemoteError, match="Exam already exists"):
        store.create_exam(seeded_db, 2081, 11, "Final")


def test_lock_exam(seeded_db):
    store.lock_exam(seeded_db, 1)
    exam = store.get_exam(seeded_db, 1)
    assert exam["is_locked"] == 1
    assert exam["published_at"]
    with pytest.raises(RemoteError) as exc_info:
        store.lock_exam(seeded_db, 1)
    assert exc_info.value.status == 409


def test_exam_components_start_unconfigured(seeded_db):
    data = store.get_exam_components(seeded_db, 1)
    assert data["exam"]["id"] == 1
    assert [g["name"] for g in data["groups"]] == ["COMPULSORY", "Opt. 1st", "Opt. 2nd"]
    english = data["groups"][0]["subjects"][0]
    assert [c["component_code"] for c in english["components"]] == ["0031", "0032"]
    assert english["components"][0]["is_enabled"] is False
    assert english["components"][0]["full_marks"] is None


def test_set_exam_components_round_trip(seeded_db):
    configure(seeded_db, 1, "FIRST_TERMINAL")
    flat = flatten_exam_groups(store.get_exam_components(seeded_db, 1)["groups"])
    by_code = {c.component_code: c for c in flat}
    assert by_code["0031"].full_marks == 50
    assert by_code["0031"].is_enabled
    assert by_code["4271"].full_marks == 17.5
    assert by_code["0032"].full_marks is None
    assert not by_code["0032"].is_enabled


def test_set_exam_components_replaces_previous_config(seeded_db):
    configure(seeded_db, 2, "PRE_BOARD")
    store.set_exam_components(seeded_db, 2, [ComponentUpdate("31", 100)])
    flat = flatten_exam_groups(store.get_exam_components(seeded_db, 2)["groups"])
    enabled = [c.component_code for c in flat if c.is_enabled]
    assert enabled == ["0031"]


def test_set_exam_components_rejects_empty_and_locked(seeded_db):
    with pytest.raises(RemoteError) as exc_info:
        store.set_exam_components(seeded_db, 1, [])
    assert exc_info.value.status == 400
    store.lock_exam(seeded_db, 1)
    with pytest.raises(ExamLockedError):
        store.set_exam_components(seeded_db, 1, [ComponentUpdate("0031", 50)])


def test_subject_catalog(seeded_db):
    catalog = store.get_subject_catalog(seeded_db, 2081, 11)
    opt = catalog["groups"][1]
    assert opt["name"] == "Opt. 1st"
    assert [s["name"] for s in opt["subjects"]] == ["Computer Science", "Hotel Management", "Economics"]
    assert store.get_subject_catalog(seeded_db, 2081, 12)["groups"] == []


def test_list_enrollments_by_section(seeded_db):
    assert len(store.list_enrollments(seeded_db)) == 5
    section = store.list_enrollments(seeded_db, 1)
    assert [s["full_name"] for s in section] == ["Aarav Shrestha", "Bina Gurung", "Chandra Karki", "Dipa Tamang"]


def test_student_profile(seeded_db):
    profile = store.get_student_profile(seeded_db, 1)
    assert profile["enrollment"]["symbol_no"] == "8101"
    assert [s["name"] for s in profile["compulsory_subjects"]] == ["English", "Nepali", "Mathematics"]
    assert [c["group_name"] for c in profile["optional_choices"]] == ["Opt. 1st", "Opt. 2nd"]
    assert [s["name"] for s in profile["optional_subjects"]] == ["Computer Science", "Physics"]


def test_student_profile_missing(seeded_db):
    with pytest.raises(RemoteError, match="Enrollment not found"):
        store.get_student_profile(seeded_db, 42)


def test_set_optional_choices_overwrites(seeded_db):
    store.set_optional_choices(seeded_db, 1, [Choice("Opt. 1st", 6)])
    choices = store.get_student_profile(seeded_db, 1)["optional_choices"]
    assert choices == [{"group_name": "Opt. 1st", "subject_id": 6}]
    with pytest.raises(RemoteError, match="choices array required"):
        store.set_optional_choices(seeded_db, 1, [])


def test_mark_ledger_lists_enabled_and_disabled_rows(seeded_db):
    configure(seeded_db, 1, "FIRST_TERMINAL")
    ledger = store.get_mark_ledger(seeded_db, 1, 1)["ledger"]
    codes = [r["component_code"] for r in ledger]
    assert codes == ["4271", "4272", "0031", "0032", "0041", "0042", "0021", "0022", "1011", "1012"]
    enabled = [r["component_code"] for r in ledger if r["enabled_in_exam"]]
    assert enabled == ["4271", "0031", "0041", "0021", "1011"]


def test_upsert_marks(seeded_db):
    configure(seeded_db, 1, "FIRST_TERMINAL")
    store.upsert_marks(seeded_db, 1, 1, [ComponentMarkUpdate("31", 42), ComponentMarkUpdate("4271", 15)])
    store.upsert_marks(seeded_db, 1, 1, [ComponentMarkUpdate("0031", 44)])
    saved = {r["component_code"]: r["marks_obtained"] for r in store.get_mark_ledger(seeded_db, 1, 1)["ledger"]}
    assert saved["0031"] == 44
    assert saved["4271"] == 15


def test_upsert_marks_none_clears_score(seeded_db):
    store.upsert_marks(seeded_db, 1, 1, [ComponentMarkUpdate("0031", 42)])
    store.upsert_marks(seeded_db, 1, 1, [ComponentMarkUpdate("0031", None)])
    saved = {r["component_code"]: r["marks_obtained"] for r in store.get_mark_ledger(seeded_db, 1, 1)["ledger"]}
    assert saved["0031"] is None


def test_upsert_marks_on_locked_exam(seeded_db):
    store.lock_exam(seeded_db, 1)
    with pytest.raises(ExamLockedError):
        store.upsert_marks(seeded_db, 1, 1, [ComponentMarkUpdate("0031", 42)])


def test_upsert_marks_requires_updates(seeded_db):
    with pytest.raises(RemoteError, match="marks array required"):
        store.upsert_marks(seeded_db, 1, 1, [])
