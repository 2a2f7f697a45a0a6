# tests/test_integration.py
"""End-to-end test of the core workflow."""
import functools

import pytest

from marks_ledger import store
from marks_ledger.batch import BatchReconciler, load_enrollments
from marks_ledger.db import init_db
from marks_ledger.errors import ExamLockedError
from marks_ledger.ledger import LedgerSession
from marks_ledger.optional import init_draft, optional_groups_from_exam, resolve_groups, save_draft
from marks_ledger.presets import (
    apply_preset, build_persist_payload, flatten_exam_groups, get_preset, require_theory_values,
)
from marks_ledger.seed import seed_all


def test_full_exam_workflow(tmp_db):
    """Configure an exam, pick optionals, enter marks two ways, then publish."""
    init_db(tmp_db)
    seed_all(tmp_db)
    exam = store.get_exam(tmp_db, 2)

    # Components
    preset = get_preset("PRE_BOARD")
    require_theory_values(preset)
    data = store.get_exam_components(tmp_db, exam["id"])
    components = apply_preset(flatten_exam_groups(data["groups"]), preset)
    store.set_exam_components(tmp_db, exam["id"], build_persist_payload(components))

    # Optional subjects for the student without any
    profile = store.get_student_profile(tmp_db, 4)
    catalog = store.get_subject_catalog(tmp_db, 2081, 11)
    groups = resolve_groups(catalog, profile["optional_choices"], profile["optional_subjects"])
    draft = init_draft(profile["optional_choices"])
    draft.select(groups[0].group_name, groups[0].subjects[1].id)  # Hotel Management
    draft.select(groups[1].group_name, groups[1].subjects[0].id)  # Physics
    save_draft(draft, 4, functools.partial(store.set_optional_choices, tmp_db))

    # Single ledger
    load = functools.partial(store.get_mark_ledger, tmp_db)
    session = LedgerSession(exam, 4, load, functools.partial(store.upsert_marks, tmp_db))
    session.load()
    assert "5011" in {e.component_code for e in session.entries()}
    session.edit("5011", "48")
    session.edit("5012", "30")
    outcome = session.save()
    assert [u.component_code for u in outcome.sent] == ["5011"]
    assert str(outcome.invalid[0]) == "5012: Marks cannot exceed full marks (25)"

    # Grid for section 1
    students = store.list_enrollments(tmp_db, 1)
    enrollments = load_enrollments(exam["id"], students, load)
    grid = BatchReconciler(
        exam, enrollments,
        optional_groups=optional_groups_from_exam(store.get_exam_components(tmp_db, exam["id"])["groups"]),
    )
    assert grid.optional_codes[4] == {"Opt. 1st": "5011", "Opt. 2nd": "1011"}
    for e in enrollments:
        grid.set_mark(e.enrollment_id, "0031", "70")
    result = grid.save_all(
        functools.partial(store.upsert_marks, tmp_db, exam["id"]),
        choice_save_fn=functools.partial(store.set_optional_choices, tmp_db),
    )
    assert result.succeeded == 4
    assert result.failed == []
    saved = {r["component_code"]: r["marks_obtained"] for r in load(exam["id"], 4)["ledger"]}
    assert saved["0031"] == 70
    assert saved["5011"] == 48

    # Publish
    store.lock_exam(tmp_db, exam["id"])
    session = LedgerSession(store.get_exam(tmp_db, exam["id"]), 4, load, functools.partial(store.upsert_marks, tmp_db))
    session.load()
    session.edit("0031", "71")
    with pytest.raises(ExamLockedError):
        session.save()
