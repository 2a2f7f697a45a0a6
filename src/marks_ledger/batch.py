"""Grid-mode marks entry: plan cells for a section and save them student by student."""
import logging
from typing import Callable, Optional

from marks_ledger.errors import PreconditionError, ValidationError, describe_error
from marks_ledger.ledger import build_ledger_for, ensure_unlocked, validate_entry
from marks_ledger.models import (
    BatchFailure, BatchProgress, BatchResult, ComponentMarkUpdate, Enrollment,
    GridCell, GridColumn, LedgerEntry,
)
from marks_ledger.normalize import is_blank, normalize_code, to_number
from marks_ledger.optional import choices_from_codes, default_optional_codes, subject_group_map

logger = logging.getLogger(__name__)


def load_enrollments(exam_id: int, students: list[dict], load_fn: Callable) -> list[Enrollment]:
    """Fetch each student's ledger in turn with load_fn(exam_id, enrollment_id)."""
    enrollments = []
    for student in students:
        enrollment_id = student["enrollment_id"]
        ledger = build_ledger_for(exam_id, enrollment_id, load_fn)
        enrollments.append(Enrollment(
            enrollment_id=enrollment_id,
            full_name=student.get("full_name") or "",
            symbol_no=student.get("symbol_no") or "",
            ledger=ledger,
        ))
    return enrollments


def _column_sort_key(column: GridColumn):
    number = to_number(column.code)
    if number is None:
        return (1, 0.0, column.code)
    return (0, number, column.code)


def build_columns(ledgers: dict) -> list[GridColumn]:
    """One column per component code seen in any ledger, ordered by code."""
    by_code = {}
    for ledger in ledgers.values():
        for entry in ledger or []:
            column = by_code.get(entry.component_code)
            if column is None:
                by_code[entry.component_code] = GridColumn(
                    code=entry.component_code,
                    title=entry.component_title,
                    subject_name=entry.subject_name or "Other",
                    component_type=entry.component_type,
                    full_marks=entry.full_marks,
                )
            elif column.full_marks is None and entry.full_marks is not None:
                column.full_marks = entry.full_marks
    return sorted(by_code.values(), key=_column_sort_key)


def plan_grid(enrollments: list[Enrollment], components: list[GridColumn]) -> list[GridCell]:
    """Cells for every enrollment x column, seeded with the persisted marks."""
    cells = []
    for enrollment in enrollments:
        saved = {e.component_code: e for e in enrollment.ledger}
        for column in components:
            entry = saved.get(column.code)
            persisted = to_number(entry.obtained_marks) if entry else None
            full = entry.full_marks if entry and entry.full_marks is not None else column.full_marks
            cells.append(GridCell(
                enrollment_id=enrollment.enrollment_id,
                component_code=column.code,
                obtained_marks=persisted,
                persisted_marks=persisted,
                full_marks=full,
            ))
    return cells


def validate_cell(cell: GridCell):
    return validate_entry(LedgerEntry(
        component_code=cell.component_code,
        full_marks=cell.full_marks,
        obtained_marks=cell.obtained_marks,
    ))


def unit_updates(cells: list[GridCell]) -> tuple[list[ComponentMarkUpdate], list[str]]:
    """Changed valid cells as updates, plus the codes of invalid cells."""
    updates, invalid = [], []
    for cell in cells:
        if not validate_cell(cell).valid:
            invalid.append(cell.component_code)
            continue
        after = None if is_blank(cell.obtained_marks) else to_number(cell.obtained_marks)
        if after != cell.persisted_marks:
            updates.append(ComponentMarkUpdate(component_code=cell.component_code, marks=after))
    return updates, invalid


def _group_by_enrollment(cells: list[GridCell], enrollment_ids=None) -> dict:
    units = {enrollment_id: [] for enrollment_id in enrollment_ids or []}
    for cell in cells:
        units.setdefault(cell.enrollment_id, []).append(cell)
    return units


def run_batch(
    cells: list[GridCell],
    save_fn: Callable,
    on_progress: Optional[Callable] = None,
    should_stop: Optional[Callable] = None,
    prepare_fn: Optional[Callable] = None,
    enrollment_ids: Optional[list] = None,
) -> BatchResult:
    """Save each enrollment's changed cells as one unit, strictly in order.

    save_fn(enrollment_id, updates) is called at most once per unit and only
    when the unit has changes. A unit with invalid cells still sends its
    valid changes, then counts as failed. Any exception from a unit is
    recorded against its enrollment and the batch moves on. on_progress
    receives a BatchProgress after every unit. should_stop is checked before
    each unit is dispatched. enrollment_ids fixes the unit order and makes
    every listed enrollment a unit, even one without cells.
    """
    units = _group_by_enrollment(cells, enrollment_ids)
    total = len(units)
    result = BatchResult()

    for done, (enrollment_id, unit) in enumerate(units.items(), start=1):
        if should_stop is not None and should_stop():
            logger.info("Batch stopped after %d of %d enrollments", result.total_processed, total)
            break
        try:
            if prepare_fn is not None:
                prepare_fn(enrollment_id)
            updates, invalid = unit_updates(unit)
            if updates:
                save_fn(enrollment_id, updates)
            if invalid:
                result.failed.append(BatchFailure(enrollment_id, f"Invalid marks for {', '.join(invalid)}"))
                logger.warning("Enrollment %s has invalid marks for %s", enrollment_id, ", ".join(invalid))
            else:
                result.succeeded += 1
        except Exception as exc:
            result.failed.append(BatchFailure(enrollment_id, describe_error(exc)))
            logger.warning("Saving enrollment %s failed: %s", enrollment_id, exc)
        finally:
            result.total_processed += 1
            if on_progress is not None:
                on_progress(BatchProgress(done=done, total=total))

    logger.info(
        "Batch finished: %d saved, %d failed, %d processed",
        result.succeeded, len(result.failed), result.total_processed,
    )
    return result


class BatchReconciler:
    """Owns the grid for one exam and section between load and save."""

    def __init__(self, exam: dict, enrollments: list[Enrollment], columns=None, optional_groups=None):
        self.exam = exam
        self.enrollments = list(enrollments)
        if columns is None:
            columns = build_columns({e.enrollment_id: e.ledger for e in self.enrollments})
        self.columns = columns
        self.cells = plan_grid(self.enrollments, self.columns)
        self._index = {(c.enrollment_id, c.component_code): c for c in self.cells}
        self.optional_groups = optional_groups or []
        subject_to_group = subject_group_map(self.optional_groups)
        self.optional_codes = {
            e.enrollment_id: default_optional_codes(e.ledger, subject_to_group) for e in self.enrollments
        }
        self.progress = BatchProgress(done=0, total=len(self.enrollments))
        self._cancelled = False

    def cell(self, enrollment_id: int, component_code) -> GridCell:
        code = normalize_code(component_code)
        try:
            return self._index[(enrollment_id, code)]
        except KeyError:
            raise PreconditionError(f"No cell for enrollment {enrollment_id}, component {code}") from None

    def row(self, enrollment_id: int) -> list[GridCell]:
        return [c for c in self.cells if c.enrollment_id == enrollment_id]

    def set_mark(self, enrollment_id: int, component_code, value) -> None:
        self.cell(enrollment_id, component_code).obtained_marks = value

    def is_row_dirty(self, enrollment_id: int) -> bool:
        for cell in self.row(enrollment_id):
            if not validate_cell(cell).valid:
                return True
            after = None if is_blank(cell.obtained_marks) else to_number(cell.obtained_marks)
            if after != cell.persisted_marks:
                return True
        return False

    def row_total(self, enrollment_id: int) -> float:
        total = 0.0
        for cell in self.row(enrollment_id):
            if validate_cell(cell).valid:
                total += to_number(cell.obtained_marks) or 0.0
        return round(total, 2)

    def invalid_cells(self) -> list[tuple[GridCell, str]]:
        out = []
        for cell in self.cells:
            result = validate_cell(cell)
            if not result.valid:
                out.append((cell, result.reason))
        return out

    def set_optional_code(self, enrollment_id: int, group_name: str, code) -> None:
        """Select a group's subject by code; marks typed under the old code are dropped."""
        selected = self.optional_codes.setdefault(enrollment_id, {})
        previous = selected.get(group_name)
        new_code = normalize_code(code)
        selected[group_name] = new_code
        if previous and previous != new_code:
            old = self._index.get((enrollment_id, previous))
            if old is not None:
                old.obtained_marks = old.persisted_marks

    def cancel(self) -> None:
        self._cancelled = True

    def _mark_saved(self, enrollment_id: int, updates: list[ComponentMarkUpdate]) -> None:
        for update in updates:
            cell = self._index[(enrollment_id, update.component_code)]
            cell.persisted_marks = update.marks
            cell.obtained_marks = update.marks

    def save_all(self, save_fn: Callable, on_progress: Optional[Callable] = None,
                 choice_save_fn: Optional[Callable] = None) -> BatchResult:
        """Save every dirty row; optional choices go first when choice_save_fn is given."""
        if not self.enrollments:
            raise PreconditionError("No students found")
        ensure_unlocked(self.exam)
        self._cancelled = False

        def save_unit(enrollment_id, updates):
            save_fn(enrollment_id, updates)
            self._mark_saved(enrollment_id, updates)

        def save_choices(enrollment_id):
            choices, errors = choices_from_codes(self.optional_codes.get(enrollment_id, {}), self.optional_groups)
            if errors:
                raise ValidationError(errors[0])
            if choices:
                choice_save_fn(enrollment_id, choices)

        def track(progress):
            self.progress = progress
            if on_progress is not None:
                on_progress(progress)

        return run_batch(
            self.cells,
            save_unit,
            on_progress=track,
            should_stop=lambda: self._cancelled,
            prepare_fn=save_choices if choice_save_fn is not None else None,
            enrollment_ids=[e.enrollment_id for e in self.enrollments],
        )
