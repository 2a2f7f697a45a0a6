"""Per-student marks ledger: row normalization, validation, diffing and saving."""
import logging
from dataclasses import replace
from typing import Callable

from marks_ledger.errors import ExamLockedError, PreconditionError, ValidationError
from marks_ledger.models import ComponentMarkUpdate, LedgerEntry, SaveOutcome, Validation
from marks_ledger.normalize import is_blank, normalize_code, to_number

logger = logging.getLogger(__name__)

# Alternate key names the ledger endpoint has used for each field
ROW_ENVELOPE_KEYS = ("ledger", "marks", "items", "data")
CODE_KEYS = ("component_code", "code")
TITLE_KEYS = ("component_title", "title")
SUBJECT_KEYS = ("subject_name", "subject")
FULL_MARKS_KEYS = ("full_marks", "max_marks")
OBTAINED_KEYS = ("marks_obtained", "marks", "obtained_marks", "value")
ENABLED_KEYS = ("enabled_in_exam", "is_enabled")


def _first(row: dict, keys: tuple):
    """First value that is not None; falsy values such as False or 0 count."""
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def extract_ledger_rows(payload) -> list[dict]:
    """Pull the row list out of a ledger response, whatever envelope it came in."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for key in ROW_ENVELOPE_KEYS:
        items = payload.get(key)
        if isinstance(items, list):
            return items
    return []


def normalize_ledger_row(row: dict) -> LedgerEntry | None:
    """Map one server row to a LedgerEntry; None for disabled or code-less rows."""
    enabled = _first(row, ENABLED_KEYS)
    if enabled is not None and not enabled:
        return None
    code = normalize_code(_first(row, CODE_KEYS))
    if not code:
        return None
    return LedgerEntry(
        component_code=code,
        subject_name=_first(row, SUBJECT_KEYS) or "",
        component_title=_first(row, TITLE_KEYS) or "",
        full_marks=to_number(_first(row, FULL_MARKS_KEYS)),
        obtained_marks=to_number(_first(row, OBTAINED_KEYS)),
        subject_id=row.get("subject_id"),
        component_type=str(row.get("component_type") or "").upper(),
    )


def build_ledger(raw_rows: list[dict]) -> list[LedgerEntry]:
    ledger = []
    for row in raw_rows or []:
        entry = normalize_ledger_row(row)
        if entry is None:
            logger.debug("Skipping ledger row without an enabled component code: %r", row)
            continue
        ledger.append(entry)
    return ledger


def build_ledger_for(exam_id, enrollment_id, load_fn: Callable) -> list[LedgerEntry]:
    """Load and normalize one student's ledger with load_fn(exam_id, enrollment_id)."""
    if not exam_id or not enrollment_id:
        raise PreconditionError("Select exam and student first")
    return build_ledger(extract_ledger_rows(load_fn(exam_id, enrollment_id)))


def validate_entry(entry: LedgerEntry) -> Validation:
    """Check an entry's obtained marks against [0, full marks].

    Blank means "not graded yet" and is always valid. The typed value is
    never altered here, so an invalid entry still shows what was typed.
    """
    if is_blank(entry.obtained_marks):
        return Validation(True)
    value = to_number(entry.obtained_marks)
    if value is None:
        return Validation(False, "Marks must be a number")
    if value < 0:
        return Validation(False, "Marks cannot be negative")
    full = to_number(entry.full_marks)
    if full is not None and value > full:
        return Validation(False, f"Marks cannot exceed full marks ({full:g})")
    return Validation(True)


def diff_ledger(current: list[LedgerEntry], edited: list[LedgerEntry]) -> list[ComponentMarkUpdate]:
    """Updates for edited entries whose obtained marks differ from the persisted ones.

    Invalid entries are skipped: they have no number to send. A blank value
    over a saved score is sent as None, which clears it.
    """
    persisted = {e.component_code: to_number(e.obtained_marks) for e in current or []}
    updates = []
    for entry in edited or []:
        if not validate_entry(entry).valid:
            continue
        after = None if is_blank(entry.obtained_marks) else to_number(entry.obtained_marks)
        if persisted.get(entry.component_code) != after:
            updates.append(ComponentMarkUpdate(component_code=entry.component_code, marks=after))
    return updates


def is_locked(exam: dict) -> bool:
    return bool(exam.get("is_locked") or exam.get("published_at"))


def ensure_unlocked(exam: dict) -> None:
    if is_locked(exam):
        raise ExamLockedError(exam.get("id"))


class LedgerSession:
    """One student's ledger for one exam: load, edit, diff, save, reload.

    load_fn(exam_id, enrollment_id) returns the raw ledger response and
    save_fn(exam_id, enrollment_id, updates) persists a list of
    ComponentMarkUpdate.
    """

    def __init__(self, exam: dict, enrollment_id: int, load_fn: Callable, save_fn: Callable):
        if not exam or not exam.get("id") or not enrollment_id:
            raise PreconditionError("Select exam and student first")
        self.exam = exam
        self.enrollment_id = enrollment_id
        self._load_fn = load_fn
        self._save_fn = save_fn
        self.persisted: list[LedgerEntry] = []
        self.edits: dict = {}

    def load(self) -> list[LedgerEntry]:
        """Fetch a fresh ledger. Unsaved edits are discarded."""
        self.persisted = build_ledger_for(self.exam["id"], self.enrollment_id, self._load_fn)
        self.edits = {}
        return self.entries()

    def edit(self, component_code, value) -> None:
        code = normalize_code(component_code)
        if code not in {e.component_code for e in self.persisted}:
            raise PreconditionError(f"Unknown component code: {code or component_code!r}")
        self.edits[code] = value

    def entries(self) -> list[LedgerEntry]:
        return [
            replace(e, obtained_marks=self.edits[e.component_code]) if e.component_code in self.edits else e
            for e in self.persisted
        ]

    def invalid_entries(self) -> list[tuple[LedgerEntry, str]]:
        out = []
        for entry in self.entries():
            result = validate_entry(entry)
            if not result.valid:
                out.append((entry, result.reason))
        return out

    def pending_updates(self) -> list[ComponentMarkUpdate]:
        return diff_ledger(self.persisted, self.entries())

    def save(self) -> SaveOutcome:
        ensure_unlocked(self.exam)
        invalid = [
            ValidationError(f"{entry.component_code}: {reason}", entry.component_code, entry.obtained_marks)
            for entry, reason in self.invalid_entries()
        ]
        for err in invalid:
            logger.warning("Not saving invalid marks for enrollment %s: %s", self.enrollment_id, err)

        updates = self.pending_updates()
        if updates:
            self._save_fn(self.exam["id"], self.enrollment_id, updates)
            logger.info("Saved %d mark(s) for enrollment %s", len(updates), self.enrollment_id)
            kept = {err.component_code: err.value for err in invalid}
            self.load()
            self.edits.update(kept)
        return SaveOutcome(sent=updates, invalid=invalid)
