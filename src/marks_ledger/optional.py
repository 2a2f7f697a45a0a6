"""Optional-subject groups and each student's choice per group."""
import logging
from typing import Callable

from marks_ledger.config import COMPULSORY_GROUP
from marks_ledger.errors import PreconditionError
from marks_ledger.models import Choice, LedgerEntry, OptionalGroup, OptionalSubject
from marks_ledger.normalize import normalize_code, to_number

logger = logging.getLogger(__name__)

CATALOG_GROUP_KEYS = ("catalog_groups", "groups")
GROUP_NAME_KEYS = ("group_name", "name", "title")
GROUP_SUBJECT_KEYS = ("subjects", "items", "subject_list")


def _first_nonempty(record: dict, keys: tuple):
    """First truthy value; an empty name or list falls through to the next key."""
    for key in keys:
        if record.get(key):
            return record[key]
    return None


def _is_compulsory(group_name: str) -> bool:
    return group_name.strip().upper() == COMPULSORY_GROUP


def representative_code(subject: dict) -> str:
    """A subject's first TH component code, or its first component's code."""
    components = subject.get("components") or []
    theory = next((c for c in components if c.get("component_type") == "TH"), None)
    chosen = theory or (components[0] if components else None)
    if chosen is not None:
        return normalize_code(chosen.get("component_code"))
    return normalize_code(subject.get("code") or subject.get("subject_code"))


def normalize_subject(subject: dict) -> OptionalSubject | None:
    subject_id = subject.get("id") or subject.get("subject_id")
    if not subject_id:
        return None
    return OptionalSubject(
        id=int(subject_id),
        name=subject.get("name") or subject.get("subject_name") or "",
        code=representative_code(subject),
    )


def _catalog_groups(catalog) -> list[dict]:
    if not isinstance(catalog, dict):
        return []
    sources = [catalog]
    if isinstance(catalog.get("data"), dict):
        sources.append(catalog["data"])
    for source in sources:
        raw = _first_nonempty(source, CATALOG_GROUP_KEYS)
        if isinstance(raw, list):
            return raw
    return []


def resolve_groups(catalog, fallback_choices: list[dict], fallback_subjects: list[dict]) -> list[OptionalGroup]:
    """Optional groups offered to a student.

    The subject catalog is the primary source. When it yields no optional
    groups, the groups are rebuilt from the student's saved choices and
    every one of them offers the student's known optional subjects.
    """
    groups = []
    for raw in _catalog_groups(catalog):
        name = _first_nonempty(raw, GROUP_NAME_KEYS)
        if not name or _is_compulsory(name):
            continue
        subjects = [normalize_subject(s) for s in (_first_nonempty(raw, GROUP_SUBJECT_KEYS) or [])]
        groups.append(OptionalGroup(group_name=name, subjects=[s for s in subjects if s]))
    if groups:
        return groups

    names = list(dict.fromkeys(c.get("group_name") for c in fallback_choices or [] if c.get("group_name")))
    if names:
        logger.info("Subject catalog has no optional groups; falling back to %d saved choice group(s)", len(names))
    known = [s for s in (normalize_subject(s) for s in fallback_subjects or []) if s]
    return [OptionalGroup(group_name=name, subjects=list(known)) for name in names]


class ChoiceDraft:
    """The editable group -> subject id map for one enrollment.

    Any call to select() marks the draft dirty, even when the value is
    unchanged.
    """

    def __init__(self, selections: dict):
        self._initial = dict(selections)
        self.selections = dict(selections)
        self.dirty = False

    def select(self, group_name: str, subject_id) -> None:
        self.selections[group_name] = subject_id
        self.dirty = True

    def reset(self) -> None:
        self.selections = dict(self._initial)
        self.dirty = False

    def mark_saved(self) -> None:
        self._initial = dict(self.selections)
        self.dirty = False


def init_draft(server_choices: list[dict]) -> ChoiceDraft:
    selections = {}
    for choice in server_choices or []:
        group_name = choice.get("group_name")
        if not group_name:
            continue
        subject_id = to_number(choice.get("subject_id"))
        selections[group_name] = int(subject_id) if subject_id else None
    return ChoiceDraft(selections)


def build_save_payload(draft: ChoiceDraft) -> list[Choice]:
    choices = []
    for group_name, subject_id in draft.selections.items():
        number = to_number(subject_id)
        if number is not None and number > 0:
            choices.append(Choice(group_name=group_name, subject_id=int(number)))
    if not choices:
        raise PreconditionError("Select at least one optional subject")
    return choices


def save_draft(draft: ChoiceDraft, enrollment_id: int, save_fn: Callable) -> list[Choice]:
    """Send the draft's choices through save_fn(enrollment_id, choices)."""
    if not enrollment_id:
        raise PreconditionError("Missing enrollment id")
    choices = build_save_payload(draft)
    save_fn(enrollment_id, choices)
    draft.mark_saved()
    logger.info("Saved %d optional choice(s) for enrollment %s", len(choices), enrollment_id)
    return choices


def optional_groups_from_exam(groups: list[dict]) -> list[OptionalGroup]:
    """Optional groups of an exam configuration, keyed by each subject's enabled TH code."""
    out = []
    for group in groups or []:
        name = group.get("name") or ""
        if not name or _is_compulsory(name):
            continue
        subjects = []
        for subject in group.get("subjects") or []:
            theory = next(
                (c for c in subject.get("components") or []
                 if c.get("component_type") == "TH" and c.get("is_enabled")),
                None,
            )
            if theory is None:
                continue
            subjects.append(OptionalSubject(
                id=subject["id"], name=subject.get("name", ""),
                code=normalize_code(theory.get("component_code")),
            ))
        out.append(OptionalGroup(group_name=name, subjects=subjects))
    return out


def subject_group_map(groups: list[OptionalGroup]) -> dict:
    mapping = {}
    for group in groups:
        for subject in group.subjects:
            mapping.setdefault(subject.id, group.group_name)
    return mapping


def default_optional_codes(ledger: list[LedgerEntry], subject_to_group: dict) -> dict:
    """Pre-select each group's code from the first TH entry of a subject in that group."""
    selected = {}
    for entry in ledger or []:
        if entry.component_type != "TH":
            continue
        group_name = subject_to_group.get(entry.subject_id)
        if group_name and group_name not in selected:
            selected[group_name] = entry.component_code
    return selected


def choices_from_codes(selected: dict, groups: list[OptionalGroup]) -> tuple[list[Choice], list[str]]:
    """Turn per-group selected codes into choices, collecting unknown codes as errors."""
    by_code = {}
    for group in groups:
        for subject in group.subjects:
            if subject.code:
                by_code[subject.code] = subject
    choices, errors = [], []
    for group in groups:
        code = normalize_code(selected.get(group.group_name))
        if not code:
            continue
        subject = by_code.get(code)
        if subject is None:
            errors.append(f"Invalid optional code {code} for {group.group_name}")
            continue
        choices.append(Choice(group_name=group.group_name, subject_id=subject.id))
    return choices, errors
