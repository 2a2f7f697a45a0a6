"""Exam-type presets: flatten the component catalog and apply full-marks templates."""
import logging
from dataclasses import replace

from marks_ledger.config import EXAM_PRESETS, SPECIAL_OPTIONAL_KEYWORDS
from marks_ledger.errors import PreconditionError
from marks_ledger.models import ComponentUpdate, FlatComponent, Preset
from marks_ledger.normalize import normalize_code, to_number

logger = logging.getLogger(__name__)

THEORY = "TH"
INTERNAL_TYPES = ("IN", "PR")


def is_special_optional(subject_name: str | None) -> bool:
    name = str(subject_name or "").lower()
    return any(keyword in name for keyword in SPECIAL_OPTIONAL_KEYWORDS)


def get_preset(key: str) -> Preset:
    try:
        return EXAM_PRESETS[key]
    except KeyError:
        raise PreconditionError(f"Unknown preset: {key}") from None


def custom_preset(th_full, optional_full, enable_internal: bool = False, internal_full=None) -> Preset:
    """Build a CUSTOM preset from typed values; blanks and junk become unset."""
    return Preset(
        key="CUSTOM",
        label="Custom",
        th_full=to_number(th_full),
        optional_full=to_number(optional_full),
        enable_internal=bool(enable_internal),
        internal_full=to_number(internal_full),
    )


def require_theory_values(preset: Preset) -> None:
    """Reject a preset whose theory full marks are unset, before it is applied."""
    if to_number(preset.th_full) is None or to_number(preset.optional_full) is None:
        raise PreconditionError("Full marks and optional full marks are required to apply preset")


def flatten_exam_groups(groups: list[dict]) -> list[FlatComponent]:
    """Walk group -> subject -> component records, keeping input order."""
    flat = []
    for group in groups or []:
        for subject in group.get("subjects") or []:
            for comp in subject.get("components") or []:
                flat.append(FlatComponent(
                    group_name=group.get("name", ""),
                    subject_id=subject.get("id"),
                    subject_name=subject.get("name", ""),
                    component_code=normalize_code(comp.get("component_code")),
                    component_type=comp.get("component_type", ""),
                    component_title=comp.get("component_title", ""),
                    credit_hour=comp.get("credit_hour"),
                    full_marks=to_number(comp.get("full_marks")),
                    pass_marks=to_number(comp.get("pass_marks")),
                    is_enabled=bool(comp.get("is_enabled")),
                ))
    return flat


def apply_preset(components: list[FlatComponent], preset: Preset) -> list[FlatComponent]:
    """Return a new list with the preset's full marks and enablement applied.

    TH components always become enabled, taking the optional full marks for
    special-optional subjects. IN/PR components follow the internal gate; an
    unset internal full marks keeps each component's current value.
    Other types pass through untouched. The input list is not modified.
    """
    th_full = to_number(preset.th_full)
    optional_full = to_number(preset.optional_full)
    internal_full = to_number(preset.internal_full)

    out = []
    for comp in components or []:
        if comp.component_type == THEORY:
            full = optional_full if is_special_optional(comp.subject_name) else th_full
            out.append(replace(comp, full_marks=full, is_enabled=True))
        elif comp.component_type in INTERNAL_TYPES:
            if not preset.enable_internal:
                out.append(replace(comp, is_enabled=False))
            else:
                full = comp.full_marks if internal_full is None else internal_full
                out.append(replace(comp, full_marks=full, is_enabled=True))
        else:
            out.append(comp)
    logger.info("Applied preset %s to %d components", preset.key, len(out))
    return out


def require_enabled_full_marks(components: list[FlatComponent]) -> None:
    missing = [c.component_code for c in components if c.is_enabled and to_number(c.full_marks) is None]
    if missing:
        raise PreconditionError("Full marks required for all enabled components.")


def build_persist_payload(components: list[FlatComponent]) -> list[ComponentUpdate]:
    """Config updates for every component that has a finite full marks value.

    Components without one are left out whatever their enabled flag says.
    """
    payload = []
    for comp in components or []:
        full = to_number(comp.full_marks)
        if full is None:
            continue
        payload.append(ComponentUpdate(
            component_code=comp.component_code,
            full_marks=full,
            pass_marks=to_number(comp.pass_marks),
            is_enabled=bool(comp.is_enabled),
        ))
    return payload
