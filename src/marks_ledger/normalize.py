"""Canonical forms for component codes and typed numbers."""
import math

from marks_ledger.config import CODE_WIDTH


def normalize_code(code) -> str:
    """Left-pad a component code with zeros to CODE_WIDTH characters.

    Codes already at least CODE_WIDTH long pass through unchanged. Empty
    or missing input gives "", which callers treat as "no code".
    """
    if code is None:
        return ""
    text = str(code).strip()
    if not text:
        return ""
    return text.rjust(CODE_WIDTH, "0")


def to_number(value) -> float | None:
    """Parse a typed value into a finite number, or None when it isn't one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
