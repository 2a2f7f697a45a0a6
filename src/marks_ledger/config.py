"""Settings shared across the ledger: paths, code widths, exam presets, logging."""
import logging
import os
from pathlib import Path

from rich.logging import RichHandler

from marks_ledger.models import Preset

DEFAULT_DB_PATH = os.environ.get(
    "MARKS_LEDGER_DB", str(Path.home() / ".marks_ledger" / "ledger.db")
)
LOG_LEVEL = os.environ.get("MARKS_LEDGER_LOG_LEVEL", "WARNING")

CODE_WIDTH = 4

# Subjects whose name contains one of these get the optional theory full marks
SPECIAL_OPTIONAL_KEYWORDS = ("computer", "hotel")

COMPULSORY_GROUP = "COMPULSORY"

EXAM_PRESETS = {
    "FIRST_TERMINAL": Preset(
        key="FIRST_TERMINAL", label="First Terminal",
        th_full=50, optional_full=17.5, enable_internal=False, internal_full=0,
    ),
    "SECOND_TERMINAL": Preset(
        key="SECOND_TERMINAL", label="Second Terminal",
        th_full=75, optional_full=50, enable_internal=False, internal_full=0,
    ),
    "PRE_BOARD": Preset(
        key="PRE_BOARD", label="Pre-Board",
        th_full=75, optional_full=50, enable_internal=True, internal_full=25,
    ),
    "CUSTOM": Preset(key="CUSTOM", label="Custom"),
}

_configured = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Route log records through rich's console handler. Safe to call twice."""
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    _configured = True
