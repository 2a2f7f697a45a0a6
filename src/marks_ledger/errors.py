"""Error types raised by the marks ledger core and its store."""


class MarksLedgerError(Exception):
    """Base class for every error the ledger raises on purpose."""


class PreconditionError(MarksLedgerError):
    """A required input was missing; nothing was sent to the store."""


class ValidationError(MarksLedgerError):
    def __init__(self, message: str, component_code: str = "", value=None):
        super().__init__(message)
        self.component_code = component_code
        self.value = value


class ExamLockedError(MarksLedgerError):
    def __init__(self, exam_id=None, message: str = "Exam is locked (published)"):
        super().__init__(message)
        self.exam_id = exam_id


class RemoteError(MarksLedgerError):
    """The store rejected a request or could not be reached."""

    def __init__(self, message: str = "", status: int | None = None):
        super().__init__(message)
        self.status = status


def describe_error(exc: Exception, fallback: str = "Save failed") -> str:
    message = str(exc).strip()
    return message or fallback
