"""Data classes for exam components, ledgers, optional choices and grids."""
from dataclasses import dataclass, field
from typing import Optional, Union

Number = Union[int, float]


@dataclass
class FlatComponent:
    group_name: str
    subject_id: Optional[int]
    subject_name: str
    component_code: str
    component_type: str
    component_title: str = ""
    credit_hour: Optional[Number] = None
    full_marks: Optional[Number] = None
    pass_marks: Optional[Number] = None
    is_enabled: bool = False


@dataclass
class Preset:
    key: str
    label: str
    th_full: Optional[Number] = None
    optional_full: Optional[Number] = None
    enable_internal: bool = False
    internal_full: Optional[Number] = None


@dataclass
class ComponentUpdate:
    component_code: str
    full_marks: Number
    pass_marks: Optional[Number] = None
    is_enabled: bool = True


@dataclass
class LedgerEntry:
    component_code: str
    subject_name: str = ""
    component_title: str = ""
    full_marks: Optional[Number] = None
    obtained_marks: Optional[Union[Number, str]] = None  # typed text kept as-is
    subject_id: Optional[int] = None
    component_type: str = ""


@dataclass
class Validation:
    valid: bool
    reason: Optional[str] = None


@dataclass
class ComponentMarkUpdate:
    component_code: str
    marks: Optional[Number]  # None clears the score


@dataclass
class SaveOutcome:
    sent: list = field(default_factory=list)
    invalid: list = field(default_factory=list)


@dataclass
class OptionalSubject:
    id: int
    name: str
    code: str = ""


@dataclass
class OptionalGroup:
    group_name: str
    subjects: list = field(default_factory=list)


@dataclass
class Choice:
    group_name: str
    subject_id: int


@dataclass
class Enrollment:
    enrollment_id: int
    full_name: str = ""
    symbol_no: str = ""
    ledger: list = field(default_factory=list)


@dataclass
class GridColumn:
    code: str
    title: str = ""
    subject_name: str = "Other"
    component_type: str = ""
    full_marks: Optional[Number] = None


@dataclass
class GridCell:
    enrollment_id: int
    component_code: str
    obtained_marks: Optional[Union[Number, str]] = None
    persisted_marks: Optional[Number] = None
    full_marks: Optional[Number] = None


@dataclass
class BatchProgress:
    done: int
    total: int


@dataclass
class BatchFailure:
    enrollment_id: int
    reason: str


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: list = field(default_factory=list)
    total_processed: int = 0
