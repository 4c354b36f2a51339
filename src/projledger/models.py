from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Tuple, Union

INTERIOR_DEMOLITION = "interior-demolition"
FULL_DEMOLITION = "full-demolition"
ABATEMENT = "abatement"
RETAIL_FIT_OUT = "retail-fit-out"
HAZMAT_CLEANUP = "hazmat-cleanup"
RESTORATION = "restoration"

# Display order
PROJECT_TYPES: Tuple[str, ...] = (
    INTERIOR_DEMOLITION,
    FULL_DEMOLITION,
    ABATEMENT,
    RETAIL_FIT_OUT,
    HAZMAT_CLEANUP,
    RESTORATION,
)

# Spellings used by the accounting export and older intake forms
PROJECT_TYPE_ALIASES: Dict[str, str] = {
    "interior_demo": INTERIOR_DEMOLITION,
    "interior demo": INTERIOR_DEMOLITION,
    "full_demo": FULL_DEMOLITION,
    "full demo": FULL_DEMOLITION,
    "retail_fitout": RETAIL_FIT_OUT,
    "retail fitout": RETAIL_FIT_OUT,
    "retail-fitout": RETAIL_FIT_OUT,
    "hazmat": HAZMAT_CLEANUP,
    "hazmat_cleanup": HAZMAT_CLEANUP,
}

STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"

KIND_INVOICE = "invoice"
KIND_BILL = "bill"

CONFIDENCE_HIGH = "high"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_LOW = "low"

DueDate = Union[date, str, None]


def normalize_project_type(value: Optional[str]) -> Optional[str]:
    """
    Normalize a project type string into one of :data:`PROJECT_TYPES`.

    Accepts canonical values, underscore/space variants and the legacy
    aliases listed in :data:`PROJECT_TYPE_ALIASES`.  Returns ``None`` when
    the value cannot be mapped.
    """

    if not value:
        return None
    candidate = str(value).strip().lower()
    if not candidate:
        return None
    if candidate in PROJECT_TYPES:
        return candidate
    if candidate in PROJECT_TYPE_ALIASES:
        return PROJECT_TYPE_ALIASES[candidate]
    dashed = candidate.replace("_", "-").replace(" ", "-")
    if dashed in PROJECT_TYPES:
        return dashed
    return PROJECT_TYPE_ALIASES.get(dashed)


@dataclass(frozen=True)
class Project:
    """Project entity as read from the store; never created by the engine."""

    id: str
    code: str
    client_code: str = ""
    project_type: Optional[str] = None
    square_footage: Optional[float] = None
    location: Optional[str] = None
    status: str = STATUS_ACTIVE
    final_cost: Optional[float] = None
    final_revenue: Optional[float] = None
    description: str = ""
    client_name: str = ""

    @property
    def is_closed(self) -> bool:
        return self.status == STATUS_CLOSED


@dataclass(frozen=True)
class FinancialRecord:
    """An invoice or bill snapshot.

    ``match_confidence`` is only meaningful for invoices; bills always carry
    ``None``.
    """

    id: str
    amount: float
    balance: float = 0.0
    memo: Optional[str] = None
    project_id: Optional[str] = None
    due_date: DueDate = None
    kind: str = KIND_INVOICE
    match_confidence: Optional[str] = None

    @property
    def is_invoice(self) -> bool:
        return self.kind == KIND_INVOICE


def invoice(record_id: str, amount: float, balance: float = 0.0, **kwargs) -> FinancialRecord:
    return FinancialRecord(id=record_id, amount=amount, balance=balance, kind=KIND_INVOICE, **kwargs)


def bill(record_id: str, amount: float, balance: float = 0.0, **kwargs) -> FinancialRecord:
    kwargs.pop("match_confidence", None)
    return FinancialRecord(id=record_id, amount=amount, balance=balance, kind=KIND_BILL, **kwargs)


@dataclass(frozen=True)
class ProjectTotals:
    project_id: str
    invoiced: float = 0.0
    paid: float = 0.0
    outstanding: float = 0.0
    costs: float = 0.0
    profit: float = 0.0


@dataclass(frozen=True)
class AgingBucket:
    """Due-date partition of an open-balance collection."""

    outstanding: float = 0.0
    overdue: float = 0.0
    due_this_week: float = 0.0
    count: int = 0
    overdue_count: int = 0
    due_this_week_count: int = 0
    skipped: int = 0

    @property
    def current(self) -> float:
        return self.outstanding - self.overdue - self.due_this_week

    @property
    def current_count(self) -> int:
        return self.count - self.overdue_count - self.due_this_week_count


@dataclass(frozen=True)
class QuoteRequest:
    description: str
    project_type: Optional[str] = None
    square_footage: Optional[float] = None
    location: Optional[str] = None
    client_code: Optional[str] = None


@dataclass(frozen=True)
class Comparable:
    """A historical closed project used as evidence for a quote."""

    project_id: str
    weight: float
    code: str = ""
    final_revenue: float = 0.0
    square_footage: Optional[float] = None
    price_per_area: Optional[float] = None


@dataclass(frozen=True)
class PriceRange:
    low: float
    high: float
    average: float


@dataclass(frozen=True)
class QuoteResponse:
    total_price: float
    price_per_area: Optional[float]
    confidence: str
    project_type: str
    comparables: Tuple[Comparable, ...] = ()
    price_range: Optional[PriceRange] = None
    breakdown: Dict[str, float] = field(default_factory=dict)
    used_fallback: bool = False
    type_inferred: bool = False

    @property
    def based_on(self) -> int:
        return len(self.comparables)

    @property
    def comparable_weights(self) -> Tuple[Tuple[str, float], ...]:
        return tuple((item.project_id, item.weight) for item in self.comparables)
