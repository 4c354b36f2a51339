"""
Assign invoices and bills to projects from the project code in their memo.

Reconciliation never writes anything itself.  :func:`reconcile` returns one
:class:`ReconcileResult` per record describing the assignment the record
should carry; callers persist only the rows whose ``changed`` flag is set.
The one operation that does touch the store, :func:`clear_project_assignments`,
receives its writers as callables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional

from .codes import extract_project_code
from .models import CONFIDENCE_HIGH, KIND_BILL, FinancialRecord

LOGGER = logging.getLogger(__name__)

UNCHANGED = "unchanged"
ASSIGNED = "assigned"
CLEARED = "cleared"


@dataclass(frozen=True)
class AssignmentChange:
    """Tagged outcome of comparing a current assignment with a candidate."""

    tag: str
    previous: Optional[str]
    candidate: Optional[str]

    @property
    def changed(self) -> bool:
        return self.tag != UNCHANGED


@dataclass(frozen=True)
class ReconcileResult:
    record_id: str
    new_project_id: Optional[str]
    changed: bool
    change: str = UNCHANGED
    confidence: Optional[str] = None
    kind: str = "invoice"
    code: Optional[str] = None


@dataclass(frozen=True)
class ReconcileSummary:
    total: int = 0
    assigned: int = 0
    cleared: int = 0
    unchanged: int = 0


@dataclass(frozen=True)
class ClearResult:
    project_id: str
    invoices_error: Optional[str] = None
    bills_error: Optional[str] = None
    success: bool = True

    @property
    def invoices_cleared(self) -> bool:
        return self.invoices_error is None

    @property
    def bills_cleared(self) -> bool:
        return self.bills_error is None


def diff_assignment(current: Optional[str], candidate: Optional[str]) -> AssignmentChange:
    """Compare the stored project id with the derived candidate.

    ``assigned`` covers both a first assignment and a move between projects;
    ``cleared`` means a previously assigned record should become unassigned.
    """

    current = current or None
    candidate = candidate or None
    if current == candidate:
        return AssignmentChange(UNCHANGED, current, candidate)
    if candidate is None:
        return AssignmentChange(CLEARED, current, None)
    return AssignmentChange(ASSIGNED, current, candidate)


def candidate_project_id(memo: Optional[str], projects_by_code: Mapping[str, str]) -> tuple[Optional[str], Optional[str]]:
    """Return ``(code, project_id)`` derived from ``memo``; either may be ``None``."""

    code = extract_project_code(memo)
    if code is None:
        return None, None
    return code, projects_by_code.get(code)


def reconcile_record(
    record: FinancialRecord,
    projects_by_code: Mapping[str, str],
    preserve_manual: bool = False,
) -> ReconcileResult:
    code, candidate = candidate_project_id(record.memo, projects_by_code)
    is_bill = record.kind == KIND_BILL

    if (
        preserve_manual
        and not is_bill
        and candidate is None
        and record.project_id
        and record.match_confidence == CONFIDENCE_HIGH
    ):
        # keep a confirmed assignment the memo cannot speak to
        candidate = record.project_id

    change = diff_assignment(record.project_id, candidate)
    if is_bill:
        confidence = None
    elif change.tag == ASSIGNED:
        confidence = CONFIDENCE_HIGH
    elif change.tag == CLEARED:
        confidence = None
    else:
        confidence = record.match_confidence

    return ReconcileResult(
        record_id=record.id,
        new_project_id=change.candidate,
        changed=change.changed,
        change=change.tag,
        confidence=confidence,
        kind=record.kind,
        code=code,
    )


def reconcile(
    records: Iterable[FinancialRecord],
    projects_by_code: Mapping[str, str],
    preserve_manual: bool = False,
) -> List[ReconcileResult]:
    """
    Derive the project assignment of every record from its memo.

    Parameters
    ----------
    records:
        Invoices and/or bills to reconcile.
    projects_by_code:
        Mapping of project code to project id.  Only ids present in this
        mapping are ever assigned.
    preserve_manual:
        When ``True``, invoices already holding a ``"high"`` assignment are
        not cleared just because their memo carries no mapped code.  A memo
        code that maps to a different project still moves the invoice.

    Returns
    -------
    list[ReconcileResult]
        One result per input record, in input order.  Running the function
        again on records updated from these results yields no changes.
    """

    results = [reconcile_record(record, projects_by_code, preserve_manual) for record in records]
    summary = summarize_reconciliation(results)
    LOGGER.info(
        "Reconciled %d records: %d assigned, %d cleared, %d unchanged",
        summary.total,
        summary.assigned,
        summary.cleared,
        summary.unchanged,
    )
    return results


def summarize_reconciliation(results: Iterable[ReconcileResult]) -> ReconcileSummary:
    total = assigned = cleared = unchanged = 0
    for result in results:
        total += 1
        if result.change == ASSIGNED:
            assigned += 1
        elif result.change == CLEARED:
            cleared += 1
        else:
            unchanged += 1
    return ReconcileSummary(total=total, assigned=assigned, cleared=cleared, unchanged=unchanged)


def clear_project_assignments(
    project_id: str,
    clear_invoices: Callable[[str], object],
    clear_bills: Callable[[str], object],
) -> ClearResult:
    """
    Detach every invoice and bill from ``project_id``.

    ``clear_invoices`` is expected to null both ``project_id`` and the match
    confidence; ``clear_bills`` nulls ``project_id``.  Both writers are
    always attempted.  A failure in either is logged and reported in the
    result but does not stop the other, and the overall operation reports
    success once both have been attempted.
    """

    invoices_error = _attempt("invoices", project_id, clear_invoices)
    bills_error = _attempt("bills", project_id, clear_bills)
    return ClearResult(
        project_id=project_id,
        invoices_error=invoices_error,
        bills_error=bills_error,
        success=True,
    )


def _attempt(label: str, project_id: str, writer: Callable[[str], object]) -> Optional[str]:
    try:
        writer(project_id)
    except Exception as exc:  # store errors are reported, never raised
        LOGGER.warning("Failed to clear %s for project %s: %s", label, project_id, exc)
        return str(exc) or exc.__class__.__name__
    LOGGER.info("Cleared %s assignments for project %s", label, project_id)
    return None


__all__ = [
    "ASSIGNED",
    "CLEARED",
    "UNCHANGED",
    "AssignmentChange",
    "ClearResult",
    "ReconcileResult",
    "ReconcileSummary",
    "candidate_project_id",
    "clear_project_assignments",
    "diff_assignment",
    "reconcile",
    "reconcile_record",
    "summarize_reconciliation",
]
