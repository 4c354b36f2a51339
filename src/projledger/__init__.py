"""Reconciliation, aggregation and quote estimation for project finances."""

from .aggregation import aggregate_project_totals, summarize_aging
from .api import LedgerEngine, projects_by_code
from .classification import classify_project_type
from .codes import extract_project_code
from .config import Config, load_config
from .estimation import estimate_quote
from .models import (
    PROJECT_TYPES,
    AgingBucket,
    FinancialRecord,
    Project,
    ProjectTotals,
    QuoteRequest,
    QuoteResponse,
)
from .reconciliation import clear_project_assignments, diff_assignment, reconcile

__all__ = [
    "PROJECT_TYPES",
    "AgingBucket",
    "Config",
    "FinancialRecord",
    "LedgerEngine",
    "Project",
    "ProjectTotals",
    "QuoteRequest",
    "QuoteResponse",
    "aggregate_project_totals",
    "classify_project_type",
    "clear_project_assignments",
    "diff_assignment",
    "estimate_quote",
    "extract_project_code",
    "load_config",
    "projects_by_code",
    "reconcile",
    "summarize_aging",
]
