from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .aggregation import (
    aggregate_project_totals,
    profitability_by_client,
    profitability_summary,
    project_profitability,
    summarize_aging,
)
from .classification import classify_project_type
from .codes import parse_project_folder
from .config import Config, load_config_from_env
from .estimation import estimate_quote
from .models import (
    AgingBucket,
    DueDate,
    FinancialRecord,
    Project,
    ProjectTotals,
    QuoteRequest,
    QuoteResponse,
)
from .reconciliation import ClearResult, ReconcileResult, clear_project_assignments, reconcile
from .tables import LookupTables, load_tables

logger = logging.getLogger(__name__)


def projects_by_code(projects: Iterable[Project]) -> Dict[str, str]:
    """Build the code -> id lookup used by reconciliation."""

    lookup: Dict[str, str] = {}
    for project in projects:
        if not project.code:
            continue
        if project.code in lookup and lookup[project.code] != project.id:
            logger.warning("Duplicate project code %s (%s, %s); keeping the first", project.code, lookup[project.code], project.id)
            continue
        lookup[project.code] = project.id
    return lookup


@dataclass
class LedgerEngine:
    """Entry point for the service layer.

    Holds configuration and lookup tables and forwards to the pure functions
    of the package.  When constructed without arguments the configuration is
    read from the environment (and ``.env``) and the tables from
    ``LEDGER_TABLES_FILE`` when set.
    """

    config: Config = field(default_factory=load_config_from_env)
    tables: Optional[LookupTables] = None

    def __post_init__(self) -> None:
        if self.tables is None:
            self.tables = load_tables(self.config.tables_path)

    def reconcile(
        self,
        records: Iterable[FinancialRecord],
        projects: Mapping[str, str] | Sequence[Project],
        preserve_manual: Optional[bool] = None,
    ) -> List[ReconcileResult]:
        lookup = projects if isinstance(projects, Mapping) else projects_by_code(projects)
        keep = self.config.preserve_manual if preserve_manual is None else preserve_manual
        return reconcile(records, lookup, preserve_manual=keep)

    def clear_project(
        self,
        project_id: str,
        clear_invoices: Callable[[str], object],
        clear_bills: Callable[[str], object],
    ) -> ClearResult:
        return clear_project_assignments(project_id, clear_invoices, clear_bills)

    def project_totals(
        self,
        project_id: str,
        invoices: Iterable[FinancialRecord],
        bills: Iterable[FinancialRecord],
    ) -> ProjectTotals:
        return aggregate_project_totals(project_id, invoices, bills)

    def aging(self, records: Iterable[FinancialRecord], as_of: DueDate = None) -> AgingBucket:
        return summarize_aging(records, as_of=as_of, due_soon_days=self.config.due_soon_days)

    def profitability(
        self,
        projects: Sequence[Project],
        invoices: Iterable[FinancialRecord],
        bills: Iterable[FinancialRecord],
        status: Optional[str] = None,
        client_code: Optional[str] = None,
        sort_by: str = "gross_profit",
    ) -> Dict[str, object]:
        """Return ``{"projects": DataFrame, "by_client": DataFrame, "summary": dict}``."""

        table = project_profitability(
            projects,
            list(invoices),
            list(bills),
            status=status,
            client_code=client_code,
            sort_by=sort_by,
        )
        return {
            "projects": table,
            "by_client": profitability_by_client(table),
            "summary": profitability_summary(table),
        }

    def new_folders(self, folder_names: Iterable[str], projects: Iterable[Project]) -> List[Tuple[str, str, str]]:
        """Parsed ``(code, client_code, description)`` for folders with no project yet.

        Names that do not follow the folder convention are skipped, and each
        code is reported once, for the first folder that carries it.
        """

        known = {project.code for project in projects}
        found: List[Tuple[str, str, str]] = []
        for name in folder_names:
            parsed = parse_project_folder(name)
            if parsed is None:
                logger.debug("Skipping folder %r", name)
                continue
            if parsed[0] in known:
                continue
            known.add(parsed[0])
            found.append(parsed)
        return found

    def suggest_type(self, description: str) -> str:
        return classify_project_type(description, self.tables, default=self.config.default_project_type)

    def quote(self, request: QuoteRequest, historical_projects: Iterable[Project]) -> QuoteResponse:
        return estimate_quote(request, historical_projects, config=self.config, tables=self.tables)


def comparables_frame(response: QuoteResponse) -> pd.DataFrame:
    """Tabulate the comparables of ``response`` for audit exports."""

    rows = [
        {
            "PROJECT_ID": item.project_id,
            "CODE": item.code,
            "WEIGHT": item.weight,
            "FINAL_REVENUE": item.final_revenue,
            "SQUARE_FOOTAGE": item.square_footage,
            "PRICE_PER_AREA": item.price_per_area,
        }
        for item in response.comparables
    ]
    return pd.DataFrame(rows, columns=["PROJECT_ID", "CODE", "WEIGHT", "FINAL_REVENUE", "SQUARE_FOOTAGE", "PRICE_PER_AREA"])


__all__ = ["LedgerEngine", "comparables_frame", "projects_by_code"]
