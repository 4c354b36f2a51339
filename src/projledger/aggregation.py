"""
Fold invoices and bills into project totals, aging buckets and
profitability tables.

All figures the dashboard shows are produced here; views should render these
values rather than summing records themselves.  Rows with unusable numbers
(non-numeric, negative, or a balance above the original amount) and rows with
an unreadable due date are dropped with a warning instead of failing the
batch.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DEFAULT_DUE_SOON_DAYS
from .models import (
    KIND_BILL,
    AgingBucket,
    DueDate,
    FinancialRecord,
    Project,
    ProjectTotals,
)

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ["RECORD_ID", "KIND", "PROJECT_ID", "AMOUNT", "BALANCE", "DUE_DATE"]

PROFITABILITY_SORT_COLUMNS = {
    "gross_profit": ("GROSS_PROFIT", False),
    "profit_margin": ("PROFIT_MARGIN_PCT", False),
    "total_invoiced": ("TOTAL_INVOICED", False),
    "total_costs": ("TOTAL_COSTS", False),
    "code": ("CODE", True),
}


def records_frame(records: Iterable[FinancialRecord]) -> pd.DataFrame:
    rows = [
        {
            "RECORD_ID": record.id,
            "KIND": record.kind,
            "PROJECT_ID": record.project_id,
            "AMOUNT": record.amount,
            "BALANCE": record.balance,
            "DUE_DATE": record.due_date,
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def _valid_amounts(frame: pd.DataFrame) -> pd.DataFrame:
    """Coerce AMOUNT/BALANCE to floats and drop rows that break 0 <= balance <= amount."""

    if frame.empty:
        out = frame.copy()
        out["AMOUNT"] = pd.Series(dtype=float)
        out["BALANCE"] = pd.Series(dtype=float)
        return out

    out = frame.copy()
    out["AMOUNT"] = pd.to_numeric(out["AMOUNT"], errors="coerce")
    out["BALANCE"] = pd.to_numeric(out["BALANCE"], errors="coerce").fillna(0.0)
    mask = (
        out["AMOUNT"].notna()
        & np.isfinite(out["AMOUNT"])
        & np.isfinite(out["BALANCE"])
        & (out["AMOUNT"] >= 0)
        & (out["BALANCE"] >= 0)
        & (out["BALANCE"] <= out["AMOUNT"])
    )
    dropped = out.loc[~mask, "RECORD_ID"].tolist()
    if dropped:
        logger.warning("Skipping %d malformed financial records: %s", len(dropped), ", ".join(map(str, dropped)))
    out = out.loc[mask].copy()
    out["AMOUNT"] = out["AMOUNT"].astype(float)
    out["BALANCE"] = out["BALANCE"].astype(float)
    return out


def _totals_from_sums(project_id: str, invoiced: float, outstanding: float, costs: float) -> ProjectTotals:
    paid = invoiced - outstanding
    return ProjectTotals(
        project_id=project_id,
        invoiced=invoiced,
        paid=paid,
        outstanding=outstanding,
        costs=costs,
        profit=paid - costs,
    )


def aggregate_project_totals(
    project_id: str,
    invoices: Iterable[FinancialRecord],
    bills: Iterable[FinancialRecord],
) -> ProjectTotals:
    """Sum the invoices and bills assigned to ``project_id``.

    Records assigned to other projects (or unassigned) are ignored, so the
    full receivable/payable collections can be passed in directly.
    """

    inv = _valid_amounts(records_frame(invoices))
    inv = inv.loc[inv["PROJECT_ID"] == project_id]
    costs_frame = _valid_amounts(records_frame(bills))
    costs_frame = costs_frame.loc[costs_frame["PROJECT_ID"] == project_id]

    invoiced = float(inv["AMOUNT"].sum())
    outstanding = float(inv["BALANCE"].sum())
    costs = float(costs_frame["AMOUNT"].sum())
    return _totals_from_sums(project_id, invoiced, outstanding, costs)


def to_day(value: DueDate) -> Optional[pd.Timestamp]:
    """Return ``value`` as a midnight timestamp, or ``None`` if unreadable."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        stamp = pd.Timestamp(value)
    elif isinstance(value, date):
        stamp = pd.Timestamp(value.year, value.month, value.day)
    elif isinstance(value, np.datetime64):
        stamp = pd.Timestamp(value)
    elif not isinstance(value, str):
        # numbers would be read as epoch offsets
        return None
    else:
        try:
            stamp = pd.to_datetime(value, errors="coerce")
        except (TypeError, ValueError):
            return None
    if stamp is None or pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        # keep the wall-clock day of the source timezone
        stamp = stamp.tz_localize(None)
    return stamp.normalize()


def _as_of_day(as_of: DueDate) -> pd.Timestamp:
    if as_of is None:
        return pd.Timestamp.today().normalize()
    day = to_day(as_of)
    if day is None:
        raise ValueError(f"Unreadable as_of date: {as_of!r}")
    return day


def days_overdue(due_date: DueDate, as_of: DueDate = None) -> Optional[int]:
    """Whole calendar days past ``due_date`` (negative when not yet due)."""

    due = to_day(due_date)
    if due is None:
        return None
    return int((_as_of_day(as_of) - due).days)


def days_until_due(due_date: DueDate, as_of: DueDate = None) -> Optional[int]:
    overdue = days_overdue(due_date, as_of)
    return None if overdue is None else -overdue


def record_status(record: FinancialRecord, as_of: DueDate = None) -> str:
    """Display status: ``paid``, ``overdue``, else ``sent`` (invoice) / ``open`` (bill)."""

    if not record.balance:
        return "paid"
    overdue = days_overdue(record.due_date, as_of)
    if overdue is not None and overdue > 0:
        return "overdue"
    return "open" if record.kind == KIND_BILL else "sent"


def summarize_aging(
    records: Iterable[FinancialRecord],
    as_of: DueDate = None,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> AgingBucket:
    """
    Partition open balances into overdue / due-this-week / current.

    Dates are compared at calendar-day granularity.  A record is overdue when
    its due date is before ``as_of``; it is due this week when the due date
    falls between ``as_of`` and ``as_of + due_soon_days`` inclusive.  Every
    usable record contributes to ``outstanding``.  Records whose balance or
    due date cannot be read are excluded from all sums and counted in
    ``skipped``.
    """

    today = _as_of_day(as_of)
    frame = records_frame(records)
    total_rows = len(frame)
    if frame.empty:
        return AgingBucket()

    frame["BALANCE"] = pd.to_numeric(frame["BALANCE"], errors="coerce")
    frame["_DUE"] = [to_day(value) for value in frame["DUE_DATE"]]
    usable = frame["BALANCE"].notna() & np.isfinite(frame["BALANCE"]) & (frame["BALANCE"] >= 0)
    usable &= frame["_DUE"].notna()
    skipped_ids = frame.loc[~usable, "RECORD_ID"].tolist()
    if skipped_ids:
        logger.warning("Aging summary skipped %d records: %s", len(skipped_ids), ", ".join(map(str, skipped_ids)))
    frame = frame.loc[usable].copy()
    if frame.empty:
        return AgingBucket(skipped=total_rows)

    overdue_days = np.array([(today - due).days for due in frame["_DUE"]], dtype=int)
    balances = frame["BALANCE"].astype(float).to_numpy()
    overdue_mask = overdue_days > 0
    due_soon_mask = ~overdue_mask & (-overdue_days <= int(due_soon_days))

    return AgingBucket(
        outstanding=float(balances.sum()),
        overdue=float(balances[overdue_mask].sum()),
        due_this_week=float(balances[due_soon_mask].sum()),
        count=int(len(balances)),
        overdue_count=int(overdue_mask.sum()),
        due_this_week_count=int(due_soon_mask.sum()),
        skipped=len(skipped_ids),
    )


def project_profitability(
    projects: Sequence[Project],
    invoices: Iterable[FinancialRecord],
    bills: Iterable[FinancialRecord],
    status: Optional[str] = None,
    client_code: Optional[str] = None,
    sort_by: str = "gross_profit",
) -> pd.DataFrame:
    """
    Build the per-project profitability table.

    Returns
    -------
    DataFrame
        One row per project with ``TOTAL_INVOICED``, ``TOTAL_COLLECTED``,
        ``OUTSTANDING``, ``TOTAL_COSTS``, ``NET_PROFIT`` (collected minus
        costs, as in :class:`ProjectTotals`), ``GROSS_PROFIT`` (invoiced minus
        costs) and ``PROFIT_MARGIN_PCT`` (gross profit over invoiced, one
        decimal).
    """

    inv = _valid_amounts(records_frame(invoices))
    costs_frame = _valid_amounts(records_frame(bills))
    inv_sums = inv.groupby("PROJECT_ID")[["AMOUNT", "BALANCE"]].sum()
    cost_sums = costs_frame.groupby("PROJECT_ID")["AMOUNT"].sum()

    rows: List[Dict[str, object]] = []
    for project in projects:
        invoiced = float(inv_sums["AMOUNT"].get(project.id, 0.0))
        outstanding = float(inv_sums["BALANCE"].get(project.id, 0.0))
        costs = float(cost_sums.get(project.id, 0.0))
        totals = _totals_from_sums(project.id, invoiced, outstanding, costs)
        gross = totals.invoiced - totals.costs
        margin = round(gross / totals.invoiced * 100.0, 1) if totals.invoiced > 0 else 0.0
        rows.append(
            {
                "PROJECT_ID": project.id,
                "CODE": project.code,
                "DESCRIPTION": project.description,
                "CLIENT_CODE": project.client_code,
                "CLIENT_NAME": project.client_name or project.client_code,
                "STATUS": project.status,
                "TOTAL_INVOICED": totals.invoiced,
                "TOTAL_COLLECTED": totals.paid,
                "OUTSTANDING": totals.outstanding,
                "TOTAL_COSTS": totals.costs,
                "NET_PROFIT": totals.profit,
                "GROSS_PROFIT": gross,
                "PROFIT_MARGIN_PCT": margin,
            }
        )

    columns = [
        "PROJECT_ID",
        "CODE",
        "DESCRIPTION",
        "CLIENT_CODE",
        "CLIENT_NAME",
        "STATUS",
        "TOTAL_INVOICED",
        "TOTAL_COLLECTED",
        "OUTSTANDING",
        "TOTAL_COSTS",
        "NET_PROFIT",
        "GROSS_PROFIT",
        "PROFIT_MARGIN_PCT",
    ]
    table = pd.DataFrame(rows, columns=columns)
    if status:
        table = table.loc[table["STATUS"] == status]
    if client_code:
        table = table.loc[table["CLIENT_CODE"] == client_code]

    column, ascending = PROFITABILITY_SORT_COLUMNS.get(sort_by, PROFITABILITY_SORT_COLUMNS["gross_profit"])
    # stable sort so equal values keep project order
    return table.sort_values(column, ascending=ascending, kind="mergesort").reset_index(drop=True)


def profitability_by_client(table: pd.DataFrame) -> pd.DataFrame:
    columns = ["CLIENT_CODE", "CLIENT_NAME", "PROJECT_COUNT", "TOTAL_REVENUE", "TOTAL_PROFIT", "AVG_MARGIN"]
    if table.empty:
        return pd.DataFrame(columns=columns)
    grouped = table.groupby("CLIENT_CODE", sort=False).agg(
        CLIENT_NAME=("CLIENT_NAME", "first"),
        PROJECT_COUNT=("PROJECT_ID", "count"),
        TOTAL_REVENUE=("TOTAL_INVOICED", "sum"),
        TOTAL_PROFIT=("GROSS_PROFIT", "sum"),
    )
    grouped = grouped.reset_index()
    revenue = grouped["TOTAL_REVENUE"].astype(float)
    grouped["AVG_MARGIN"] = np.where(
        revenue > 0,
        np.round(grouped["TOTAL_PROFIT"].astype(float) / revenue.where(revenue > 0, 1.0) * 100.0, 1),
        0.0,
    )
    grouped["PROJECT_COUNT"] = grouped["PROJECT_COUNT"].astype(int)
    return grouped[columns].sort_values("TOTAL_PROFIT", ascending=False, kind="mergesort").reset_index(drop=True)


def profitability_summary(table: pd.DataFrame) -> Dict[str, object]:
    total_revenue = float(table["TOTAL_INVOICED"].sum()) if not table.empty else 0.0
    total_costs = float(table["TOTAL_COSTS"].sum()) if not table.empty else 0.0
    total_profit = total_revenue - total_costs
    avg_margin = round(total_profit / total_revenue * 100.0, 1) if total_revenue > 0 else 0.0

    most = least = "N/A"
    with_revenue = table.loc[table["TOTAL_INVOICED"] > 0] if not table.empty else table
    if not with_revenue.empty:
        most = str(with_revenue.loc[with_revenue["PROFIT_MARGIN_PCT"].idxmax(), "CODE"])
        least = str(with_revenue.loc[with_revenue["PROFIT_MARGIN_PCT"].idxmin(), "CODE"])

    return {
        "total_revenue": total_revenue,
        "total_costs": total_costs,
        "total_profit": total_profit,
        "avg_profit_margin": avg_margin,
        "most_profitable_project": most,
        "least_profitable_project": least,
    }


__all__ = [
    "aggregate_project_totals",
    "days_overdue",
    "days_until_due",
    "profitability_by_client",
    "profitability_summary",
    "project_profitability",
    "record_status",
    "records_frame",
    "summarize_aging",
    "to_day",
]
