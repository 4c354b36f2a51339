from __future__ import annotations

import math
from datetime import date, datetime, timezone

import pytest

from projledger.aggregation import (
    aggregate_project_totals,
    days_overdue,
    days_until_due,
    profitability_by_client,
    profitability_summary,
    project_profitability,
    record_status,
    summarize_aging,
    to_day,
)
from projledger.models import Project, bill, invoice

AS_OF = "2026-10-19"


def test_project_totals_example():
    invoices = [
        invoice("i1", 1000, balance=500, project_id="P1"),
        invoice("i2", 500, balance=500, project_id="P1"),
        invoice("i3", 900, balance=0, project_id="P2"),
    ]
    bills = [bill("b1", 200, project_id="P1"), bill("b2", 100, project_id="P1"), bill("b3", 75, project_id=None)]

    totals = aggregate_project_totals("P1", invoices, bills)

    assert totals.project_id == "P1"
    assert math.isclose(totals.invoiced, 1500)
    assert math.isclose(totals.paid, 1000)
    assert math.isclose(totals.outstanding, 1000)
    assert math.isclose(totals.costs, 300)
    assert math.isclose(totals.profit, 700)


def test_project_totals_empty_inputs_are_zero():
    totals = aggregate_project_totals("P1", [], [])
    assert (totals.invoiced, totals.paid, totals.outstanding, totals.costs, totals.profit) == (0.0, 0.0, 0.0, 0.0, 0.0)


def test_project_totals_identities_hold():
    invoices = [invoice(f"i{n}", 100 + n, balance=n, project_id="P1") for n in range(10)]
    bills = [bill(f"b{n}", 10 * n, project_id="P1") for n in range(4)]
    totals = aggregate_project_totals("P1", invoices, bills)

    assert math.isclose(totals.paid + totals.outstanding, totals.invoiced)
    assert math.isclose(totals.profit, totals.paid - totals.costs)
    assert 0 <= totals.outstanding <= totals.invoiced


def test_malformed_rows_are_dropped(caplog):
    invoices = [
        invoice("ok", 100, balance=40, project_id="P1"),
        invoice("neg", -5, balance=0, project_id="P1"),
        invoice("over", 10, balance=20, project_id="P1"),
        invoice("text", "abc", balance=0, project_id="P1"),
    ]
    with caplog.at_level("WARNING"):
        totals = aggregate_project_totals("P1", invoices, [])

    assert math.isclose(totals.invoiced, 100)
    assert math.isclose(totals.outstanding, 40)
    assert "neg" in caplog.text and "over" in caplog.text


def test_to_day_strips_time():
    assert to_day(datetime(2026, 10, 19, 23, 59)) == to_day(date(2026, 10, 19))
    assert to_day("2026-10-19T08:30:00") == to_day("2026-10-19")
    assert to_day(datetime(2026, 10, 19, 22, 0, tzinfo=timezone.utc)) == to_day("2026-10-19")
    assert to_day(None) is None
    assert to_day("") is None
    assert to_day("not a date") is None
    assert to_day(20261019) is None
    assert to_day(1.5) is None


def test_days_overdue_and_until_due():
    assert days_overdue("2026-10-18", AS_OF) == 1
    assert days_overdue("2026-10-19T17:00:00", AS_OF) == 0
    assert days_until_due("2026-10-26", AS_OF) == 7
    assert days_overdue(None, AS_OF) is None


def test_unreadable_as_of_raises():
    with pytest.raises(ValueError):
        days_overdue("2026-10-18", "someday")


def test_aging_boundaries():
    records = [
        invoice("late", 100, balance=100, due_date="2026-10-18"),
        invoice("today", 100, balance=50, due_date="2026-10-19T18:00:00"),
        invoice("week", 100, balance=25, due_date="2026-10-26"),
        invoice("later", 100, balance=10, due_date="2026-10-27"),
    ]
    bucket = summarize_aging(records, as_of=AS_OF)

    assert math.isclose(bucket.outstanding, 185)
    assert math.isclose(bucket.overdue, 100)
    assert math.isclose(bucket.due_this_week, 75)
    assert math.isclose(bucket.current, 10)
    assert (bucket.count, bucket.overdue_count, bucket.due_this_week_count, bucket.current_count) == (4, 1, 2, 1)
    assert bucket.skipped == 0


def test_aging_as_of_with_time_of_day():
    records = [bill("b1", 80, balance=80, due_date=date(2026, 10, 19))]
    bucket = summarize_aging(records, as_of=datetime(2026, 10, 19, 23, 0))
    assert bucket.overdue == 0
    assert math.isclose(bucket.due_this_week, 80)


def test_aging_custom_window():
    records = [invoice("i1", 100, balance=100, due_date="2026-10-22")]
    assert summarize_aging(records, as_of=AS_OF, due_soon_days=2).due_this_week == 0
    assert math.isclose(summarize_aging(records, as_of=AS_OF, due_soon_days=3).due_this_week, 100)


def test_aging_skips_unreadable_rows():
    records = [
        invoice("ok", 100, balance=100, due_date="2026-10-01"),
        invoice("nodate", 100, balance=60, due_date=None),
        invoice("baddate", 100, balance=60, due_date="soon"),
    ]
    bucket = summarize_aging(records, as_of=AS_OF)
    assert math.isclose(bucket.outstanding, 100)
    assert bucket.skipped == 2
    assert bucket.count == 1


def test_aging_empty():
    bucket = summarize_aging([], as_of=AS_OF)
    assert bucket.outstanding == 0 and bucket.overdue == 0 and bucket.due_this_week == 0
    assert bucket.count == 0


def test_aging_categories_partition():
    records = [invoice(f"i{n}", 50, balance=n + 1, due_date=f"2026-10-{n + 1:02d}") for n in range(31)]
    bucket = summarize_aging(records, as_of=AS_OF)
    assert bucket.overdue + bucket.due_this_week <= bucket.outstanding
    assert bucket.overdue_count + bucket.due_this_week_count + bucket.current_count == bucket.count == 31
    assert bucket.overdue_count == 18
    assert bucket.due_this_week_count == 8


def test_record_status():
    assert record_status(invoice("i1", 10, balance=0, due_date="2026-01-01"), AS_OF) == "paid"
    assert record_status(invoice("i2", 10, balance=5, due_date="2026-10-01"), AS_OF) == "overdue"
    assert record_status(invoice("i3", 10, balance=5, due_date="2026-11-01"), AS_OF) == "sent"
    assert record_status(bill("b1", 10, balance=5, due_date=None), AS_OF) == "open"


def _portfolio():
    projects = [
        Project(id="P1", code="2601001", client_code="CD", client_name="Coastal Dev", status="closed"),
        Project(id="P2", code="2601002", client_code="CD", client_name="Coastal Dev"),
        Project(id="P3", code="2601003", client_code="PC", client_name="PetroCan"),
        Project(id="P4", code="2601004", client_code="PC", client_name="PetroCan"),
    ]
    invoices = [
        invoice("i1", 1000, balance=0, project_id="P1"),
        invoice("i2", 2000, balance=500, project_id="P2"),
        invoice("i3", 500, balance=500, project_id="P3"),
    ]
    bills = [
        bill("b1", 400, project_id="P1"),
        bill("b2", 1800, project_id="P2"),
        bill("b3", 100, project_id="P3"),
        bill("b4", 50, project_id="P4"),
    ]
    return projects, invoices, bills


def test_project_profitability_table():
    table = project_profitability(*_portfolio())

    assert list(table["PROJECT_ID"]) == ["P1", "P3", "P2", "P4"]
    row = table.set_index("PROJECT_ID").loc["P2"]
    assert row["TOTAL_INVOICED"] == 2000
    assert row["TOTAL_COLLECTED"] == 1500
    assert row["OUTSTANDING"] == 500
    assert row["GROSS_PROFIT"] == 200
    assert row["NET_PROFIT"] == -300
    assert row["PROFIT_MARGIN_PCT"] == 10.0
    assert table.set_index("PROJECT_ID").loc["P4", "PROFIT_MARGIN_PCT"] == 0.0


def test_project_profitability_filters_and_sort():
    projects, invoices, bills = _portfolio()
    closed = project_profitability(projects, invoices, bills, status="closed")
    assert list(closed["PROJECT_ID"]) == ["P1"]

    petro = project_profitability(projects, invoices, bills, client_code="PC", sort_by="code")
    assert list(petro["CODE"]) == ["2601003", "2601004"]


def test_profitability_by_client_and_summary():
    table = project_profitability(*_portfolio())

    by_client = profitability_by_client(table)
    assert list(by_client["CLIENT_CODE"]) == ["CD", "PC"]
    cd = by_client.iloc[0]
    assert cd["PROJECT_COUNT"] == 2
    assert cd["TOTAL_REVENUE"] == 3000
    assert cd["TOTAL_PROFIT"] == 800
    assert cd["AVG_MARGIN"] == 26.7

    summary = profitability_summary(table)
    assert summary["total_revenue"] == 3500
    assert summary["total_costs"] == 2350
    assert summary["total_profit"] == 1150
    assert summary["avg_profit_margin"] == 32.9
    assert summary["most_profitable_project"] == "2601003"
    assert summary["least_profitable_project"] == "2601002"


def test_profitability_summary_without_revenue():
    table = project_profitability([Project(id="P1", code="2601001")], [], [])
    summary = profitability_summary(table)
    assert summary["most_profitable_project"] == "N/A"
    assert summary["least_profitable_project"] == "N/A"
    assert summary["avg_profit_margin"] == 0.0


def test_aging_skips_numeric_due_dates():
    records = [
        invoice("ok", 100, balance=100, due_date="2026-10-20"),
        invoice("number", 100, balance=40, due_date=20261019),
    ]
    bucket = summarize_aging(records, as_of=AS_OF)
    assert bucket.skipped == 1
    assert bucket.overdue == 0
    assert math.isclose(bucket.outstanding, 100)
