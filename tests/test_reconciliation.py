from __future__ import annotations

from dataclasses import replace

import pytest

from projledger.models import bill, invoice
from projledger.reconciliation import (
    ASSIGNED,
    CLEARED,
    UNCHANGED,
    clear_project_assignments,
    diff_assignment,
    reconcile,
    summarize_reconciliation,
)

PROJECTS = {"2601007": "P1", "2601010": "P2"}


def _apply(records, results):
    by_id = {result.record_id: result for result in results}
    updated = []
    for record in records:
        result = by_id[record.id]
        if result.changed:
            record = replace(record, project_id=result.new_project_id, match_confidence=result.confidence)
        updated.append(record)
    return updated


def test_diff_assignment_tags():
    assert diff_assignment(None, None).tag == UNCHANGED
    assert diff_assignment("P1", "P1").tag == UNCHANGED
    assert diff_assignment(None, "P1").tag == ASSIGNED
    assert diff_assignment("P1", "P2").tag == ASSIGNED
    assert diff_assignment("P1", None).tag == CLEARED
    assert not diff_assignment("", None).changed


def test_invoices_example():
    records = [
        invoice("i1", 100, memo="Job 2601007 demo"),
        invoice("i2", 100, memo="Job 2601010", project_id="P1"),
        invoice("i3", 100, memo="no code", project_id="P2", match_confidence="high"),
        invoice("i4", 100, memo="Job 2601007", project_id="P1", match_confidence="high"),
    ]
    results = reconcile(records, PROJECTS)

    changed = {r.record_id: (r.new_project_id, r.confidence) for r in results if r.changed}
    assert changed == {
        "i1": ("P1", "high"),
        "i2": ("P2", "high"),
        "i3": (None, None),
    }
    unchanged = [r for r in results if not r.changed]
    assert [r.record_id for r in unchanged] == ["i4"]
    assert unchanged[0].confidence == "high"


def test_results_keep_input_order():
    records = [invoice(f"i{n}", 10, memo="2601007") for n in range(5)]
    assert [r.record_id for r in reconcile(records, PROJECTS)] == [f"i{n}" for n in range(5)]


def test_unmapped_code_clears_assignment():
    records = [invoice("i1", 100, memo="Job 2999999", project_id="P1", match_confidence="high")]
    (result,) = reconcile(records, PROJECTS)
    assert result.code == "2999999"
    assert result.change == CLEARED
    assert result.new_project_id is None


def test_only_known_ids_are_assigned():
    records = [
        invoice("i1", 1, memo="2601007"),
        invoice("i2", 1, memo="2601010"),
        invoice("i3", 1, memo="2123456"),
        invoice("i4", 1, memo=None),
    ]
    for result in reconcile(records, PROJECTS):
        assert result.new_project_id in (None, "P1", "P2")


def test_bills_never_carry_confidence():
    records = [
        bill("b1", 50, memo="Dumpster 2601007"),
        bill("b2", 50, memo="fuel", project_id="P1"),
        bill("b3", 50, memo="2601010", project_id="P2"),
    ]
    results = reconcile(records, PROJECTS)
    assert [(r.record_id, r.change) for r in results] == [("b1", ASSIGNED), ("b2", CLEARED), ("b3", UNCHANGED)]
    assert all(r.confidence is None for r in results)
    assert all(r.kind == "bill" for r in results)


def test_reconcile_is_idempotent():
    records = [
        invoice("i1", 100, memo="Job 2601007"),
        invoice("i2", 100, memo="Job 2601010", project_id="P1"),
        invoice("i3", 100, memo="nothing", project_id="P2", match_confidence="high"),
        bill("b1", 40, memo="2601010"),
        bill("b2", 40, memo="", project_id="P1"),
    ]
    first = reconcile(records, PROJECTS)
    assert any(r.changed for r in first)

    second = reconcile(_apply(records, first), PROJECTS)
    assert not any(r.changed for r in second)


def test_preserve_manual_keeps_confirmed_invoice():
    records = [
        invoice("i1", 100, memo="no code", project_id="P2", match_confidence="high"),
        invoice("i2", 100, memo="no code", project_id="P2", match_confidence="medium"),
        invoice("i3", 100, memo="Job 2601007", project_id="P2", match_confidence="high"),
        bill("b1", 100, memo="no code", project_id="P2"),
    ]
    results = {r.record_id: r for r in reconcile(records, PROJECTS, preserve_manual=True)}

    assert not results["i1"].changed
    assert results["i1"].confidence == "high"
    assert results["i2"].change == CLEARED
    assert results["i3"].new_project_id == "P1"
    assert results["b1"].change == CLEARED


def test_summary_counts():
    records = [
        invoice("i1", 1, memo="2601007"),
        invoice("i2", 1, memo="x", project_id="P1"),
        invoice("i3", 1, memo="x"),
    ]
    summary = summarize_reconciliation(reconcile(records, PROJECTS))
    assert (summary.total, summary.assigned, summary.cleared, summary.unchanged) == (3, 1, 1, 1)


def test_clear_project_calls_both_writers():
    calls = []
    result = clear_project_assignments("P1", lambda pid: calls.append(("invoices", pid)), lambda pid: calls.append(("bills", pid)))
    assert calls == [("invoices", "P1"), ("bills", "P1")]
    assert result.success
    assert result.invoices_cleared and result.bills_cleared


def test_clear_project_continues_after_invoice_failure(caplog):
    calls = []

    def failing(project_id):
        raise RuntimeError("store unavailable")

    with caplog.at_level("WARNING"):
        result = clear_project_assignments("P1", failing, lambda pid: calls.append(pid))

    assert calls == ["P1"]
    assert result.success
    assert not result.invoices_cleared
    assert result.invoices_error == "store unavailable"
    assert result.bills_cleared
    assert "store unavailable" in caplog.text


@pytest.mark.parametrize("fail_invoices, fail_bills", [(False, True), (True, True)])
def test_clear_project_reports_each_failure(fail_invoices, fail_bills):
    def writer(fail):
        def _write(project_id):
            if fail:
                raise ValueError()
        return _write

    result = clear_project_assignments("P9", writer(fail_invoices), writer(fail_bills))
    assert result.success
    assert result.invoices_cleared is not fail_invoices
    assert result.bills_cleared is not fail_bills
    if fail_bills:
        assert result.bills_error == "ValueError"
