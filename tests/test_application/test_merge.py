"""
Tests for composite-key merging
"""
from decimal import Decimal

import pytest

from app.application.merge import KIND_ACTUAL, KIND_BUDGET, entry_key, merge_rows
from app.domain.budget_entry import EntryKey


def _row(kind, amount, **overrides):
    row = {
        "department": "DX전략 Core Group",
        "account_category": "통신비",
        "month": 1,
        "year": 2025,
        "project_name": "회선",
        "kind": kind,
        "amount": Decimal(amount),
        "calculation_basis": overrides.pop("calculation_basis", "기본"),
    }
    row.update(overrides)
    return row


def _classify(row):
    return row["kind"], row["amount"]


def _defaults(row):
    return {"calculation_basis": row["calculation_basis"], "cost_type": row.get("cost_type")}


def test_budget_and_actual_rows_merge_into_one_record():
    merged = merge_rows(
        [_row(KIND_BUDGET, "1000"), _row(KIND_ACTUAL, "400")], _classify, _defaults
    )

    assert len(merged) == 1
    record = next(iter(merged.values()))
    assert record.budget_amount == Decimal("1000")
    assert record.actual_amount == Decimal("400")
    assert record.has_budget and record.has_actual


def test_last_write_wins_per_kind():
    merged = merge_rows(
        [_row(KIND_BUDGET, "1000"), _row(KIND_BUDGET, "1500")], _classify, _defaults
    )

    record = next(iter(merged.values()))
    assert record.budget_amount == Decimal("1500")
    assert record.actual_amount == Decimal("0")
    assert record.has_actual is False


def test_first_seen_row_seeds_descriptive_fields():
    merged = merge_rows(
        [
            _row(KIND_ACTUAL, "10", calculation_basis="첫 행"),
            _row(KIND_BUDGET, "20", calculation_basis="둘째 행"),
        ],
        _classify,
        _defaults,
    )

    record = next(iter(merged.values()))
    assert record.calculation_basis == "첫 행"
    # None from defaults keeps the field default
    assert record.cost_type == "변동비"


def test_different_projects_stay_separate_in_input_order():
    merged = merge_rows(
        [_row(KIND_BUDGET, "1", project_name="B"), _row(KIND_BUDGET, "2", project_name="A")],
        _classify,
        _defaults,
    )

    assert [k.project_name for k in merged] == ["B", "A"]


def test_unknown_kind_raises():
    with pytest.raises(ValueError):
        merge_rows([_row("refund", "1")], _classify, _defaults)


def test_entry_key_normalizes_values():
    key = entry_key({
        "department": " DX전략 Core Group ",
        "account_category": "통신비",
        "month": "3",
        "year": 2025.0,
        "project_name": "회선 ",
    })

    assert key == EntryKey("DX전략 Core Group", "통신비", 3, 2025, "회선")
