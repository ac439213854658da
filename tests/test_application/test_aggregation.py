"""
Tests for the aggregation engine
"""
from decimal import Decimal

import pytest

from app.application.aggregation import (
    aggregate_by_account,
    aggregate_by_department,
    aggregate_by_month,
)


def test_department_totals_and_rate(make_entry):
    entries = [
        make_entry("a", department="X", month=1, budget_amount=1_000_000, actual_amount=500_000),
        make_entry("b", department="X", month=2, budget_amount=2_000_000, actual_amount=1_000_000),
    ]

    [result] = aggregate_by_department(entries, 9)

    assert result.key == "X"
    assert result.budget == Decimal("3000000")
    assert result.actual == Decimal("1500000")
    assert result.execution_rate == pytest.approx(50.0)
    assert result.remaining == Decimal("1500000")


def test_groups_keep_first_seen_order(make_entry):
    entries = [
        make_entry("a", account_category="통신비"),
        make_entry("b", account_category="지급수수료"),
        make_entry("c", account_category="통신비"),
    ]

    results = aggregate_by_account(entries, 9)

    assert [r.key for r in results] == ["통신비", "지급수수료"]
    assert results[0].budget == Decimal("2000")


def test_group_rate_uses_settled_months_only(make_entry):
    entries = [
        make_entry("a", department="X", month=9, budget_amount=100, actual_amount=100),
        make_entry("b", department="X", month=10, budget_amount=100, actual_amount=0),
    ]

    [result] = aggregate_by_department(entries, 9)

    assert result.execution_rate == pytest.approx(100.0)
    assert result.projected_annual == Decimal("200")
    assert result.to_dict(key_name="department")["department"] == "X"


def test_month_series_is_cumulative_and_null_after_settlement(make_entry):
    entries = [
        make_entry("a", month=1, budget_amount=100, actual_amount=50),
        make_entry("b", month=2, budget_amount=100, actual_amount=100),
        make_entry("c", month=11, budget_amount=100, actual_amount=0),
    ]

    points = aggregate_by_month(entries, settlement_month=9)

    assert len(points) == 12
    assert points[0].execution_rate == pytest.approx(50.0)
    assert points[1].execution_rate == pytest.approx(75.0)
    assert points[8].execution_rate == pytest.approx(75.0)
    assert points[9].execution_rate is None
    assert points[9].is_projected is True
    assert points[10].to_dict()["executionRate"] is None
    assert points[11].target_rate == pytest.approx(100.0)
    assert points[0].label == "1월"


def test_month_series_empty_ledger():
    points = aggregate_by_month([], settlement_month=3)

    assert points[2].execution_rate == 0.0
    assert points[3].execution_rate is None
