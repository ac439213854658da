"""
Tests for the calculation engine
"""
from decimal import Decimal

import pytest

from app.application.calculations import (
    calculate_stats,
    future_budget,
    projected_annual,
    settled_actual,
    settled_budget,
)


@pytest.fixture
def scenario_entries(make_entry):
    return [
        make_entry("a", month=1, budget_amount=1_000_000, actual_amount=500_000),
        make_entry("b", month=9, budget_amount=2_000_000, actual_amount=1_000_000),
        make_entry("c", month=10, budget_amount=1_000_000, actual_amount=0),
    ]


def test_stats_for_settled_and_future_months(scenario_entries):
    """Months 1, 9 settled, month 10 projected at the settled pace"""
    stats = calculate_stats(scenario_entries, settlement_month=9)

    assert stats.annual_total_budget == Decimal("4000000")
    assert stats.settled_budget == Decimal("3000000")
    assert stats.settled_actual == Decimal("1500000")
    assert stats.execution_rate == pytest.approx(50.0)
    assert stats.projected_annual == Decimal("2000000")
    assert stats.remaining_budget == Decimal("2500000")
    assert stats.settlement_month == 9


def test_settled_and_future_partition_the_budget(scenario_entries):
    for month in range(0, 13):
        total = settled_budget(scenario_entries, month) + future_budget(scenario_entries, month)
        assert total == Decimal("4000000")


def test_annual_total_uses_unfiltered_data(scenario_entries):
    filtered = scenario_entries[:1]
    stats = calculate_stats(filtered, 9, all_data=scenario_entries)

    assert stats.annual_total_budget == Decimal("4000000")
    assert stats.filtered_total_budget == Decimal("1000000")
    assert stats.remaining_budget == Decimal("3500000")


def test_settlement_month_zero_projects_nothing_executed(scenario_entries):
    stats = calculate_stats(scenario_entries, settlement_month=0)

    assert stats.settled_budget == Decimal("0")
    assert stats.execution_rate == 0.0
    assert stats.projected_annual == Decimal("0")


def test_settlement_month_twelve_has_no_future(scenario_entries):
    stats = calculate_stats(scenario_entries, settlement_month=12)

    assert future_budget(scenario_entries, 12) == Decimal("0")
    assert stats.projected_annual == settled_actual(scenario_entries, 12)


def test_projection_with_zero_settled_budget_is_settled_actual():
    assert projected_annual(Decimal("100"), Decimal("0"), Decimal("5000")) == Decimal("100")


def test_empty_data_yields_zeros():
    stats = calculate_stats([], settlement_month=9)

    assert stats.annual_total_budget == Decimal("0")
    assert stats.execution_rate == 0.0
    assert stats.to_dict()["projectedAnnual"] == 0.0


def test_stats_to_dict_is_camel_case(scenario_entries):
    data = calculate_stats(scenario_entries, 9).to_dict()

    assert data["annualTotalBudget"] == 4_000_000.0
    assert data["settlementMonth"] == 9
    assert "remainingBudget" in data
