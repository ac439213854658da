"""
Budget calculation engine (pure functions).

Settlement month = last month whose actual spend is final.

Three budget figures are kept apart (MECE):
  annual_total_budget   - all data, independent of the current filter
  filtered_total_budget - current filter, every month in range
  settled_budget        - current filter, months <= settlement month

projected_annual = settled_actual + future_budget * (settled_actual / settled_budget)
where future_budget is the budget of months after the settlement month.
"""
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Sequence

from app.domain.budget_entry import BudgetEntry, calculate_execution_rate

_ZERO = Decimal("0")

# Single formula shared with the domain entity
execution_rate = calculate_execution_rate


def execution_rate_decimal(budget: Decimal, actual: Decimal) -> Decimal:
    """Execution rate as a ratio (0..1+), 0 when budget is 0."""
    return actual / budget if budget > 0 else _ZERO


def sum_by(items: Iterable[BudgetEntry], get_value: Callable[[BudgetEntry], Decimal]) -> Decimal:
    return sum((get_value(item) for item in items), _ZERO)


def total_budget(entries: Iterable[BudgetEntry]) -> Decimal:
    return sum_by(entries, lambda e: e.budget_amount)


def total_actual(entries: Iterable[BudgetEntry]) -> Decimal:
    return sum_by(entries, lambda e: e.actual_amount)


def settled_budget(entries: Iterable[BudgetEntry], settlement_month: int) -> Decimal:
    return sum_by((e for e in entries if e.month <= settlement_month), lambda e: e.budget_amount)


def settled_actual(entries: Iterable[BudgetEntry], settlement_month: int) -> Decimal:
    return sum_by((e for e in entries if e.month <= settlement_month), lambda e: e.actual_amount)


def future_budget(entries: Iterable[BudgetEntry], settlement_month: int) -> Decimal:
    """Budget of the months that are not settled yet."""
    return sum_by((e for e in entries if e.month > settlement_month), lambda e: e.budget_amount)


def projected_annual(settled_act: Decimal, settled_bud: Decimal, future_bud: Decimal) -> Decimal:
    """
    Annual projection at the settled execution pace.

    settled_budget == 0 -> rate factor 0 -> projection equals settled actual.
    """
    return settled_act + future_bud * execution_rate_decimal(settled_bud, settled_act)


@dataclass(frozen=True)
class BudgetStats:
    annual_total_budget: Decimal
    filtered_total_budget: Decimal
    filtered_total_actual: Decimal
    settled_budget: Decimal
    settled_actual: Decimal
    execution_rate: float
    projected_annual: Decimal
    remaining_budget: Decimal
    settlement_month: int

    def to_dict(self) -> Dict[str, Any]:
        raw = asdict(self)
        names = {
            "annual_total_budget": "annualTotalBudget",
            "filtered_total_budget": "filteredTotalBudget",
            "filtered_total_actual": "filteredTotalActual",
            "settled_budget": "settledBudget",
            "settled_actual": "settledActual",
            "execution_rate": "executionRate",
            "projected_annual": "projectedAnnual",
            "remaining_budget": "remainingBudget",
            "settlement_month": "settlementMonth",
        }
        return {
            names[k]: float(v) if isinstance(v, Decimal) else v
            for k, v in raw.items()
        }


def calculate_stats(
    data: Sequence[BudgetEntry],
    settlement_month: int,
    all_data: Sequence[BudgetEntry] | None = None,
) -> BudgetStats:
    """
    Compute dashboard statistics.

    Args:
        data: filtered entries
        settlement_month: last closed month (0..12)
        all_data: unfiltered entries for the annual total; defaults to `data`
    """
    all_budget_data = data if all_data is None else all_data

    annual_total = total_budget(all_budget_data)
    filtered_budget = total_budget(data)
    filtered_actual = total_actual(data)
    s_budget = settled_budget(data, settlement_month)
    s_actual = settled_actual(data, settlement_month)
    f_budget = future_budget(data, settlement_month)

    return BudgetStats(
        annual_total_budget=annual_total,
        filtered_total_budget=filtered_budget,
        filtered_total_actual=filtered_actual,
        settled_budget=s_budget,
        settled_actual=s_actual,
        execution_rate=execution_rate(s_budget, s_actual),
        projected_annual=projected_annual(s_actual, s_budget, f_budget),
        remaining_budget=annual_total - filtered_actual,
        settlement_month=settlement_month,
    )
