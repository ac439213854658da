"""
Aggregation engine: group entries by a dimension and apply the calculation
engine per group.

Groups come out in first-seen order (dict insertion order); callers sort
explicitly when they need another order.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from app.application.calculations import execution_rate, projected_annual
from app.domain.budget_entry import MONTHS_PER_YEAR, BudgetEntry

_ZERO = Decimal("0")


@dataclass
class _Accumulator:
    total_budget: Decimal = _ZERO
    total_actual: Decimal = _ZERO
    settled_budget: Decimal = _ZERO
    settled_actual: Decimal = _ZERO
    future_budget: Decimal = _ZERO

    def add(self, entry: BudgetEntry, settlement_month: int) -> None:
        self.total_budget += entry.budget_amount
        self.total_actual += entry.actual_amount
        if entry.month <= settlement_month:
            self.settled_budget += entry.budget_amount
            self.settled_actual += entry.actual_amount
        else:
            self.future_budget += entry.budget_amount


@dataclass(frozen=True)
class AggregationResult:
    key: str
    budget: Decimal
    actual: Decimal
    execution_rate: float
    remaining: Decimal
    projected_annual: Decimal
    settled_budget: Decimal
    settled_actual: Decimal

    def to_dict(self, key_name: str = "key") -> Dict[str, Any]:
        return {
            key_name: self.key,
            "budget": float(self.budget),
            "actual": float(self.actual),
            "executionRate": self.execution_rate,
            "remaining": float(self.remaining),
            "projectedAnnual": float(self.projected_annual),
            "settledBudget": float(self.settled_budget),
            "settledActual": float(self.settled_actual),
        }


@dataclass(frozen=True)
class MonthPoint:
    """
    One point of the execution-rate series.

    execution_rate is None for projected (unsettled) months; the chart fills
    them from target_rate, never from a fake 0.
    """
    month: int
    label: str
    execution_rate: Optional[float]
    target_rate: float
    is_projected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "label": self.label,
            "executionRate": self.execution_rate,
            "targetRate": self.target_rate,
            "isProjected": self.is_projected,
        }


def _finalize(key: str, acc: _Accumulator) -> AggregationResult:
    return AggregationResult(
        key=key,
        budget=acc.total_budget,
        actual=acc.total_actual,
        execution_rate=execution_rate(acc.settled_budget, acc.settled_actual),
        remaining=acc.total_budget - acc.total_actual,
        projected_annual=projected_annual(acc.settled_actual, acc.settled_budget, acc.future_budget),
        settled_budget=acc.settled_budget,
        settled_actual=acc.settled_actual,
    )


def aggregate_by_key(
    entries: Iterable[BudgetEntry],
    settlement_month: int,
    key_fn: Callable[[BudgetEntry], str],
) -> List[AggregationResult]:
    groups: Dict[str, _Accumulator] = {}
    for entry in entries:
        key = key_fn(entry)
        acc = groups.get(key)
        if acc is None:
            acc = groups[key] = _Accumulator()
        acc.add(entry, settlement_month)
    return [_finalize(key, acc) for key, acc in groups.items()]


def aggregate_by_department(
    entries: Iterable[BudgetEntry], settlement_month: int = 9
) -> List[AggregationResult]:
    return aggregate_by_key(entries, settlement_month, lambda e: e.department)


def aggregate_by_account(
    entries: Iterable[BudgetEntry], settlement_month: int = 9
) -> List[AggregationResult]:
    return aggregate_by_key(entries, settlement_month, lambda e: e.account_category)


def aggregate_by_month(entries: Sequence[BudgetEntry], settlement_month: int) -> List[MonthPoint]:
    """
    Cumulative execution-rate series over the 12 months.

    Settled month m: sum(actual) / sum(budget) over months <= m.
    Month after the settlement month: execution_rate is None.
    """
    budget_by_month = [_ZERO] * (MONTHS_PER_YEAR + 1)
    actual_by_month = [_ZERO] * (MONTHS_PER_YEAR + 1)
    for entry in entries:
        if 1 <= entry.month <= MONTHS_PER_YEAR:
            budget_by_month[entry.month] += entry.budget_amount
            actual_by_month[entry.month] += entry.actual_amount

    points: List[MonthPoint] = []
    cum_budget = _ZERO
    cum_actual = _ZERO
    for month in range(1, MONTHS_PER_YEAR + 1):
        is_projected = month > settlement_month
        rate: Optional[float] = None
        if not is_projected:
            cum_budget += budget_by_month[month]
            cum_actual += actual_by_month[month]
            rate = execution_rate(cum_budget, cum_actual)
        points.append(MonthPoint(
            month=month,
            label=f"{month}월",
            execution_rate=rate,
            target_rate=month / MONTHS_PER_YEAR * 100,
            is_projected=is_projected,
        ))
    return points
