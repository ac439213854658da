"""
BudgetEntry domain entity

One logical budget line: a (department, account category, month, year,
project) slot with its planned and executed amounts. Entries are immutable
value objects; every change goes through `BudgetEntry.build` / `with_changes`,
which re-apply the settlement constraint and recompute the execution rate.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, NamedTuple, Tuple

DEFAULT_DEPARTMENTS: Tuple[str, ...] = (
    "DX전략 Core Group",
    "서비스혁신 Core",
    "플랫폼혁신 Core",
    "백오피스혁신 Core",
    "러닝마케팅 Core",
)

DEFAULT_ACCOUNT_CATEGORIES: Tuple[str, ...] = (
    "광고선전비(이벤트)",
    "통신비",
    "지급수수료",
    "지급수수료(은행수수료)",
    "지급수수료(외부용역,자문료)",
    "지급수수료(유지보수료)",
    "지급수수료(저작료)",
    "지급수수료(제휴)",
)

# Business divisions; "전체" is the catch-all
DIVISION_KIDS = "키즈"
DIVISION_ELEMENTARY = "초등"
DIVISION_MIDDLE = "중등"
DIVISION_ALL = "전체"
DEFAULT_BUSINESS_DIVISIONS: Tuple[str, ...] = (
    DIVISION_KIDS, DIVISION_ELEMENTARY, DIVISION_MIDDLE, DIVISION_ALL,
)

COST_TYPE_FIXED = "고정비"
COST_TYPE_VARIABLE = "변동비"
DEFAULT_COST_TYPES: Tuple[str, ...] = (COST_TYPE_FIXED, COST_TYPE_VARIABLE)

MIN_MONTH = 1
MAX_MONTH = 12
MONTHS_PER_YEAR = 12

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class EntryKey(NamedTuple):
    """Composite identity of a budget line (merge key)."""
    department: str
    account_category: str
    month: int
    year: int
    project_name: str


@dataclass(frozen=True)
class Vocabulary:
    """Closed vocabularies and the accepted year band."""
    departments: Tuple[str, ...] = DEFAULT_DEPARTMENTS
    account_categories: Tuple[str, ...] = DEFAULT_ACCOUNT_CATEGORIES
    business_divisions: Tuple[str, ...] = DEFAULT_BUSINESS_DIVISIONS
    cost_types: Tuple[str, ...] = DEFAULT_COST_TYPES
    min_year: int = 2020
    max_year: int = 2030
    default_year: int = 2025

    def is_department(self, value: str) -> bool:
        return value in self.departments

    def is_account_category(self, value: str) -> bool:
        return value in self.account_categories

    def is_business_division(self, value: str) -> bool:
        return value in self.business_divisions

    def is_cost_type(self, value: str) -> bool:
        return value in self.cost_types


def calculate_execution_rate(budget: Decimal, actual: Decimal) -> float:
    """
    Execution rate in percent.

    Zero budget yields 0.0, never an error or NaN.
    """
    if budget > 0:
        return float(Decimal(actual) / Decimal(budget) * _HUNDRED)
    return 0.0


def enforce_settlement_constraint(month: int, actual: Decimal, settlement_month: int) -> Decimal:
    """Actual spend for a month after the settlement month is forced to zero."""
    return _ZERO if month > settlement_month else Decimal(actual)


def to_amount(value: Any) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal (floats via str to avoid binary noise)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class BudgetEntry:
    """
    Unit of record of the ledger.

    `execution_rate` is derived and is never accepted from callers:
    use `build()` or `with_changes()` to obtain a consistent instance.
    """
    id: str
    department: str
    account_category: str
    month: int
    year: int
    budget_amount: Decimal
    actual_amount: Decimal
    project_name: str
    calculation_basis: str
    is_within_budget: bool = True
    business_division: str = DIVISION_ALL
    cost_type: str = COST_TYPE_VARIABLE
    execution_rate: float = field(default=0.0)

    @staticmethod
    def build(
        entry_id: str,
        settlement_month: int,
        department: str,
        account_category: str,
        month: int,
        year: int,
        budget_amount: Any,
        actual_amount: Any,
        project_name: str,
        calculation_basis: str,
        is_within_budget: bool | None = None,
        business_division: str | None = None,
        cost_type: str | None = None,
    ) -> "BudgetEntry":
        """
        Create an entry applying the settlement constraint and execution rate.

        Args:
            entry_id: id assigned by the ledger
            settlement_month: last closed month (1-12, 0 means nothing closed)
            is_within_budget / business_division / cost_type: None -> documented default

        Returns:
            BudgetEntry with derived fields filled in
        """
        budget = to_amount(budget_amount)
        actual = enforce_settlement_constraint(month, to_amount(actual_amount), settlement_month)
        return BudgetEntry(
            id=entry_id,
            department=department,
            account_category=account_category,
            month=month,
            year=year,
            budget_amount=budget,
            actual_amount=actual,
            project_name=project_name,
            calculation_basis=calculation_basis,
            is_within_budget=True if is_within_budget is None else is_within_budget,
            business_division=business_division or DIVISION_ALL,
            cost_type=cost_type or COST_TYPE_VARIABLE,
            execution_rate=calculate_execution_rate(budget, actual),
        )

    def with_changes(self, settlement_month: int, **changes: Any) -> "BudgetEntry":
        """
        Partial update. `id` and `execution_rate` in `changes` are ignored.
        """
        changes.pop("id", None)
        changes.pop("execution_rate", None)
        updated = replace(self, **changes)
        budget = to_amount(updated.budget_amount)
        actual = enforce_settlement_constraint(
            updated.month, to_amount(updated.actual_amount), settlement_month
        )
        return replace(
            updated,
            budget_amount=budget,
            actual_amount=actual,
            execution_rate=calculate_execution_rate(budget, actual),
        )

    @property
    def key(self) -> EntryKey:
        return EntryKey(
            self.department, self.account_category, self.month, self.year, self.project_name
        )

    def to_dict(self) -> Dict[str, Any]:
        """camelCase representation used by the API and JSON export."""
        return {
            "id": self.id,
            "department": self.department,
            "accountCategory": self.account_category,
            "month": self.month,
            "year": self.year,
            "budgetAmount": _json_number(self.budget_amount),
            "actualAmount": _json_number(self.actual_amount),
            "executionRate": self.execution_rate,
            "isWithinBudget": self.is_within_budget,
            "businessDivision": self.business_division,
            "projectName": self.project_name,
            "calculationBasis": self.calculation_basis,
            "costType": self.cost_type,
        }


def _json_number(value: Decimal) -> int | float:
    """Whole amounts as int, fractional ones as float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)
