"""
Composite-key identity and row merging.

A persisted sheet (or a bulk import) carries one row per contribution: a
budget row and an actual row for the same line. `merge_rows` folds them into
one record per `EntryKey`:
  - descriptive fields: first-seen row wins
  - amounts: last write wins per kind (budget / actual)
Repeated budget rows for the same key replace each other silently, so
re-importing the same file is idempotent.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Tuple, TypeVar

from app.domain.budget_entry import (
    COST_TYPE_VARIABLE,
    DIVISION_ALL,
    BudgetEntry,
    EntryKey,
)

KIND_BUDGET = "budget"
KIND_ACTUAL = "actual"

_ZERO = Decimal("0")

_KEY_FIELDS = ("department", "account_category", "month", "year", "project_name")

R = TypeVar("R")


def entry_key(obj: Any) -> EntryKey:
    """
    Build the merge key of an entry, a candidate row or a plain mapping.

    The key is a tuple, so no field value can collide with a delimiter.
    """
    if isinstance(obj, Mapping):
        values = [obj.get(name) for name in _KEY_FIELDS]
    else:
        values = [getattr(obj, name) for name in _KEY_FIELDS]
    department, account_category, month, year, project_name = values
    return EntryKey(
        str(department).strip(),
        str(account_category).strip(),
        int(month),
        int(year),
        str(project_name).strip(),
    )


@dataclass
class MergedEntry:
    """Merge record: one logical budget line before it gets an id."""
    department: str
    account_category: str
    month: int
    year: int
    project_name: str
    calculation_basis: str = ""
    is_within_budget: bool = True
    business_division: str = DIVISION_ALL
    cost_type: str = COST_TYPE_VARIABLE
    budget_amount: Decimal = _ZERO
    actual_amount: Decimal = _ZERO
    has_budget: bool = False
    has_actual: bool = False

    @property
    def key(self) -> EntryKey:
        return entry_key(self)

    def to_entry(self, entry_id: str, settlement_month: int) -> BudgetEntry:
        return BudgetEntry.build(
            entry_id=entry_id,
            settlement_month=settlement_month,
            department=self.department,
            account_category=self.account_category,
            month=self.month,
            year=self.year,
            budget_amount=self.budget_amount,
            actual_amount=self.actual_amount,
            project_name=self.project_name,
            calculation_basis=self.calculation_basis,
            is_within_budget=self.is_within_budget,
            business_division=self.business_division,
            cost_type=self.cost_type,
        )


def merge_rows(
    rows: Iterable[R],
    classify: Callable[[R], Tuple[str, Decimal]],
    defaults: Callable[[R], Dict[str, Any]] = lambda row: {},
) -> Dict[EntryKey, MergedEntry]:
    """
    Fold raw rows into merge records keyed by `EntryKey`.

    Args:
        rows: rows in input order
        classify: row -> (KIND_BUDGET | KIND_ACTUAL, amount)
        defaults: row -> descriptive fields used to seed a new record
            (calculation_basis, is_within_budget, business_division, cost_type)

    Returns:
        insertion-ordered dict key -> MergedEntry
    """
    merged: Dict[EntryKey, MergedEntry] = {}

    for row in rows:
        key = entry_key(row)
        kind, amount = classify(row)

        record = merged.get(key)
        if record is None:
            seed = {k: v for k, v in defaults(row).items() if v is not None}
            record = MergedEntry(
                department=key.department,
                account_category=key.account_category,
                month=key.month,
                year=key.year,
                project_name=key.project_name,
                **seed,
            )
            merged[key] = record

        if kind == KIND_BUDGET:
            record.budget_amount = amount
            record.has_budget = True
        elif kind == KIND_ACTUAL:
            record.actual_amount = amount
            record.has_actual = True
        else:
            raise ValueError(f"Unknown contribution kind: {kind!r}")

    return merged
