"""
Query surface: filter ledger entries by month range, year, departments and
account categories.
"""
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from app.domain.budget_entry import MAX_MONTH, MIN_MONTH, BudgetEntry


class BudgetFilter(BaseModel):
    """
    Every predicate is optional and AND-combined.

    Empty `departments` / `account_categories` mean "no restriction", not
    "match nothing". The month range is inclusive on both ends.
    """
    start_month: Optional[int] = Field(default=None, ge=MIN_MONTH, le=MAX_MONTH)
    end_month: Optional[int] = Field(default=None, ge=MIN_MONTH, le=MAX_MONTH)
    year: Optional[int] = None
    departments: List[str] = Field(default_factory=list)
    account_categories: List[str] = Field(default_factory=list)

    def matches(self, entry: BudgetEntry) -> bool:
        if self.start_month is not None and entry.month < self.start_month:
            return False
        if self.end_month is not None and entry.month > self.end_month:
            return False
        if self.year is not None and entry.year != self.year:
            return False
        if self.departments and entry.department not in self.departments:
            return False
        if self.account_categories and entry.account_category not in self.account_categories:
            return False
        return True


def filter_entries(entries: Iterable[BudgetEntry], flt: BudgetFilter | None = None) -> List[BudgetEntry]:
    if flt is None:
        return list(entries)
    return [entry for entry in entries if flt.matches(entry)]
