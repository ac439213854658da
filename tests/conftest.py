"""
Pytest fixtures for testing
"""
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from app.application.errors import PersistenceError
from app.application.ledger import LedgerStore
from app.domain.budget_entry import BudgetEntry
from app.infrastructure.spreadsheet.workbook import FileFingerprint

SETTLEMENT_MONTH = 9


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWorkbook:
    """
    In-memory stand-in for BudgetWorkbook.

    Each path holds a list of header -> value rows; every write (ours or an
    "external" one via `put`) bumps the version used in the fingerprint.
    """

    def __init__(self):
        self.files: Dict[str, List[Dict[str, Any]]] = {}
        self.versions: Dict[str, int] = {}
        self.writes = 0
        self.reads = 0
        self.fail_reads = False
        self.fail_writes = False

    def put(self, path, rows: List[Dict[str, Any]]) -> None:
        key = str(path)
        self.files[key] = [dict(r) for r in rows]
        self.versions[key] = self.versions.get(key, 0) + 1

    def remove(self, path) -> None:
        self.files.pop(str(path), None)

    def read_rows(self, path) -> List[Dict[str, Any]]:
        self.reads += 1
        key = str(path)
        if self.fail_reads:
            raise PersistenceError("Cannot read workbook: broken file", key)
        if key not in self.files:
            raise PersistenceError("Ledger file not found", key)
        return [dict(r) for r in self.files[key]]

    def write_rows(self, path, headers: Sequence[str], rows: Sequence[Dict[str, Any]]) -> None:
        if self.fail_writes:
            raise PersistenceError("Cannot write workbook: disk full", str(path))
        self.writes += 1
        self.put(path, [{h: r.get(h) for h in headers} for r in rows])

    def fingerprint(self, path) -> Optional[FileFingerprint]:
        key = str(path)
        if key not in self.files:
            return None
        version = self.versions[key]
        return FileFingerprint(mtime_ns=version, size=len(self.files[key]), sha256=f"v{version}")


def _sheet_row(
    department: str = "DX전략 Core Group",
    account_category: str = "통신비",
    month: int = 1,
    year: int = 2025,
    type_: str = "예산",
    amount: Any = 1000,
    project_name: str = "회선",
    calculation_basis: str = "월 사용료",
    **extra: Any,
) -> Dict[str, Any]:
    """One persisted-layout row (Korean headers)"""
    row = {
        "부서": department,
        "계정과목": account_category,
        "월": month,
        "연도": year,
        "구분": type_,
        "금액": amount,
        "프로젝트명/세부항목": project_name,
        "산정근거/집행내역": calculation_basis,
    }
    row.update(extra)
    return row


def _entry_fields(**overrides: Any) -> Dict[str, Any]:
    """Field dict accepted by LedgerStore.create"""
    fields = {
        "department": "DX전략 Core Group",
        "account_category": "통신비",
        "month": 1,
        "year": 2025,
        "budget_amount": Decimal("1000"),
        "actual_amount": Decimal("500"),
        "project_name": "회선",
        "calculation_basis": "월 사용료",
    }
    fields.update(overrides)
    return fields


def _make_entry(
    entry_id: str = "e1", settlement_month: int = SETTLEMENT_MONTH, **overrides: Any
) -> BudgetEntry:
    fields = _entry_fields(**overrides)
    return BudgetEntry.build(entry_id=entry_id, settlement_month=settlement_month, **fields)


@pytest.fixture
def sheet_row():
    """Factory for persisted-layout sheet rows"""
    return _sheet_row


@pytest.fixture
def entry_fields():
    """Factory for LedgerStore.create field dicts"""
    return _entry_fields


@pytest.fixture
def make_entry():
    """Factory for built BudgetEntry values"""
    return _make_entry


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_workbook():
    return FakeWorkbook()


@pytest.fixture
def ledger_path():
    return Path("ledger/budget.xlsx")


@pytest.fixture
def store(fake_workbook, clock, ledger_path):
    """Started ledger store over an empty (missing) file"""
    counter = iter(range(1, 100000))
    ledger = LedgerStore(
        ledger_path,
        workbook=fake_workbook,
        settlement_month=SETTLEMENT_MONTH,
        save_settle_seconds=2.0,
        clock=clock,
        id_factory=lambda: f"id-{next(counter)}",
    )
    ledger.start()
    return ledger
