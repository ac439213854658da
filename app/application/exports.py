"""
Serialization of the ledger: persisted sheet rows, CSV / JSON snapshots and
the blank import template.

All tabular outputs share PERSISTED_COLUMNS so any of them can be fed back
through ingestion.
"""
import csv
import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence

from app.domain.budget_entry import (
    COST_TYPE_FIXED,
    COST_TYPE_VARIABLE,
    DIVISION_ALL,
    BudgetEntry,
    Vocabulary,
)

PERSISTED_COLUMNS: List[str] = [
    "부서",
    "계정과목",
    "월",
    "연도",
    "구분",
    "금액",
    "예산 내/외",
    "사업구분",
    "프로젝트명/세부항목",
    "산정근거/집행내역",
    "고정비/변동비",
]

COLUMN_WIDTHS: List[int] = [20, 25, 5, 6, 8, 15, 12, 8, 25, 30, 10]

TYPE_BUDGET_LABEL = "예산"
TYPE_ACTUAL_LABEL = "실제"
WITHIN_BUDGET_LABEL = "예산 내"
OUT_OF_BUDGET_LABEL = "예산 외"


def _cell_amount(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


def _row(entry: BudgetEntry, type_label: str, amount: Decimal) -> Dict[str, Any]:
    return {
        "부서": entry.department,
        "계정과목": entry.account_category,
        "월": entry.month,
        "연도": entry.year,
        "구분": type_label,
        "금액": _cell_amount(amount),
        "예산 내/외": WITHIN_BUDGET_LABEL if entry.is_within_budget else OUT_OF_BUDGET_LABEL,
        "사업구분": entry.business_division,
        "프로젝트명/세부항목": entry.project_name,
        "산정근거/집행내역": entry.calculation_basis,
        "고정비/변동비": entry.cost_type,
    }


def entry_to_rows(entry: BudgetEntry) -> List[Dict[str, Any]]:
    """
    One row per contribution: a budget row when budget > 0, an actual row
    when actual > 0. An all-zero entry keeps a zero budget row so it
    survives a save/load cycle.
    """
    rows: List[Dict[str, Any]] = []
    if entry.budget_amount > 0 or entry.actual_amount <= 0:
        rows.append(_row(entry, TYPE_BUDGET_LABEL, entry.budget_amount))
    if entry.actual_amount > 0:
        rows.append(_row(entry, TYPE_ACTUAL_LABEL, entry.actual_amount))
    return rows


def entries_to_rows(entries: Iterable[BudgetEntry]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for entry in entries:
        rows.extend(entry_to_rows(entry))
    return rows


def rows_to_csv(rows: Sequence[Dict[str, Any]], columns: Sequence[str] = PERSISTED_COLUMNS) -> str:
    """CSV text with a UTF-8 BOM so spreadsheet apps detect the encoding."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(columns), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return "\ufeff" + buffer.getvalue()


def to_csv(entries: Iterable[BudgetEntry]) -> str:
    return rows_to_csv(entries_to_rows(entries))


def to_json(
    entries: Iterable[BudgetEntry],
    settlement_month: int,
    vocabulary: Vocabulary = Vocabulary(),
    now: datetime | None = None,
) -> Dict[str, Any]:
    """JSON snapshot of the ledger."""
    return {
        "exportDate": (now or datetime.now(timezone.utc)).isoformat(),
        "settlementMonth": settlement_month,
        "departments": list(vocabulary.departments),
        "accountCategories": list(vocabulary.account_categories),
        "data": [entry.to_dict() for entry in entries],
    }


def template_rows(vocabulary: Vocabulary = Vocabulary()) -> List[Dict[str, Any]]:
    """Example rows for the blank template: a budget and an actual row of one line."""
    base = {
        "부서": vocabulary.departments[0],
        "계정과목": vocabulary.account_categories[0],
        "월": 1,
        "연도": vocabulary.default_year,
        "예산 내/외": WITHIN_BUDGET_LABEL,
        "사업구분": DIVISION_ALL,
        "프로젝트명/세부항목": "이벤트프로모션",
        "산정근거/집행내역": "온라인 광고 집행",
        "고정비/변동비": COST_TYPE_VARIABLE,
    }
    return [
        {**base, "구분": TYPE_BUDGET_LABEL, "금액": 10000000},
        {**base, "구분": TYPE_ACTUAL_LABEL, "금액": 8000000},
        {
            **base,
            "부서": vocabulary.departments[-1],
            "계정과목": vocabulary.account_categories[1 % len(vocabulary.account_categories)],
            "월": 2,
            "구분": TYPE_BUDGET_LABEL,
            "금액": 15000000,
            "프로젝트명/세부항목": "인프라 구축",
            "산정근거/집행내역": "회선 사용료",
            "고정비/변동비": COST_TYPE_FIXED,
        },
    ]


def template_csv(vocabulary: Vocabulary = Vocabulary()) -> str:
    return rows_to_csv(template_rows(vocabulary))
