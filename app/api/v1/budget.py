"""
Budget ledger API endpoints
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.api.deps import get_ledger
from app.application.aggregation import (
    aggregate_by_account,
    aggregate_by_department,
    aggregate_by_month,
)
from app.application.errors import ValidationError
from app.application.exports import (
    COLUMN_WIDTHS,
    PERSISTED_COLUMNS,
    template_csv,
    template_rows,
    to_csv,
    to_json,
)
from app.application.ingestion import ingest_rows, rows_from_csv
from app.application.ledger import LedgerStore
from app.application.query import BudgetFilter
from app.infrastructure.spreadsheet.workbook import workbook_bytes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/budget", tags=["budget"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


# === Request models ===

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateEntryRequest(_CamelModel):
    department: str
    account_category: str
    month: int = Field(ge=1, le=12)
    year: int
    budget_amount: Decimal = Field(ge=0)
    actual_amount: Decimal = Field(default=Decimal("0"), ge=0)
    project_name: str = Field(min_length=1)
    calculation_basis: str = Field(min_length=1)
    is_within_budget: Optional[bool] = None
    business_division: Optional[str] = None
    cost_type: Optional[str] = None


class UpdateEntryRequest(_CamelModel):
    """Partial update; only the fields present in the body are applied."""
    department: Optional[str] = None
    account_category: Optional[str] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None
    budget_amount: Optional[Decimal] = Field(default=None, ge=0)
    actual_amount: Optional[Decimal] = Field(default=None, ge=0)
    project_name: Optional[str] = Field(default=None, min_length=1)
    calculation_basis: Optional[str] = Field(default=None, min_length=1)
    is_within_budget: Optional[bool] = None
    business_division: Optional[str] = None
    cost_type: Optional[str] = None


class BulkCreateRequest(BaseModel):
    entries: List[CreateEntryRequest]


class ImportRequest(BaseModel):
    """Raw rows (header -> value) or delimited text with a header row."""
    rows: Optional[List[Dict[str, Any]]] = None
    csv: Optional[str] = None

    @model_validator(mode="after")
    def _one_source(self):
        if self.rows is None and self.csv is None:
            raise ValueError("either rows or csv is required")
        return self

    def raw_rows(self) -> List[Dict[str, Any]]:
        if self.rows is not None:
            return self.rows
        return rows_from_csv(self.csv or "")


class ReloadRequest(_CamelModel):
    file_path: Optional[str] = None


# === Dependencies ===

def budget_filter(
    start_month: Optional[int] = Query(None, alias="startMonth", ge=1, le=12),
    end_month: Optional[int] = Query(None, alias="endMonth", ge=1, le=12),
    year: Optional[int] = Query(None),
    departments: Optional[List[str]] = Query(None),
    account_categories: Optional[List[str]] = Query(None, alias="accountCategories"),
) -> BudgetFilter:
    return BudgetFilter(
        start_month=start_month,
        end_month=end_month,
        year=year,
        departments=departments or [],
        account_categories=account_categories or [],
    )


def _attachment(filename: str) -> Dict[str, str]:
    return {"Content-Disposition": f"attachment; filename={filename}"}


# === Entries ===

@router.get("")
def list_entries(
    flt: BudgetFilter = Depends(budget_filter),
    store: LedgerStore = Depends(get_ledger),
):
    """Entries matching the filter (all when no filter is given)"""
    entries = store.get_filtered(flt)
    logger.info("Fetched %d budget entries", len(entries))
    return [e.to_dict() for e in entries]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_entry(req: CreateEntryRequest, store: LedgerStore = Depends(get_ledger)):
    entry = store.create(req.model_dump())
    return entry.to_dict()


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
def create_entries(req: BulkCreateRequest, store: LedgerStore = Depends(get_ledger)):
    """Create several entries at once; nothing is stored if one of them is invalid"""
    entries = store.create_many([item.model_dump() for item in req.entries])
    return {"success": True, "count": len(entries), "entries": [e.to_dict() for e in entries]}


@router.delete("/clear")
def clear_entries(store: LedgerStore = Depends(get_ledger)):
    store.clear()
    return {"success": True, "message": "모든 예산 데이터가 삭제되었습니다."}


# === Import / reload ===

@router.post("/import")
def import_rows(req: ImportRequest, store: LedgerStore = Depends(get_ledger)):
    """
    Validate, merge and persist raw rows.

    Invalid rows are reported in `errors` and skipped; valid rows are merged
    by composite key and upserted.
    """
    result = store.import_rows(req.raw_rows())
    return result.to_dict()


@router.post("/import/preview")
def preview_import(req: ImportRequest, store: LedgerStore = Depends(get_ledger)):
    """Same checks as import (amounts parsed leniently), nothing is persisted"""
    report = ingest_rows(req.raw_rows(), store.vocabulary, strict=False)
    return {
        "total": report.total,
        "valid": report.valid,
        "invalid": report.invalid,
        "errors": report.errors,
        "rows": [r.to_dict() for r in report.rows],
        "mergedCount": len(report.merged),
    }


@router.post("/reload-from-excel")
def reload_from_excel(req: Optional[ReloadRequest] = None, store: LedgerStore = Depends(get_ledger)):
    count = store.reload(req.file_path if req else None)
    return {
        "success": True,
        "count": count,
        "message": f"엑셀 파일에서 {count}개의 항목을 로드했습니다.",
    }


# === Summaries ===

@router.get("/summary/stats")
def summary_stats(
    flt: BudgetFilter = Depends(budget_filter),
    store: LedgerStore = Depends(get_ledger),
):
    return store.stats(flt).to_dict()


@router.get("/summary/departments")
def summary_departments(
    flt: BudgetFilter = Depends(budget_filter),
    store: LedgerStore = Depends(get_ledger),
):
    results = aggregate_by_department(store.get_filtered(flt), store.settlement_month)
    return [r.to_dict(key_name="department") for r in results]


@router.get("/summary/accounts")
def summary_accounts(
    flt: BudgetFilter = Depends(budget_filter),
    store: LedgerStore = Depends(get_ledger),
):
    results = aggregate_by_account(store.get_filtered(flt), store.settlement_month)
    return [r.to_dict(key_name="accountCategory") for r in results]


@router.get("/summary/months")
def summary_months(
    flt: BudgetFilter = Depends(budget_filter),
    store: LedgerStore = Depends(get_ledger),
):
    """Cumulative execution rate per month; months after settlement are projected"""
    points = aggregate_by_month(store.get_filtered(flt), store.settlement_month)
    return [p.to_dict() for p in points]


# === Exports ===

@router.get("/export/json")
def export_json(store: LedgerStore = Depends(get_ledger)):
    entries = store.get_all()
    logger.info("Exported %d entries as JSON", len(entries))
    payload = to_json(entries, store.settlement_month, store.vocabulary)
    return JSONResponse(
        content=payload,
        headers=_attachment(f"budget_data_{date.today().isoformat()}.json"),
    )


@router.get("/export/csv")
def export_csv(store: LedgerStore = Depends(get_ledger)):
    entries = store.get_all()
    logger.info("Exported %d entries as CSV", len(entries))
    return Response(
        content=to_csv(entries),
        media_type=CSV_MEDIA_TYPE,
        headers=_attachment(f"budget_data_{date.today().isoformat()}.csv"),
    )


@router.get("/template/csv")
def template_as_csv(store: LedgerStore = Depends(get_ledger)):
    return Response(
        content=template_csv(store.vocabulary),
        media_type=CSV_MEDIA_TYPE,
        headers=_attachment("budget_template.csv"),
    )


@router.get("/template/xlsx")
def template_as_xlsx(store: LedgerStore = Depends(get_ledger)):
    output = workbook_bytes(PERSISTED_COLUMNS, template_rows(store.vocabulary), COLUMN_WIDTHS)
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment("budget_template.xlsx"),
    )


# === Single entry (registered last so /clear, /summary/... win) ===

@router.get("/{entry_id}")
def get_entry(entry_id: str, store: LedgerStore = Depends(get_ledger)):
    return store.get_by_id(entry_id).to_dict()


@router.patch("/{entry_id}")
def update_entry(entry_id: str, req: UpdateEntryRequest, store: LedgerStore = Depends(get_ledger)):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("no fields to update")
    return store.update(entry_id, changes).to_dict()


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(entry_id: str, store: LedgerStore = Depends(get_ledger)):
    store.delete(entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
