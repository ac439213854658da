"""
Row ingestion and validation.

Turns externally sourced rows (spreadsheet rows or delimited text) into
validated candidate rows, then merges the valid ones by composite key.

Rules, collected per row (all failures are reported, none stops the check):
  1. required non-empty: department, accountCategory, projectName,
     calculationBasis, type
  2. department / accountCategory in their closed vocabularies;
     businessDivision / costType checked only when present
  3. type classifies as budget-like or actual-like
  4. month in 1..12, year inside the configured band
  5. amount >= 0 (and parseable, except in preview mode)

Optional fields default silently (isWithinBudget=True, businessDivision="전체",
costType="변동비") while required text fields reject the row. The asymmetry is
intended: the former are genuinely optional, the latter are required but
often missing in legacy sheets.

Malformed *data* never raises; the caller receives a RowResult with errors.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.application.merge import KIND_ACTUAL, KIND_BUDGET, MergedEntry, merge_rows
from app.domain.budget_entry import (
    COST_TYPE_VARIABLE,
    DIVISION_ALL,
    MAX_MONTH,
    MIN_MONTH,
    EntryKey,
    Vocabulary,
)
from app.utils.validation import clean_text, has_illegal_characters, parse_decimal, parse_int

logger = logging.getLogger(__name__)

# Header -> field. Korean headers are the persisted layout; camelCase and
# snake_case names are accepted for JSON payloads.
FIELD_MAPPING: Dict[str, str] = {
    "부서": "department",
    "계정과목": "account_category",
    "월": "month",
    "연도": "year",
    "구분": "type",
    "금액": "amount",
    "예산 내/외": "is_within_budget",
    "사업구분": "business_division",
    "프로젝트명": "project_name",
    "프로젝트명/세부항목": "project_name",
    "산정근거/집행내역": "calculation_basis",
    "고정비/변동비": "cost_type",
    "department": "department",
    "accountCategory": "account_category",
    "account_category": "account_category",
    "month": "month",
    "year": "year",
    "type": "type",
    "amount": "amount",
    "isWithinBudget": "is_within_budget",
    "is_within_budget": "is_within_budget",
    "businessDivision": "business_division",
    "business_division": "business_division",
    "projectName": "project_name",
    "project_name": "project_name",
    "calculationBasis": "calculation_basis",
    "calculation_basis": "calculation_basis",
    "costType": "cost_type",
    "cost_type": "cost_type",
}

REQUIRED_COLUMNS: Tuple[str, ...] = (
    "department", "account_category", "month", "year", "type", "amount",
    "project_name", "calculation_basis",
)

# Names used in validation messages
FIELD_LABELS: Dict[str, str] = {
    "department": "department",
    "account_category": "accountCategory",
    "project_name": "projectName",
    "calculation_basis": "calculationBasis",
    "type": "type",
}

BUDGET_TYPE_TOKENS = frozenset({"예산", "계획", "budget", "plan"})
ACTUAL_TYPE_TOKENS = frozenset({"실제", "집행", "actual", "execution"})
WITHIN_BUDGET_TOKENS = frozenset({"예산 내", "예산내", "true", "yes", "y", "1"})


def _normalize_header(header: str) -> str:
    return "".join(str(header).split()).lower()


_NORMALIZED_MAPPING: Dict[str, str] = {
    _normalize_header(header): name for header, name in FIELD_MAPPING.items()
}


def map_row(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map raw headers to field names.

    Exact header match first, then whitespace/case-insensitive. The first
    non-empty value wins when two headers map to the same field.
    """
    fields: Dict[str, Any] = {}
    for header, value in raw.items():
        if header is None:
            continue
        name = FIELD_MAPPING.get(header) or _NORMALIZED_MAPPING.get(_normalize_header(header))
        if name is None:
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        fields.setdefault(name, value)
    return fields


def classify_type(value: Any) -> Optional[str]:
    """
    Locale-tolerant budget/actual discriminator.

    Returns:
        KIND_BUDGET, KIND_ACTUAL or None for anything else
    """
    token = clean_text(value).lower()
    if token in BUDGET_TYPE_TOKENS:
        return KIND_BUDGET
    if token in ACTUAL_TYPE_TOKENS:
        return KIND_ACTUAL
    return None


def parse_amount(value: Any, strict: bool = True) -> Optional[Decimal]:
    """
    Thousands-separator tolerant amount parse.

    Unparsable/empty -> None when strict (final import), 0 in preview mode.
    """
    parsed = parse_decimal(value)
    if parsed is None and not strict:
        return Decimal("0")
    return parsed


def parse_within_budget(value: Any) -> bool:
    """Absent -> True; "예산 내" / "예산내" / "true" -> True; anything else -> False."""
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    token = clean_text(value)
    if not token:
        return True
    return token.lower() in WITHIN_BUDGET_TOKENS


@dataclass
class CandidateRow:
    """A parsed row: one budget or actual contribution to a budget line."""
    department: str
    account_category: str
    month: Optional[int]
    year: Optional[int]
    type: str
    kind: Optional[str]
    amount: Optional[Decimal]
    project_name: str
    calculation_basis: str
    is_within_budget: bool = True
    business_division: str = DIVISION_ALL
    cost_type: str = COST_TYPE_VARIABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "department": self.department,
            "accountCategory": self.account_category,
            "month": self.month,
            "year": self.year,
            "type": self.type,
            "amount": float(self.amount) if self.amount is not None else None,
            "isWithinBudget": self.is_within_budget,
            "businessDivision": self.business_division,
            "projectName": self.project_name,
            "calculationBasis": self.calculation_basis,
            "costType": self.cost_type,
        }


@dataclass
class RowResult:
    row: int
    candidate: CandidateRow
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            **self.candidate.to_dict(),
            "isValid": self.is_valid,
            "errors": list(self.errors),
        }


@dataclass
class IngestionReport:
    rows: List[RowResult]
    merged: Dict[EntryKey, MergedEntry]

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def valid(self) -> int:
        return sum(1 for r in self.rows if r.is_valid)

    @property
    def invalid(self) -> int:
        return self.total - self.valid

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [
            {"row": r.row, "message": message}
            for r in self.rows
            for message in r.errors
        ]

    def valid_rows(self) -> List[CandidateRow]:
        return [r.candidate for r in self.rows if r.is_valid]


def validate_row(
    raw: Mapping[str, Any],
    row_number: int,
    vocabulary: Vocabulary = Vocabulary(),
    strict: bool = True,
) -> RowResult:
    """
    Validate one raw row.

    Args:
        raw: header -> cell value
        row_number: 1-based sheet row used in messages (header is row 1)
        vocabulary: closed vocabularies and year band
        strict: False for import preview (unparsable amount becomes 0)
    """
    fields = map_row(raw)
    errors: List[str] = []

    department = clean_text(fields.get("department"))
    account_category = clean_text(fields.get("account_category"))
    project_name = clean_text(fields.get("project_name"))
    calculation_basis = clean_text(fields.get("calculation_basis"))
    type_value = clean_text(fields.get("type"))

    # 1. required text fields
    for name, value in (
        ("department", department),
        ("account_category", account_category),
        ("project_name", project_name),
        ("calculation_basis", calculation_basis),
        ("type", type_value),
    ):
        if not value:
            errors.append(f"{FIELD_LABELS[name]} is empty")
        elif has_illegal_characters(value):
            errors.append(f"{FIELD_LABELS[name]} contains control characters")

    # 2. closed vocabularies
    if department and not vocabulary.is_department(department):
        errors.append(f"invalid department: {department}")
    if account_category and not vocabulary.is_account_category(account_category):
        errors.append(f"invalid accountCategory: {account_category}")

    business_division = clean_text(fields.get("business_division")) or DIVISION_ALL
    if not vocabulary.is_business_division(business_division):
        errors.append(f"invalid businessDivision: {business_division}")

    cost_type = clean_text(fields.get("cost_type")) or COST_TYPE_VARIABLE
    if not vocabulary.is_cost_type(cost_type):
        errors.append(f"invalid costType: {cost_type}")

    # 3. budget/actual discriminator
    kind = classify_type(type_value) if type_value else None
    if type_value and kind is None:
        errors.append(
            f'type must be one of "예산", "계획", "budget", "plan", "실제", "집행", '
            f'"actual", "execution" (current: "{type_value}")'
        )

    # 4. calendar
    raw_month = fields.get("month")
    month = parse_int(raw_month)
    if month is None or not MIN_MONTH <= month <= MAX_MONTH:
        errors.append(f"month must be between 1 and 12 (current: {clean_text(raw_month)})")

    raw_year = fields.get("year")
    year = parse_int(raw_year) if raw_year is not None else vocabulary.default_year
    if year is None or not vocabulary.min_year <= year <= vocabulary.max_year:
        errors.append(
            f"year must be between {vocabulary.min_year} and {vocabulary.max_year} "
            f"(current: {clean_text(raw_year)})"
        )

    # 5. amount
    raw_amount = fields.get("amount")
    amount = parse_amount(raw_amount, strict=strict)
    if amount is None:
        errors.append(f"amount is not a number (current: {clean_text(raw_amount)})")
    elif amount < 0:
        errors.append("amount must be 0 or greater")

    candidate = CandidateRow(
        department=department,
        account_category=account_category,
        month=month,
        year=year,
        type=type_value,
        kind=kind,
        amount=amount,
        project_name=project_name,
        calculation_basis=calculation_basis,
        is_within_budget=parse_within_budget(fields.get("is_within_budget")),
        business_division=business_division,
        cost_type=cost_type,
    )
    return RowResult(row=row_number, candidate=candidate, errors=errors)


def check_required_columns(headers: Iterable[str]) -> List[str]:
    """Return required fields that no header maps to (logged, not fatal)."""
    present = set()
    for header in headers:
        if header is None:
            continue
        name = FIELD_MAPPING.get(header) or _NORMALIZED_MAPPING.get(_normalize_header(header))
        if name:
            present.add(name)
    missing = [name for name in REQUIRED_COLUMNS if name not in present]
    if missing:
        logger.warning("Required columns missing: %s (headers: %s)", missing, list(headers))
    return missing


def _classify_candidate(row: CandidateRow) -> Tuple[str, Decimal]:
    return row.kind, row.amount


def _candidate_defaults(row: CandidateRow) -> Dict[str, Any]:
    return {
        "calculation_basis": row.calculation_basis,
        "is_within_budget": row.is_within_budget,
        "business_division": row.business_division,
        "cost_type": row.cost_type,
    }


def merge_candidates(rows: Iterable[CandidateRow]) -> Dict[EntryKey, MergedEntry]:
    """Merge valid candidate rows by composite key."""
    return merge_rows(rows, _classify_candidate, _candidate_defaults)


def ingest_rows(
    raw_rows: Iterable[Mapping[str, Any]],
    vocabulary: Vocabulary = Vocabulary(),
    strict: bool = True,
    first_row_number: int = 2,
) -> IngestionReport:
    """
    Validate every row and merge the valid ones.

    Invalid rows stay in the report (for preview/response) but never reach
    the merge step. Blank rows are skipped.
    """
    results: List[RowResult] = []
    headers_checked = False

    for offset, raw in enumerate(raw_rows):
        if not raw or all(clean_text(v) == "" for v in raw.values()):
            continue
        if not headers_checked:
            check_required_columns(list(raw.keys()))
            headers_checked = True

        result = validate_row(raw, first_row_number + offset, vocabulary, strict=strict)
        if not result.is_valid:
            logger.warning("Row %d skipped: %s", result.row, "; ".join(result.errors))
        results.append(result)

    merged = merge_candidates(r.candidate for r in results if r.is_valid)
    return IngestionReport(rows=results, merged=merged)


def rows_from_csv(text: str) -> List[Dict[str, Any]]:
    """
    Parse delimited text (header row + data rows) into header -> value dicts.

    A UTF-8 BOM is stripped; quoted fields may contain commas.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    return [dict(row) for row in reader]
