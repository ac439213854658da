"""
Tests for row ingestion and validation
"""
from decimal import Decimal

import pytest

from app.application.ingestion import (
    check_required_columns,
    classify_type,
    ingest_rows,
    map_row,
    parse_amount,
    parse_within_budget,
    rows_from_csv,
    validate_row,
)
from app.application.merge import KIND_ACTUAL, KIND_BUDGET
from app.domain.budget_entry import Vocabulary


def test_plan_and_actual_rows_merge_into_one_entry(sheet_row):
    """Budget-like and actual-like rows with one composite key give one entry"""
    report = ingest_rows([
        sheet_row(type_="계획", amount=1000),
        sheet_row(type_="actual", amount=400),
    ])

    assert report.valid == 2
    assert len(report.merged) == 1
    merged = next(iter(report.merged.values()))
    assert merged.budget_amount == Decimal("1000")
    assert merged.actual_amount == Decimal("400")


def test_missing_project_name_rejects_row(sheet_row):
    row = sheet_row()
    row["프로젝트명/세부항목"] = ""

    report = ingest_rows([row, sheet_row(project_name="다른 항목")])

    assert report.invalid == 1
    assert any("projectName" in e["message"] for e in report.errors)
    assert report.errors[0]["row"] == 2
    assert [k.project_name for k in report.merged] == ["다른 항목"]


def test_all_errors_of_a_row_are_collected(sheet_row):
    result = validate_row(
        sheet_row(department="없는 부서", month=13, amount=-5, type_="환불"),
        row_number=7,
    )

    assert not result.is_valid
    assert result.row == 7
    messages = " | ".join(result.errors)
    assert "invalid department: 없는 부서" in messages
    assert "month must be between 1 and 12" in messages
    assert "amount must be 0 or greater" in messages
    assert "type must be one of" in messages


@pytest.mark.parametrize("month", ["1.5", "12abc", "3월분", ""])
def test_month_must_be_a_whole_number(sheet_row, month):
    result = validate_row(sheet_row(month=month), 2)

    assert not result.is_valid
    assert any(e.startswith("month must be between 1 and 12") for e in result.errors)


@pytest.mark.parametrize("month,expected", [
    (3, 3),
    (3.0, 3),
    ("03", 3),
    (" 3 ", 3),
    ("3.0", 3),
    ("3월", 3),
])
def test_month_cell_forms(sheet_row, month, expected):
    result = validate_row(sheet_row(month=month), 2)

    assert result.is_valid
    assert result.candidate.month == expected


def test_control_characters_reject_row(sheet_row):
    result = validate_row(sheet_row(calculation_basis="월 사용료\x07"), 2)

    assert result.errors == ["calculationBasis contains control characters"]


def test_optional_fields_default_silently(sheet_row):
    result = validate_row(sheet_row(), row_number=2)

    assert result.is_valid
    assert result.candidate.is_within_budget is True
    assert result.candidate.business_division == "전체"
    assert result.candidate.cost_type == "변동비"


def test_invalid_optional_value_is_rejected(sheet_row):
    result = validate_row(sheet_row(**{"사업구분": "성인"}), row_number=2)
    assert "invalid businessDivision: 성인" in result.errors


def test_year_defaults_and_band(sheet_row):
    row = sheet_row()
    del row["연도"]
    assert validate_row(row, 2).candidate.year == 2025

    result = validate_row(sheet_row(year=2019), 2)
    assert any("year must be between 2020 and 2030" in e for e in result.errors)


def test_year_band_follows_vocabulary(sheet_row):
    vocab = Vocabulary(min_year=2018, max_year=2019, default_year=2019)
    assert validate_row(sheet_row(year=2019), 2, vocab).is_valid


def test_amount_with_thousands_separator(sheet_row):
    result = validate_row(sheet_row(amount="1,234,500"), 2)
    assert result.candidate.amount == Decimal("1234500")


def test_unparsable_amount_strict_vs_preview(sheet_row):
    strict = validate_row(sheet_row(amount="abc"), 2, strict=True)
    preview = validate_row(sheet_row(amount="abc"), 2, strict=False)

    assert any("amount is not a number" in e for e in strict.errors)
    assert preview.is_valid
    assert preview.candidate.amount == Decimal("0")


@pytest.mark.parametrize("value,expected", [
    ("예산", KIND_BUDGET),
    ("Plan", KIND_BUDGET),
    (" 집행 ", KIND_ACTUAL),
    ("execution", KIND_ACTUAL),
    ("환불", None),
    (None, None),
])
def test_classify_type(value, expected):
    assert classify_type(value) == expected


@pytest.mark.parametrize("value,expected", [
    (None, True),
    ("", True),
    ("예산 내", True),
    ("예산내", True),
    ("예산 외", False),
    (False, False),
])
def test_parse_within_budget(value, expected):
    assert parse_within_budget(value) is expected


def test_parse_amount_rejects_non_numbers():
    assert parse_amount(" 12_000 ") == Decimal("12000")
    assert parse_amount("") is None
    assert parse_amount("", strict=False) == Decimal("0")


def test_header_matching_is_whitespace_and_case_tolerant():
    fields = map_row({"프로젝트명 / 세부항목": "A", "AccountCategory": "통신비", "비고": "x"})

    assert fields == {"project_name": "A", "account_category": "통신비"}


def test_missing_required_columns_are_reported():
    missing = check_required_columns(["부서", "계정과목", "월"])
    assert "amount" in missing
    assert "department" not in missing


def test_blank_rows_are_skipped(sheet_row):
    report = ingest_rows([{}, {"부서": None, "금액": ""}, sheet_row()])

    assert report.total == 1
    assert report.rows[0].row == 4


def test_reimport_is_idempotent(sheet_row):
    rows = [sheet_row(type_="예산", amount=100), sheet_row(type_="실제", amount=50)]

    first = ingest_rows(rows).merged
    second = ingest_rows(rows + rows).merged

    assert first == second


def test_rows_from_csv_strips_bom_and_handles_quotes():
    text = "\ufeff부서,계정과목,금액\n\"DX전략 Core Group\",\"지급수수료(외부용역,자문료)\",\"1,000\"\n"

    rows = rows_from_csv(text)

    assert rows == [{
        "부서": "DX전략 Core Group",
        "계정과목": "지급수수료(외부용역,자문료)",
        "금액": "1,000",
    }]
