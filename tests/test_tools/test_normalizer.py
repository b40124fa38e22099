"""Tests for processor export normalization and file reading"""

import pytest
from decimal import Decimal
from io import BytesIO

import pandas as pd

from residual_audit.tools.normalizer import normalize, parse_decimal, resolve_field
from residual_audit.tools.file_reader import read_tabular
from residual_audit.utils.errors import InputFormatError


def test_normalize_processor_aliases():
    """Processor-specific headers resolve to canonical fields"""
    rows = [{
        "Merchant ID": "4445012345678",
        "DBA": "BLU SUSHI",
        "Net Revenue": "$1,234.50",
        "Sales Amount": "1,000",
        "Transactions": "12",
        "Branch ID": "HBS-7",
    }]

    result = normalize(rows, "Clearent", "2025-03")

    assert result.errors == []
    assert result.total_rows == 1
    record = result.records[0]
    assert record.merchant_id == "4445012345678"
    assert record.merchant_name == "BLU SUSHI"
    assert record.net == Decimal("1234.50")
    assert record.sales_volume == Decimal("1000")
    assert record.transaction_count == 12
    assert record.branch_id == "HBS-7"
    assert record.group_code is None
    assert record.month == "2025-03"
    assert record.processor_name == "Clearent"
    assert record.source_row == 1


def test_first_populated_candidate_wins():
    """An empty higher-priority header falls through to the next candidate"""
    row = {"Merchant ID": "", "MID": "  123456 "}
    header, value = resolve_field(row, "merchant_id")
    assert header == "MID"
    assert value == "123456"


def test_parse_decimal_currency_formats():
    assert parse_decimal("$2,369.42") == Decimal("2369.42")
    assert parse_decimal("(45.10)") == Decimal("-45.10")
    assert parse_decimal("-12") == Decimal("-12")
    assert parse_decimal("") is None
    assert parse_decimal("n/a") is None


def test_rows_without_identifier_are_dropped():
    """Unresolvable MIDs are reported with row number and field"""
    rows = [
        {"MID": "111111", "Net": "10"},
        {"MID": "", "Net": "20"},
        {"Net": "30"},
    ]

    result = normalize(rows, "TRX", "2025-03")

    assert [r.merchant_id for r in result.records] == ["111111"]
    assert [(e.row, e.field) for e in result.errors] == [(2, "merchant_id"), (3, "merchant_id")]


def test_bad_net_drops_row_but_bad_volume_defaults_to_zero():
    rows = [
        {"MID": "111111", "Net": "abc"},
        {"MID": "222222", "Net": "15.00", "Volume": "lots", "Transactions": "many"},
        {"MID": "333333"},
    ]

    result = normalize(rows, "TRX", "2025-03")

    assert [r.merchant_id for r in result.records] == ["222222"]
    assert result.records[0].sales_volume == Decimal("0")
    assert result.records[0].transaction_count == 0
    assert [(e.row, e.field) for e in result.errors] == [(1, "net"), (3, "net")]
    assert "abc" in result.errors[0].reason
    assert result.errors[1].reason == "Net revenue missing"


def test_month_derived_from_record_date():
    rows = [
        {"MID": "111111", "Net": "5", "Date": "2025-03-14"},
        {"MID": "222222", "Net": "5"},
    ]

    result = normalize(rows, "Shift4")

    assert result.records[0].month == "2025-03"
    assert result.records[0].record_date == "2025-03-14"
    assert result.errors[0].row == 2
    assert result.errors[0].field == "month"


def test_invalid_upload_month_raises():
    with pytest.raises(InputFormatError):
        normalize([{"MID": "1", "Net": "1"}], "TRX", "2025-13")


def test_output_order_matches_input():
    rows = [{"MID": mid, "Net": "1"} for mid in ("300000", "100000", "200000", "100000")]
    result = normalize(rows, "TRX", "2025-03")
    assert [r.merchant_id for r in result.records] == ["300000", "100000", "200000", "100000"]


def test_renormalizing_canonical_records_is_stable():
    """Normalizing canonical rows again yields identical records"""
    rows = [
        {"MID": "4445012345678", "DBA": "BLU SUSHI", "Net": "(12.50)", "Group Code": "HBS-1"},
        {"MID": "4445012345679", "DBA": "C2FS TIRES", "Net": "2,000.10", "Date": "2025-03-02",
         "Volume": "5000", "Transactions": "40"},
    ]
    first = normalize(rows, "Payment Advisors", "2025-03")

    second = normalize([r.to_raw_row() for r in first.records], "Payment Advisors", "2025-03")
    third = normalize([r.to_raw_row() for r in second.records], "Payment Advisors")

    assert second.errors == []
    assert second.records == first.records
    assert third.records == first.records


def test_read_csv_skips_title_lines():
    """Header row is located below report title lines"""
    content = (
        "Residual Report April 2025,,\n"
        "\n"
        "MID,DBA,Net\n"
        "4445012345678,BLU SUSHI,\"1,250.00\"\n"
        ",,\n"
        "4445012345679,TACO HUT,80.00\n"
    ).encode("utf-8")

    rows = read_tabular(content, filename="april.csv")

    assert rows == [
        {"MID": "4445012345678", "DBA": "BLU SUSHI", "Net": "1,250.00"},
        {"MID": "4445012345679", "DBA": "TACO HUT", "Net": "80.00"},
    ]


def test_read_excel_with_openpyxl():
    sheet = pd.DataFrame([
        ["Merchant Lynx statement", None, None],
        ["Merchant ID", "Merchant Name", "Net Revenue"],
        ["4445012345678", "BLU SUSHI", "99.5"],
    ])
    buffer = BytesIO()
    sheet.to_excel(buffer, header=False, index=False, engine="openpyxl")

    rows = read_tabular(buffer.getvalue(), filename="lynx.xlsx")

    assert rows == [{"Merchant ID": "4445012345678", "Merchant Name": "BLU SUSHI", "Net Revenue": "99.5"}]
    result = normalize(rows, "Merchant Lynx", "2025-04")
    assert result.records[0].net == Decimal("99.5")


def test_read_without_header_row_raises():
    with pytest.raises(InputFormatError):
        read_tabular(b"a,b,c\n1,2,3\n", filename="junk.csv")


def test_read_missing_file_raises(tmp_path):
    with pytest.raises(InputFormatError):
        read_tabular(tmp_path / "missing.csv")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
