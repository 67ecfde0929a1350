"""Tests for currency/date parsing and column normalization."""
from decimal import Decimal

import pandas as pd

from tillwatch.ingest.normalize import (
    FieldNormalizer, clean_currency, detect_dialect, parse_currency, parse_date,
)


def test_clean_currency():
    assert clean_currency("$1,234.56") == Decimal("1234.56")
    assert clean_currency("20") == Decimal("20.00")
    assert clean_currency(" -$5.5 ") == Decimal("-5.50")
    assert clean_currency("abc") == Decimal("0")
    assert clean_currency("") == Decimal("0")
    assert clean_currency(None) == Decimal("0")
    assert clean_currency("NaN") == Decimal("0")


def test_parse_currency_reports_errors():
    assert parse_currency("12.345").value == Decimal("12.35")
    assert parse_currency("12").ok
    assert parse_currency("").error == "missing"
    assert "unparsable" in parse_currency("twelve").error


def test_parse_date():
    assert parse_date("2024-01-15 10:30:00") == pd.Timestamp("2024-01-15 10:30:00")
    assert pd.isna(parse_date("not a date"))
    assert pd.isna(parse_date(""))
    assert pd.isna(parse_date(None))


def test_delimited_aliases_first_non_empty_wins():
    result = FieldNormalizer().normalize({
        "transaction_id": "",
        "TransactionID": "TX-9",
        "Date": "2024-02-01 09:00",
        "RegisterID": "R7",
        "cashier": "Carol",
        "Type": "Refund",
        "total": "$12.00",
    })
    draft = result["draft"]
    assert result["dialect"] == "delimited"
    assert draft["transaction_id"] == "TX-9"
    assert draft["register_id"] == "R7"
    assert draft["employee_name"] == "Carol"
    assert draft["transaction_type"] == "Refund"
    assert draft["amount"] == Decimal("12.00")
    assert draft["store_id"] == "001"
    assert result["issues"] == []


def test_defaults_and_issues():
    result = FieldNormalizer(default_store_id="042").normalize({"date": "2024-02-01", "amount": "oops"})
    draft = result["draft"]
    assert len(draft["transaction_id"]) == 32
    assert draft["register_id"] == "Unknown"
    assert draft["employee_name"] == "Unknown"
    assert draft["store_id"] == "042"
    assert draft["amount"] == Decimal("0")
    assert "transaction_id_synthesized" in result["issues"]
    assert "amount_unparsed" in result["issues"]


def test_synthesized_ids_are_unique():
    normalizer = FieldNormalizer()
    ids = {normalizer.normalize({"date": "2024-01-01"})["draft"]["transaction_id"] for _ in range(50)}
    assert len(ids) == 50


def test_invalid_date_is_reported():
    result = FieldNormalizer().normalize({"transaction_id": "T1", "date": "yesterday-ish", "amount": "1"})
    assert pd.isna(result["draft"]["date"])
    assert "date_invalid" in result["issues"]


def test_spreadsheet_dialect():
    row = {
        "Date": "2024-01-15 10:00:00", "Transaction Type": "Void", "Tender": "Cash",
        "Gross Sales": "130.00", "Discount": "0", "Tax": "0", "Net Sales": "",
        "Tip": "0", "Online Charges": "0", "Cashier": "Dan", "Transaction #": "5001",
    }
    assert detect_dialect(row) == "spreadsheet"
    result = FieldNormalizer().normalize(row)
    draft = result["draft"]
    assert result["dialect"] == "spreadsheet"
    assert draft["transaction_id"] == "5001"
    assert draft["employee_name"] == "Dan"
    assert draft["transaction_type"] == "Void"
    # Net Sales empty, falls back to Gross Sales
    assert draft["amount"] == Decimal("130.00")
    assert draft["register_id"] == "Unknown"


def test_missing_amount_issue():
    result = FieldNormalizer().normalize({"transaction_id": "T1", "date": "2024-01-01"})
    assert "amount_missing" in result["issues"]
