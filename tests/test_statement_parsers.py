"""Tests for spreadsheet statement parsing."""
from datetime import date
from decimal import Decimal

import pytest

from bank_ledger.exceptions import ParseError, ValidationError
from bank_ledger.services.statement_parsers import (
    GenericStatementParser,
    IthmaarParser,
    detect_parser,
    extract_reference,
    parse_amount,
    parse_statement,
    parse_statement_date,
)

from statement_fixtures import ITHMAAR_IBAN, generic_rows, ithmaar_rows, workbook_bytes


@pytest.mark.parametrize("value,expected", [
    ("04 Feb 26", date(2026, 2, 4)),
    ("4 FEB 2026", date(2026, 2, 4)),
    ("08-Sep-99", date(1999, 9, 8)),
    ("1 February 2026", date(2026, 2, 1)),
    ("2026-02-04", date(2026, 2, 4)),
    ("04/02/2026", date(2026, 2, 4)),
    ("", None),
    ("Opening balance", None),
    ("31 Feb 26", None),
])
def test_parse_statement_date(value, expected):
    assert parse_statement_date(value) == expected


def test_two_digit_years_pivot_at_fifty():
    assert parse_statement_date("01 Jan 50").year == 2050
    assert parse_statement_date("01 Jan 51").year == 1951


def test_parse_amount_strips_thousands_separators():
    assert parse_amount("1,234,567.125") == Decimal("1234567.125")
    assert parse_amount(12.5) == Decimal("12.5")
    assert parse_amount(None) is None
    with pytest.raises(ParseError):
        parse_amount("twelve")


def test_extract_reference_takes_first_long_digit_run():
    assert extract_reference("TRF 123 FROM 98765432101 REF 11111111111") == "98765432101"
    assert extract_reference("CARD 1234") is None


def test_detect_parser_by_filename():
    assert isinstance(detect_parser("Ithmaar_Statement_Feb.xlsx"), IthmaarParser)
    assert isinstance(detect_parser("statement.xlsx"), GenericStatementParser)


def test_ithmaar_statement_header_and_rows():
    statement = parse_statement(workbook_bytes(ithmaar_rows()), "ithmaar.xlsx")

    assert statement.bank_name == "Ithmaar Bank"
    assert statement.iban == ITHMAAR_IBAN
    assert statement.account_number == "0123456789"
    assert statement.currency == "BHD"
    assert statement.swift_code == "ITHMBHBM"
    assert statement.account_holder == "GULF CONSULTING W.L.L"
    assert statement.statement_period == {"from": date(2026, 2, 1), "to": date(2026, 2, 9)}
    assert len(statement.transactions) == 3

    first, second, _ = statement.transactions
    assert first.transaction_date == date(2026, 2, 4)
    assert first.amount == Decimal("1050.000")
    assert first.transaction_type == "credit"
    assert first.reference == "1234567890123"
    assert second.amount == Decimal("-12.500")
    assert second.transaction_type == "debit"


def test_rows_after_disclaimer_are_ignored():
    statement = parse_statement(workbook_bytes(ithmaar_rows()), "ithmaar.xlsx")

    assert all(tx.description != "NOT A TRANSACTION" for tx in statement.transactions)


def test_balances_derived_when_not_labelled():
    statement = parse_statement(workbook_bytes(ithmaar_rows()), "ithmaar.xlsx")

    assert statement.closing_balance == Decimal("1537.500")
    assert statement.opening_balance == Decimal("1000.000")


def test_opening_balance_from_single_credit_row():
    rows = ithmaar_rows([("04 Feb 26", "04 Feb 26", "DEPOSIT", None, "50.000", "1000.000")])

    statement = parse_statement(workbook_bytes(rows), "ithmaar.xlsx")

    assert statement.opening_balance == Decimal("950.000")
    assert statement.closing_balance == Decimal("1000.000")


def test_bad_amount_row_becomes_warning():
    rows = ithmaar_rows([
        ("04 Feb 26", "04 Feb 26", "GOOD", None, "10.000", "10.000"),
        ("05 Feb 26", "05 Feb 26", "BAD", "n/a", None, "10.000"),
    ])

    statement = parse_statement(workbook_bytes(rows), "ithmaar.xlsx")

    assert [tx.description for tx in statement.transactions] == ["GOOD"]
    assert len(statement.warnings) == 1


@pytest.mark.parametrize("debit, credit", [
    ("NA", None),
    ("null", None),
    ("nan", None),
    (None, None),
    ("0.000", None),
])
def test_rows_without_a_usable_amount_are_warnings(debit, credit):
    rows = ithmaar_rows([
        ("04 Feb 26", "04 Feb 26", "GOOD", "2.000", None, "8.000"),
        ("05 Feb 26", "05 Feb 26", "EMPTY", debit, credit, "8.000"),
    ])

    statement = parse_statement(workbook_bytes(rows), "ithmaar.xlsx")

    assert [tx.description for tx in statement.transactions] == ["GOOD"]
    assert len(statement.warnings) == 1
    assert statement.warnings[0].startswith("Row ")


def test_generic_parser_finds_columns_by_name():
    statement = parse_statement(workbook_bytes(generic_rows()), "statement.xlsx")

    assert statement.iban == "BH11NBOB00000987654321"
    assert statement.opening_balance == Decimal("300.000")
    assert statement.closing_balance == Decimal("498.5")
    assert [tx.amount for tx in statement.transactions] == [Decimal("200.0"), Decimal("-1.5")]
    assert statement.transactions[0].transaction_date == date(2026, 2, 1)


def test_unsupported_extension_is_rejected():
    with pytest.raises(ValidationError):
        parse_statement(b"date,amount\n", "statement.csv")


def test_unreadable_file_raises_parse_error():
    with pytest.raises(ParseError):
        parse_statement(b"not a spreadsheet", "ithmaar.xlsx")


def test_missing_table_header_raises_parse_error():
    rows = [("IBAN", "BH00"), ("Currency", "BHD")]

    with pytest.raises(ParseError):
        parse_statement(workbook_bytes(rows), "ithmaar.xlsx")
