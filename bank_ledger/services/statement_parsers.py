"""
Bank statement parsers for spreadsheet exports.

Exports are fixed-layout spreadsheets: a block of "label | value" metadata
rows, a transaction table introduced by a header row, and a trailing
disclaimer. Each parser returns a Statement:

Statement(
    bank_name, account_number, iban, currency, swift_code, account_holder,
    period_from, period_to, opening_balance, closing_balance,
    transactions=[ParsedTransaction(transaction_date, value_date, description,
                                    debit_amount, credit_amount, balance, reference)],
    warnings=[str]
)
"""
import io
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..config import settings
from ..exceptions import ParseError, ValidationError
from ..models.bank_transaction import TransactionType

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# "04 Feb 26", "8-FEB-2026", "1 February 2026"
TEXT_DATE_RE = re.compile(r"(\d{1,2})[\s\-/]+([A-Za-z]{3,})\.?[\s\-/,]+(\d{2,4})")
# "04/02/2026", "4.2.26"
NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
REFERENCE_RE = re.compile(r"\d{10,}")


@dataclass
class ParsedTransaction:
    transaction_date: date
    description: str
    value_date: Optional[date] = None
    debit_amount: Optional[Decimal] = None
    credit_amount: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    reference: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        """Signed amount: credits positive, debits negative"""
        return (self.credit_amount or Decimal("0")) - (self.debit_amount or Decimal("0"))

    @property
    def transaction_type(self) -> str:
        return TransactionType.CREDIT if self.amount > 0 else TransactionType.DEBIT


@dataclass
class Statement:
    bank_name: str
    account_number: str = ""
    iban: str = ""
    currency: str = ""
    swift_code: str = ""
    account_holder: str = ""
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    transactions: List[ParsedTransaction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def statement_period(self) -> Dict[str, Optional[date]]:
        return {"from": self.period_from, "to": self.period_to}


# =============================================================================
# Cell helpers
# =============================================================================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_text(value: Any) -> str:
    return "" if _is_blank(value) else str(value).strip()


def _expand_year(year: int) -> int:
    if year < 100:
        return 1900 + year if year > 50 else 2000 + year
    return year


def parse_statement_date(value: Any) -> Optional[date]:
    """
    Parse a statement date cell. Accepts real date cells, "DD Mon YY[YY]",
    "DD/MM/YY[YY]" and ISO strings. Returns None for blank or unrecognised text.
    """
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    match = ISO_DATE_RE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = TEXT_DATE_RE.search(text)
        if match:
            day = int(match.group(1))
            month = MONTHS.get(match.group(2)[:3].lower())
            if month is None:
                return None
            year = _expand_year(int(match.group(3)))
        else:
            match = NUMERIC_DATE_RE.match(text)
            if not match:
                return None
            day, month, year = int(match.group(1)), int(match.group(2)), _expand_year(int(match.group(3)))

    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an amount cell, stripping thousands separators. Blank -> None."""
    if _is_blank(value):
        return None
    if isinstance(value, Decimal):
        return value
    cleaned = str(value).replace(",", "").replace(" ", "").strip()
    if cleaned in ("", "-"):
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ParseError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ParseError(f"Invalid amount: {value!r}")
    return amount


def parse_period(value: Any) -> Tuple[Optional[date], Optional[date]]:
    """Parse "1 Feb 2026  to 9 Feb 2026" into (from, to)"""
    parts = re.split(r"\s+to\s+", cell_text(value), maxsplit=1, flags=re.IGNORECASE)
    start = parse_statement_date(parts[0]) if parts and parts[0] else None
    end = parse_statement_date(parts[1]) if len(parts) > 1 else None
    return start, end


def extract_reference(description: str) -> Optional[str]:
    match = REFERENCE_RE.search(description or "")
    return match.group(0) if match else None


def read_rows(data: bytes) -> List[List[Any]]:
    """Read the first sheet of a spreadsheet as a list of raw rows"""
    try:
        # "NA", "n/a" and "null" must reach parse_amount as text, not NaN
        df = pd.read_excel(io.BytesIO(data), header=None, dtype=object, keep_default_na=False, na_filter=False)
    except Exception as e:
        raise ParseError(f"Could not read spreadsheet: {e}") from e
    return [list(row) for row in df.itertuples(index=False, name=None)]


# =============================================================================
# Parsers
# =============================================================================

class StatementParser(ABC):
    """Base class for statement parsers"""

    bank_name: str = "Unknown"

    @classmethod
    def detect(cls, filename: str) -> bool:
        """Check if this parser handles the given file"""
        return False

    @abstractmethod
    def parse(self, data: bytes) -> Statement:
        """Parse the file contents into a Statement"""
        pass


class LabeledLayoutParser(StatementParser):
    """
    Parser for exports with label/value metadata rows followed by a
    transaction table. Subclasses describe their layout with class attributes.
    """

    METADATA_LABELS = {
        "account number": "account_number",
        "currency": "currency",
        "swift code": "swift_code",
        "swift": "swift_code",
        "iban": "iban",
        "statement dates": "period",
        "statement period": "period",
        "account holder": "account_holder",
        "account name": "account_holder",
        "opening balance": "opening_balance",
        "closing balance": "closing_balance",
    }
    HOLDER_MARKERS = ("W.L.L", "CONSULTING", "B.S.C", "LLC")
    HEADER_LABEL = "Transaction Date"
    DISCLAIMER_PREFIXES = ("Discrepancies",)
    COLUMNS = {
        "transaction_date": 0,
        "value_date": 1,
        "description": 2,
        "debit": 3,
        "credit": 4,
        "balance": 5,
    }

    def is_header_row(self, row: Sequence[Any]) -> bool:
        return cell_text(row[0]) == self.HEADER_LABEL if row else False

    def resolve_columns(self, header: Sequence[Any]) -> Dict[str, Optional[int]]:
        return dict(self.COLUMNS)

    def is_disclaimer(self, first_cell: str) -> bool:
        return any(first_cell.startswith(prefix) for prefix in self.DISCLAIMER_PREFIXES)

    def parse(self, data: bytes) -> Statement:
        return self.parse_rows(read_rows(data))

    def parse_rows(self, rows: List[List[Any]]) -> Statement:
        statement = Statement(bank_name=self.bank_name)
        columns: Optional[Dict[str, Optional[int]]] = None

        for index, row in enumerate(rows, start=1):
            if not row or all(_is_blank(cell) for cell in row):
                continue
            first_cell = cell_text(row[0])

            if self.is_disclaimer(first_cell):
                break

            if columns is None:
                if self.is_header_row(row):
                    columns = self.resolve_columns(row)
                else:
                    self._read_metadata(statement, row)
                continue

            try:
                transaction = self._parse_transaction(row, columns)
            except ParseError as e:
                statement.warnings.append(f"Row {index}: {e.message}")
                continue
            if transaction is not None:
                statement.transactions.append(transaction)
            elif first_cell:
                statement.warnings.append(f"Row {index}: unrecognised date {first_cell!r}")

        if columns is None:
            raise ParseError(f"Could not find transaction table header in {self.bank_name} statement")

        derive_balances(statement)
        return statement

    def _read_metadata(self, statement: Statement, row: Sequence[Any]) -> None:
        label = cell_text(row[0])
        value = row[1] if len(row) > 1 else None
        key = self.METADATA_LABELS.get(label.rstrip(":").strip().lower())

        if key == "period":
            statement.period_from, statement.period_to = parse_period(value)
        elif key in ("opening_balance", "closing_balance"):
            try:
                setattr(statement, key, parse_amount(value))
            except ParseError as e:
                statement.warnings.append(f"{label}: {e.message}")
        elif key is not None:
            setattr(statement, key, cell_text(value))
        elif label and not statement.account_holder and any(m in label.upper() for m in self.HOLDER_MARKERS):
            statement.account_holder = label

    def _parse_transaction(self, row: Sequence[Any], columns: Dict[str, Optional[int]]) -> Optional[ParsedTransaction]:
        def cell(name: str) -> Any:
            position = columns.get(name)
            if position is None or position >= len(row):
                return None
            return row[position]

        transaction_date = parse_statement_date(cell("transaction_date"))
        if transaction_date is None:
            return None

        debit = parse_amount(cell("debit"))
        credit = parse_amount(cell("credit"))
        signed = parse_amount(cell("amount"))
        if signed is not None and debit is None and credit is None:
            if signed < 0:
                debit = -signed
            else:
                credit = signed
        if debit is None and credit is None:
            raise ParseError("no debit, credit or amount")
        if abs(credit or Decimal("0")) - abs(debit or Decimal("0")) == 0:
            raise ParseError("zero amount")

        description = cell_text(cell("description"))
        return ParsedTransaction(
            transaction_date=transaction_date,
            value_date=parse_statement_date(cell("value_date")),
            description=description,
            debit_amount=abs(debit) if debit is not None else None,
            credit_amount=abs(credit) if credit is not None else None,
            balance=parse_amount(cell("balance")),
            reference=extract_reference(description),
        )


class IthmaarParser(LabeledLayoutParser):
    """Parser for Ithmaar Bank xlsx statements"""

    bank_name = "Ithmaar Bank"

    @classmethod
    def detect(cls, filename: str) -> bool:
        return "ithmaar" in filename.lower()


class GenericStatementParser(LabeledLayoutParser):
    """
    Fallback parser: same row grammar, but the table header and column
    positions are found by column names instead of fixed positions.
    """

    bank_name = "Bank Statement"
    DISCLAIMER_PREFIXES = ("Discrepancies", "Disclaimer")

    COLUMN_NAMES = {
        "transaction_date": ("transaction date", "posting date", "booking date", "date"),
        "value_date": ("value date",),
        "description": ("description", "details", "narrative", "particulars"),
        "debit": ("debit", "withdrawal", "money out"),
        "credit": ("credit", "deposit", "money in"),
        "amount": ("amount",),
        "balance": ("balance",),
    }

    @classmethod
    def detect(cls, filename: str) -> bool:
        return True

    def is_header_row(self, row: Sequence[Any]) -> bool:
        columns = self.resolve_columns(row)
        has_amounts = columns["amount"] is not None or (
            columns["debit"] is not None and columns["credit"] is not None
        )
        return columns["transaction_date"] is not None and has_amounts

    def resolve_columns(self, header: Sequence[Any]) -> Dict[str, Optional[int]]:
        labels = [cell_text(cell).lower() for cell in header]
        columns: Dict[str, Optional[int]] = {name: None for name in self.COLUMN_NAMES}
        taken = set()
        # Most specific names first so "value date" does not claim "date"
        for name, candidates in self.COLUMN_NAMES.items():
            for candidate in candidates:
                for position, label in enumerate(labels):
                    if position not in taken and label == candidate:
                        columns[name] = position
                        taken.add(position)
                        break
                if columns[name] is not None:
                    break
        for name, candidates in self.COLUMN_NAMES.items():
            if columns[name] is not None:
                continue
            for position, label in enumerate(labels):
                if position not in taken and any(candidate in label for candidate in candidates):
                    columns[name] = position
                    taken.add(position)
                    break
        return columns


def derive_balances(statement: Statement) -> None:
    """Fill unlabeled opening/closing balances from the transaction balances"""
    if not statement.transactions:
        return
    first, last = statement.transactions[0], statement.transactions[-1]
    if statement.closing_balance is None:
        statement.closing_balance = last.balance
    if statement.opening_balance is None and first.balance is not None:
        statement.opening_balance = first.balance - first.amount


# Registry of all parsers
# Order matters - the generic fallback must stay last
PARSERS = [
    IthmaarParser,
    GenericStatementParser,
]


def is_supported_file(filename: str) -> bool:
    return bool(filename) and filename.lower().endswith(settings.SUPPORTED_STATEMENT_EXTENSIONS)


def detect_parser(filename: str) -> StatementParser:
    """Pick the parser for a file; the generic parser accepts anything"""
    for parser_cls in PARSERS:
        if parser_cls.detect(filename):
            return parser_cls()
    return GenericStatementParser()


def parse_statement(data: bytes, filename: str) -> Statement:
    """
    Parse an uploaded statement.
    Raises ValidationError for unsupported files, ParseError if unreadable.
    """
    if not is_supported_file(filename):
        raise ValidationError("Unsupported file format. Please upload .xlsx or .xls file")
    if not data:
        raise ValidationError("File is empty")
    return detect_parser(filename).parse(data)
