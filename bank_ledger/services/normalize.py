"""
Normalisation of provider payloads into ledger rows.

Provider transactions look like:
{
    "transactionId": str,
    "amount": {"value": "12.500", "currency": "BHD"},
    "creditDebitIndicator": "Credit" | "Debit",
    "bookingDateTime": "2026-02-04T10:00:00Z",
    "valueDateTime": str (optional),
    "transactionInformation": str (optional),
    "transactionReference": str (optional),
    "merchantDetails": {"merchantName": str, "merchantCategoryCode": str} (optional),
    "balance": {"amount": {"value": str, "currency": str}, ...} (optional)
}
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ..exceptions import ParseError
from ..models.bank_transaction import TransactionType


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_date(value: Optional[str]) -> Optional[date]:
    """Date part of an ISO date or datetime string"""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def amount_value(amount: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    """Read a provider amount block; the value is under "value" or "amount"."""
    if not amount:
        return None
    if not isinstance(amount, dict):
        raise ParseError(f"Invalid amount block: {amount!r}")
    raw = amount.get("value", amount.get("amount"))
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw).replace(",", ""))
    except InvalidOperation:
        raise ParseError(f"Invalid amount: {raw!r}")


def _block(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def signed_amount(value: Decimal, transaction_type: str) -> Decimal:
    """Force the sign from the credit/debit side, ignoring the provider's sign"""
    return -abs(value) if transaction_type == TransactionType.DEBIT else abs(value)


def normalize_provider_transaction(tx: Dict[str, Any]) -> Dict[str, Any]:
    """Map one provider transaction to BankTransaction column values"""
    if not isinstance(tx, dict):
        raise ParseError(f"Provider transaction is not an object: {tx!r}")
    external_id = tx.get("transactionId")
    if not external_id:
        raise ParseError("Provider transaction without transactionId")

    indicator = str(tx.get("creditDebitIndicator") or "").strip().lower()
    if indicator not in (TransactionType.CREDIT, TransactionType.DEBIT):
        raise ParseError(f"Unknown credit/debit indicator: {tx.get('creditDebitIndicator')!r}")

    amount_block = tx.get("amount") or {}
    value = amount_value(amount_block)
    if value is None:
        raise ParseError(f"Transaction {external_id} has no amount")

    booking_date = parse_date(tx.get("bookingDateTime"))
    if booking_date is None:
        raise ParseError(f"Transaction {external_id} has no booking date")

    merchant = _block(tx.get("merchantDetails"))
    balance = _block(tx.get("balance"))

    return {
        "external_transaction_id": str(external_id),
        "transaction_date": booking_date,
        "booking_date": booking_date,
        "value_date": parse_date(tx.get("valueDateTime")),
        "amount": signed_amount(value, indicator),
        "currency": amount_block.get("currency"),
        "description": tx.get("transactionInformation") or tx.get("description"),
        "reference": tx.get("transactionReference"),
        "merchant_name": merchant.get("merchantName"),
        "transaction_type": indicator,
        "category": merchant.get("merchantCategoryCode"),
        "balance_after": amount_value(balance.get("amount")),
        "raw_data": tx,
    }
