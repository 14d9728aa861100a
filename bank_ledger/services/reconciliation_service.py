"""
Reconciliation: linking ledger transactions to the invoices they settle.

Manual links take a row lock on the transaction; the automatic pass only
ever touches rows through a compare-and-swap on is_reconciled, so the two
cannot overwrite each other.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fuzzywuzzy import fuzz
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import NotFound, ValidationError
from ..models.bank_transaction import BankTransaction, TransactionType
from ..models.invoice import Invoice, InvoiceStatus

logger = logging.getLogger(__name__)

AUTO_MATCH_NOTE = "Auto-matched by amount and reference"
AUTO_RECONCILER = "auto"


class MatchOutcome:
    EXACT_MATCH = "exact_match"
    AMOUNT_MATCH_SUGGESTED = "amount_match_suggested"
    NO_MATCH = "no_match"
    ALREADY_RECONCILED = "already_reconciled"
    NOT_CREDIT = "not_credit_transaction"


@dataclass
class MatchResult:
    transaction_id: int
    outcome: str
    invoice_id: Optional[int] = None

    @property
    def linked(self) -> bool:
        return self.outcome == MatchOutcome.EXACT_MATCH


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def open_outbound_invoices(db: Session, user_id: str):
    return db.query(Invoice).filter(
        Invoice.user_id == user_id,
        Invoice.type == "outbound",
        Invoice.status.in_(InvoiceStatus.OPEN),
        Invoice.is_deleted.is_(False)
    )


# =============================================================================
# Manual reconciliation
# =============================================================================

def reconcile(
    db: Session,
    user_id: str,
    transaction_id: int,
    invoice_id: Optional[int],
    notes: Optional[str] = None,
) -> BankTransaction:
    """
    Link a transaction to an invoice, or unlink it when invoice_id is None.

    Linking an outbound invoice to a credit marks the invoice paid. Unlinking
    clears every reconciliation field but leaves the invoice status alone.
    """
    tx = db.query(BankTransaction).filter(
        BankTransaction.id == transaction_id,
        BankTransaction.user_id == user_id
    ).with_for_update().first()
    if tx is None:
        raise NotFound("Transaction not found")

    if invoice_id is None:
        tx.matched_invoice_id = None
        tx.is_reconciled = False
        tx.reconciled_at = None
        tx.reconciled_by = None
        tx.reconciliation_notes = None
        db.commit()
        logger.info("Transaction %s unreconciled by %s", transaction_id, user_id)
        return tx

    invoice = db.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.user_id == user_id,
        Invoice.is_deleted.is_(False)
    ).first()
    if invoice is None:
        db.rollback()
        raise NotFound("Invoice not found")

    if settings.RECONCILE_REQUIRE_EXACT_AMOUNT and abs(_money(tx.amount)) != _money(invoice.total):
        db.rollback()
        raise ValidationError(
            f"Transaction amount {abs(_money(tx.amount))} does not match invoice total {_money(invoice.total)}"
        )

    tx.matched_invoice_id = invoice.id
    tx.is_reconciled = True
    tx.reconciled_at = datetime.now(timezone.utc)
    tx.reconciled_by = user_id
    tx.reconciliation_notes = notes

    if invoice.type == "outbound" and tx.transaction_type == TransactionType.CREDIT:
        invoice.status = InvoiceStatus.PAID

    db.commit()
    logger.info("Transaction %s reconciled with invoice %s", transaction_id, invoice.invoice_number)
    return tx


# =============================================================================
# Automatic matching
# =============================================================================

class MatchPolicy(ABC):
    """Decides which invoice, if any, an unreconciled credit should settle"""

    @abstractmethod
    def match(self, db: Session, tx: BankTransaction) -> Tuple[str, Optional[Invoice]]:
        """Return (outcome, invoice). Only EXACT_MATCH outcomes are linked."""
        pass


class ReferenceAmountPolicy(MatchPolicy):
    """
    Same amount and currency against open outbound invoices. The match is
    exact when the invoice number appears in the reference or description.
    """

    def match(self, db: Session, tx: BankTransaction) -> Tuple[str, Optional[Invoice]]:
        amount = abs(_money(tx.amount))
        candidates = [
            invoice for invoice in open_outbound_invoices(db, tx.user_id).order_by(Invoice.due_date.asc()).all()
            if _money(invoice.total) == amount
            and (not tx.currency or not invoice.currency or invoice.currency == tx.currency)
        ]
        if not candidates:
            return MatchOutcome.NO_MATCH, None

        text = f"{tx.reference or ''} {tx.description or ''}".lower()
        for invoice in candidates:
            if invoice.invoice_number and invoice.invoice_number.lower() in text:
                return MatchOutcome.EXACT_MATCH, invoice
        return MatchOutcome.AMOUNT_MATCH_SUGGESTED, candidates[0]


DEFAULT_POLICY = ReferenceAmountPolicy()


def auto_reconcile_transaction(
    db: Session,
    transaction_id: int,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> MatchResult:
    """Try to settle one transaction. Running it twice never changes a reconciled row."""
    tx = db.query(BankTransaction).filter(BankTransaction.id == transaction_id).first()
    if tx is None:
        raise NotFound("Transaction not found")
    if tx.is_reconciled:
        return MatchResult(transaction_id, MatchOutcome.ALREADY_RECONCILED, tx.matched_invoice_id)
    if tx.transaction_type != TransactionType.CREDIT:
        return MatchResult(transaction_id, MatchOutcome.NOT_CREDIT)

    outcome, invoice = policy.match(db, tx)
    if outcome != MatchOutcome.EXACT_MATCH:
        return MatchResult(transaction_id, outcome, invoice.id if invoice else None)

    # Compare-and-swap: a concurrent manual link wins
    updated = db.query(BankTransaction).filter(
        BankTransaction.id == transaction_id,
        BankTransaction.is_reconciled.is_(False)
    ).update({
        BankTransaction.matched_invoice_id: invoice.id,
        BankTransaction.is_reconciled: True,
        BankTransaction.reconciled_at: datetime.now(timezone.utc),
        BankTransaction.reconciled_by: AUTO_RECONCILER,
        BankTransaction.reconciliation_notes: AUTO_MATCH_NOTE,
    }, synchronize_session=False)
    if not updated:
        db.rollback()
        return MatchResult(transaction_id, MatchOutcome.ALREADY_RECONCILED)

    invoice.status = InvoiceStatus.PAID
    db.commit()
    db.refresh(tx)
    logger.info("Auto-reconciled transaction %s with invoice %s", transaction_id, invoice.invoice_number)
    return MatchResult(transaction_id, MatchOutcome.EXACT_MATCH, invoice.id)


def auto_reconcile_pending(
    db: Session,
    user_id: str,
    limit: Optional[int] = None,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> List[MatchResult]:
    """Run the match policy over the oldest unreconciled credits"""
    limit = limit or settings.AUTO_RECONCILE_LIMIT
    ids = [row.id for row in db.query(BankTransaction.id).filter(
        BankTransaction.user_id == user_id,
        BankTransaction.is_reconciled.is_(False),
        BankTransaction.transaction_type == TransactionType.CREDIT
    ).order_by(BankTransaction.transaction_date.asc()).limit(limit).all()]

    results = [auto_reconcile_transaction(db, transaction_id, policy) for transaction_id in ids]
    matched = sum(1 for result in results if result.linked)
    logger.info("Auto-reconcile for %s: %d checked, %d matched", user_id, len(results), matched)
    return results


# =============================================================================
# Ledger reads
# =============================================================================

def suggest_invoices(db: Session, user_id: str, transaction_id: int, limit: int = 20) -> List[Dict[str, Any]]:
    """
    Open outbound invoices for a transaction. Exact-amount matches come first,
    then invoices whose number best matches the reference and description.
    """
    tx = db.query(BankTransaction).filter(
        BankTransaction.id == transaction_id,
        BankTransaction.user_id == user_id
    ).first()
    if tx is None:
        raise NotFound("Transaction not found")

    amount = abs(_money(tx.amount))
    text = f"{tx.reference or ''} {tx.description or ''}".lower()
    suggestions = []
    for invoice in open_outbound_invoices(db, user_id).order_by(Invoice.due_date.asc()).all():
        suggestions.append({
            "invoice": invoice,
            "exact_amount": _money(invoice.total) == amount,
            "reference_score": fuzz.partial_ratio(invoice.invoice_number.lower(), text) if text.strip() else 0,
        })
    suggestions.sort(key=lambda s: (
        not s["exact_amount"],
        -s["reference_score"],
        abs(_money(s["invoice"].total) - amount),
    ))
    return suggestions[:limit]


def list_transactions(
    db: Session,
    user_id: str,
    account_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    reconciled: Optional[bool] = None,
    limit: int = 100,
    offset: int = 0,
) -> Tuple[List[BankTransaction], int]:
    """Filtered ledger page, newest first, with the total count"""
    query = db.query(BankTransaction).filter(BankTransaction.user_id == user_id)
    if account_id is not None:
        query = query.filter(BankTransaction.bank_account_id == account_id)
    if date_from is not None:
        query = query.filter(BankTransaction.transaction_date >= date_from)
    if date_to is not None:
        query = query.filter(BankTransaction.transaction_date <= date_to)
    if reconciled is not None:
        query = query.filter(BankTransaction.is_reconciled.is_(reconciled))

    total = query.count()
    rows = query.order_by(
        BankTransaction.transaction_date.desc(),
        BankTransaction.id.desc()
    ).offset(offset).limit(limit).all()
    return rows, total


def unreconciled_summary(db: Session, user_id: str, account_id: Optional[int] = None) -> Dict[str, Any]:
    """Count and totals of unreconciled credits/debits plus the oldest open date"""
    query = db.query(BankTransaction.amount, BankTransaction.transaction_date).filter(
        BankTransaction.user_id == user_id,
        BankTransaction.is_reconciled.is_(False)
    )
    if account_id is not None:
        query = query.filter(BankTransaction.bank_account_id == account_id)

    count = 0
    credits = Decimal("0")
    debits = Decimal("0")
    oldest = None
    for amount, transaction_date in query.all():
        count += 1
        value = _money(amount)
        if value > 0:
            credits += value
        else:
            debits += -value
        if oldest is None or transaction_date < oldest:
            oldest = transaction_date

    return {
        "unreconciled_count": count,
        "unreconciled_credits": credits,
        "unreconciled_debits": debits,
        "oldest_unreconciled_date": oldest,
    }
