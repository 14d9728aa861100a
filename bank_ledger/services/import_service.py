"""
Import service for bank statement files.
Handles parsing, account resolution, duplicate detection and ledger inserts.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import SetupRequired, ValidationError
from ..identity import UserContext, get_company
from ..models.bank_account import BankAccount
from ..models.bank_transaction import BankTransaction
from ..models.import_history import ImportHistory
from .statement_parsers import ParsedTransaction, Statement, parse_statement

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    bank_account_id: int
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    statement: Optional[Statement] = None
    import_id: Optional[int] = None


def import_file(db: Session, user: UserContext, data: bytes, filename: str) -> ImportResult:
    """
    Parse an uploaded statement and import it, recording an ImportHistory row.

    Returns:
        ImportResult with counts, per-row warnings and the parsed statement
    """
    import_record = ImportHistory(
        user_id=user.user_id,
        filename=filename,
        file_size=len(data),
        status="processing",
    )
    db.add(import_record)
    db.commit()

    try:
        statement = parse_statement(data, filename)
        if not statement.transactions:
            raise ValidationError("No transactions found in the statement")
        result = import_statement(db, user, statement)
    except Exception as e:
        db.rollback()
        import_record.status = "failed"
        import_record.error_message = str(e)
        import_record.processed_at = datetime.now(timezone.utc)
        db.commit()
        logger.warning("Import of %s failed: %s", filename, e)
        raise

    import_record.status = "completed"
    import_record.bank_account_id = result.bank_account_id
    import_record.bank_name = statement.bank_name
    import_record.iban = statement.iban or None
    import_record.records_imported = result.imported
    import_record.records_skipped = result.skipped
    import_record.processed_at = datetime.now(timezone.utc)
    db.commit()

    result.import_id = import_record.id
    return result


def import_statement(db: Session, user: UserContext, statement: Statement) -> ImportResult:
    """
    Import a parsed statement into the ledger.

    The account is resolved by (user, IBAN) and created when missing, which
    needs the user's company. Rows already present under the key
    (account, date, amount, description) are skipped.
    """
    account = resolve_account(db, user, statement)

    if statement.closing_balance is not None:
        account.current_balance = statement.closing_balance
        account.opening_balance = statement.opening_balance
        account.balance_currency = statement.currency or account.account_currency
        account.balance_updated_at = datetime.now(timezone.utc)
    db.commit()

    result = ImportResult(bank_account_id=account.id, statement=statement)
    result.errors.extend(statement.warnings)
    seen_in_this_import = set()

    for tx in statement.transactions:
        key = (tx.transaction_date, tx.amount, tx.description)
        if key in seen_in_this_import or _is_duplicate(db, account.id, tx):
            result.skipped += 1
            continue
        seen_in_this_import.add(key)

        try:
            db.add(_to_ledger_row(user.user_id, account, statement, tx))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            result.errors.append(f"{tx.transaction_date} {tx.description}: {e}")
            continue
        result.imported += 1

    logger.info(
        "Imported statement for account %s: %d new, %d skipped, %d errors",
        account.id, result.imported, result.skipped, len(result.errors)
    )
    return result


def resolve_account(db: Session, user: UserContext, statement: Statement) -> BankAccount:
    """
    Find the user's account by IBAN or create an import-only one.

    Statements without an IBAN land on the user's active import-only account
    for the same bank, so re-uploading one de-duplicates like any other.
    """
    query = db.query(BankAccount).filter(BankAccount.user_id == user.user_id)
    if statement.iban:
        account = query.filter(BankAccount.iban == statement.iban).first()
    else:
        account = query.filter(
            BankAccount.iban.is_(None),
            BankAccount.provider_account_id.is_(None),
            BankAccount.is_active.is_(True),
            BankAccount.bank_name == statement.bank_name
        ).order_by(BankAccount.id.asc()).first()
    if account is not None:
        return account

    company = get_company(db, user.user_id)
    if company is None:
        raise SetupRequired("Company settings not found. Please complete setup first.")

    account = BankAccount(
        user_id=user.user_id,
        company_id=company.id,
        bank_name=statement.bank_name,
        iban=statement.iban or None,
        swift_bic=statement.swift_code or None,
        account_currency=statement.currency or settings.DEFAULT_CURRENCY,
        account_holder_name=statement.account_holder or company.name,
        is_primary=False,
        is_active=True,
        sync_enabled=False,
    )
    db.add(account)
    db.flush()
    logger.info("Created bank account %s for %s statement", account.id, statement.bank_name)
    return account


def _is_duplicate(db: Session, account_id: int, tx: ParsedTransaction) -> bool:
    query = db.query(BankTransaction.id).filter(
        BankTransaction.bank_account_id == account_id,
        BankTransaction.transaction_date == tx.transaction_date,
        BankTransaction.amount == tx.amount,
    )
    if tx.description:
        query = query.filter(BankTransaction.description == tx.description)
    else:
        query = query.filter(BankTransaction.description.is_(None))
    return query.first() is not None


def _to_ledger_row(user_id: str, account: BankAccount, statement: Statement, tx: ParsedTransaction) -> BankTransaction:
    return BankTransaction(
        bank_account_id=account.id,
        user_id=user_id,
        external_transaction_id=None,
        transaction_date=tx.transaction_date,
        booking_date=tx.transaction_date,
        value_date=tx.value_date,
        amount=tx.amount,
        currency=statement.currency or account.account_currency,
        description=tx.description or None,
        reference=tx.reference,
        transaction_type=tx.transaction_type,
        balance_after=tx.balance,
        is_reconciled=False,
    )


def get_import_history(db: Session, user_id: str, limit: int = 20) -> List[ImportHistory]:
    return db.query(ImportHistory).filter(
        ImportHistory.user_id == user_id
    ).order_by(ImportHistory.imported_at.desc()).limit(limit).all()
