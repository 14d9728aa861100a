"""
Bank account listing with balances.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..exceptions import BankLedgerError, NotFound, is_auth_failure
from ..identity import UserContext
from ..models.bank_account import BankAccount, ConsentStatus
from .consent_service import expire_consent
from .normalize import amount_value
from .open_banking import OpenBankingClient

logger = logging.getLogger(__name__)

PREFERRED_BALANCE_TYPES = ("InterimAvailable", "ClosingAvailable", "InterimBooked", "ClosingBooked", "Expected")


def list_accounts(db: Session, user_id: str) -> List[BankAccount]:
    """Active accounts, primary first then newest"""
    return db.query(BankAccount).filter(
        BankAccount.user_id == user_id,
        BankAccount.is_active.is_(True)
    ).order_by(BankAccount.is_primary.desc(), BankAccount.created_at.desc(), BankAccount.id.desc()).all()


def get_account(db: Session, user_id: str, account_id: int) -> BankAccount:
    account = db.query(BankAccount).filter(
        BankAccount.id == account_id,
        BankAccount.user_id == user_id
    ).first()
    if account is None:
        raise NotFound("Bank account not found")
    return account


def pick_balance(balances: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Choose the most useful balance entry the provider returned"""
    if not balances:
        return None
    by_type = {balance.get("type"): balance for balance in balances}
    for balance_type in PREFERRED_BALANCE_TYPES:
        if balance_type in by_type:
            return by_type[balance_type]
    return balances[0]


def _live_balance(
    db: Session,
    client: OpenBankingClient,
    user: UserContext,
    account: BankAccount,
) -> Dict[str, Any]:
    try:
        balances = client.get_balances(account.provider_account_id, user.user_id, account.provider_region)
        entry = pick_balance([balance for balance in balances if isinstance(balance, dict)])
        if entry is None:
            return {"balance": None}
        amount_block = entry.get("amount") or {}
        amount = amount_value(amount_block)
    except BankLedgerError as e:
        if is_auth_failure(e):
            expire_consent(db, account)
            logger.warning("Consent expired for account %s while fetching balance", account.id)
        else:
            logger.warning("Balance fetch failed for account %s: %s", account.id, e)
        return {"balance": None, "balance_error": e.message}

    return {
        "balance": {
            "amount": amount,
            "currency": amount_block.get("currency") or account.account_currency,
            "type": entry.get("type"),
            "source": "live",
        }
    }


def list_accounts_with_balances(
    db: Session,
    client: OpenBankingClient,
    user: UserContext,
) -> List[Dict[str, Any]]:
    """
    Accounts with their best available balance.

    Linked accounts with an active consent get the live provider balance.
    Otherwise, or when the live call fails, the balance from the last
    imported statement is used with source "imported".
    """
    results = []
    for account in list_accounts(db, user.user_id):
        entry: Dict[str, Any] = {"account": account, "balance": None}
        if account.is_provider_linked and account.consent_status == ConsentStatus.ACTIVE:
            entry.update(_live_balance(db, client, user, account))

        if entry["balance"] is None and account.current_balance is not None:
            entry["balance"] = {
                "amount": account.current_balance,
                "currency": account.balance_currency or account.account_currency,
                "type": "imported",
                "source": "imported",
                "updated_at": account.balance_updated_at,
            }
        results.append(entry)
    return results


def deactivate_account(db: Session, user_id: str, account_id: int) -> BankAccount:
    """Soft delete; ledger rows stay in place"""
    account = get_account(db, user_id, account_id)
    account.is_active = False
    account.sync_enabled = False
    db.commit()
    logger.info("Bank account %s deactivated", account_id)
    return account
