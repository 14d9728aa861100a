from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_open_banking_client
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..schemas import AccountWithBalanceResponse, BankAccountResponse, SyncLogResponse
from ..services import account_service, sync_service
from ..services.open_banking import OpenBankingClient

router = APIRouter()


@router.get("/", response_model=List[AccountWithBalanceResponse])
def get_accounts(
    db: Session = Depends(get_db),
    client: OpenBankingClient = Depends(get_open_banking_client),
    user: UserContext = Depends(get_current_user)
):
    """Active accounts with live or imported balances"""
    return account_service.list_accounts_with_balances(db, client, user)


@router.get("/{account_id}", response_model=BankAccountResponse)
async def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Get a specific bank account"""
    try:
        return account_service.get_account(db, user.user_id, account_id)
    except BankLedgerError as e:
        raise to_http_exception(e)


@router.delete("/{account_id}", response_model=BankAccountResponse)
async def deactivate_account(
    account_id: int,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Soft delete an account; its transactions are kept"""
    try:
        return account_service.deactivate_account(db, user.user_id, account_id)
    except BankLedgerError as e:
        raise to_http_exception(e)


@router.get("/{account_id}/sync-history", response_model=List[SyncLogResponse])
async def get_sync_history(
    account_id: int,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Recent sync attempts for an account"""
    try:
        account_service.get_account(db, user.user_id, account_id)
    except BankLedgerError as e:
        raise to_http_exception(e)
    return sync_service.get_sync_history(db, user.user_id, account_id)
