import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_open_banking_client
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..schemas import SyncLogResponse, SyncRequest, SyncResultResponse
from ..services import sync_service
from ..services.open_banking import OpenBankingClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=SyncResultResponse)
def trigger_sync(
    data: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    client: OpenBankingClient = Depends(get_open_banking_client),
    user: UserContext = Depends(get_current_user)
):
    """
    Sync transactions for all eligible accounts, or one account.
    Partial failures are reported in `errors`; `success` means at least one account synced.
    """
    data = data or SyncRequest()
    try:
        result = sync_service.sync_accounts(
            db, client, user,
            account_id=data.account_id,
            from_date=data.from_date,
            to_date=data.to_date,
            refresh=data.refresh,
        )
    except BankLedgerError as e:
        raise to_http_exception(e)

    logger.info(
        "Sync for %s: %d/%d accounts ok, %d new transactions",
        user.user_id, result.successful_syncs, result.total_accounts, result.new_transactions
    )
    return SyncResultResponse(
        success=result.success,
        total_accounts=result.total_accounts,
        successful_syncs=result.successful_syncs,
        failed_syncs=result.failed_syncs,
        total_transactions=result.total_transactions,
        new_transactions=result.new_transactions,
        cancelled=result.cancelled,
        errors=result.errors,
    )


@router.get("/history", response_model=List[SyncLogResponse])
async def get_sync_history(
    account_id: Optional[int] = Query(None, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Recent sync attempts"""
    return sync_service.get_sync_history(db, user.user_id, account_id, limit)
