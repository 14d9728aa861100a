import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..schemas import (
    LedgerSummary, ReconcileRequest, ReconcileResponse,
    TransactionListResponse, TransactionResponse,
)
from ..services import reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=TransactionListResponse)
async def get_transactions(
    account_id: Optional[int] = Query(None, ge=1),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    reconciled: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Ledger transactions with the unreconciled summary"""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from must not be after date_to")

    rows, total = reconciliation_service.list_transactions(
        db, user.user_id,
        account_id=account_id,
        date_from=date_from,
        date_to=date_to,
        reconciled=reconciled,
        limit=limit,
        offset=offset,
    )
    summary = reconciliation_service.unreconciled_summary(db, user.user_id, account_id)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in rows],
        total=total,
        limit=limit,
        offset=offset,
        summary=LedgerSummary(**summary),
    )


@router.get("/summary", response_model=LedgerSummary)
async def get_summary(
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Count and totals of unreconciled transactions"""
    return LedgerSummary(**reconciliation_service.unreconciled_summary(db, user.user_id, account_id))


@router.patch("/{transaction_id}", response_model=ReconcileResponse)
async def reconcile_transaction(
    transaction_id: int,
    data: ReconcileRequest,
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Link a transaction to an invoice, or unlink it with invoice_id null"""
    try:
        tx = reconciliation_service.reconcile(db, user.user_id, transaction_id, data.invoice_id, data.notes)
    except BankLedgerError as e:
        raise to_http_exception(e)
    return ReconcileResponse(success=True, transaction=TransactionResponse.model_validate(tx))
