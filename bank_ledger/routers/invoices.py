from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..models.invoice import Invoice
from ..schemas import InvoiceResponse, InvoiceSuggestion
from ..services import reconciliation_service

router = APIRouter()


@router.get("/open", response_model=List[InvoiceResponse])
async def get_open_invoices(
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Sent or overdue outbound invoices that can still be settled"""
    return reconciliation_service.open_outbound_invoices(db, user.user_id).order_by(Invoice.due_date.asc()).all()


@router.get("/suggestions/{transaction_id}", response_model=List[InvoiceSuggestion])
async def get_suggestions(
    transaction_id: int,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Reconciliation candidates for a transaction, exact-amount matches first"""
    try:
        return reconciliation_service.suggest_invoices(db, user.user_id, transaction_id, limit)
    except BankLedgerError as e:
        raise to_http_exception(e)
