import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..schemas import ImportHistoryResponse, ImportResponse, StatementInfo, StatementPeriod
from ..services import import_service
from ..services.statement_parsers import is_supported_file

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=ImportResponse)
async def upload_statement(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """
    Upload a bank statement spreadsheet and import its transactions.
    Rows already in the ledger are skipped.
    """
    # Validate file is provided
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    if not is_supported_file(file.filename):
        raise HTTPException(
            status_code=400,
            detail=f"File must be one of: {', '.join(settings.SUPPORTED_STATEMENT_EXTENSIONS)}"
        )

    content = await file.read()

    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds maximum allowed size of {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB"
        )

    if len(content) == 0:
        raise HTTPException(status_code=400, detail="File is empty")

    try:
        result = import_service.import_file(db, user, content, file.filename)
    except BankLedgerError as e:
        raise to_http_exception(e)

    statement = result.statement
    return ImportResponse(
        import_id=result.import_id,
        bank_account_id=result.bank_account_id,
        imported=result.imported,
        skipped=result.skipped,
        errors=result.errors,
        statement=StatementInfo(
            bank_name=statement.bank_name,
            account_number=statement.account_number or None,
            iban=statement.iban or None,
            currency=statement.currency or None,
            swift_code=statement.swift_code or None,
            account_holder=statement.account_holder or None,
            statement_period=StatementPeriod(from_date=statement.period_from, to_date=statement.period_to),
            opening_balance=statement.opening_balance,
            closing_balance=statement.closing_balance,
            transaction_count=len(statement.transactions),
        ),
    )


@router.get("/history", response_model=List[ImportHistoryResponse])
async def get_import_history(
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """Get import history"""
    return import_service.get_import_history(db, user.user_id)
