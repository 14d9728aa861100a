import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import get_open_banking_client
from ..exceptions import BankLedgerError, to_http_exception
from ..identity import UserContext, get_current_user
from ..schemas import ConnectResponse, ConsentResponse
from ..services import consent_service
from ..services.open_banking import OpenBankingClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _frontend_redirect(**params) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_BANK_PAGE}?{urlencode(params)}", status_code=303)


@router.get("/connect", response_model=ConnectResponse)
def connect_bank(
    region: Optional[str] = Query(None, max_length=3, description="BHR, UAE or SAU"),
    provider_id: Optional[str] = Query(None, max_length=50),
    db: Session = Depends(get_db),
    client: OpenBankingClient = Depends(get_open_banking_client),
    user: UserContext = Depends(get_current_user)
):
    """Start linking a bank: returns the provider URL the user must visit"""
    try:
        intent = consent_service.create_intent(db, client, user, region=region, provider_id=provider_id)
    except BankLedgerError as e:
        raise to_http_exception(e)
    return ConnectResponse(intent_id=intent["intentId"], connect_url=intent["connectUrl"], region=intent["region"])


@router.get("/callback")
def bank_callback(
    intent_id: Optional[str] = Query(None, alias="intentId"),
    status: Optional[str] = Query(None),
    consent_id: Optional[str] = Query(None, alias="consentId"),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: OpenBankingClient = Depends(get_open_banking_client),
    user: UserContext = Depends(get_current_user)
):
    """Provider redirect after the user authorised (or refused) access"""
    if error:
        logger.warning("Bank authorization error for %s: %s %s", user.user_id, error, error_description)
        return _frontend_redirect(error=error_description or error)

    try:
        result = consent_service.resolve_callback(
            db, client, user, intent_id,
            callback_status=status,
            callback_consent_id=consent_id,
        )
    except BankLedgerError as e:
        logger.warning("Bank callback failed for %s: %s", user.user_id, e)
        return _frontend_redirect(error=e.message)

    if result.warnings:
        return _frontend_redirect(success="true", accounts=len(result.accounts), warning=result.warnings[0])
    return _frontend_redirect(success="true", accounts=len(result.accounts))


@router.get("/consents", response_model=List[ConsentResponse])
async def get_consents(
    db: Session = Depends(get_db),
    user: UserContext = Depends(get_current_user)
):
    """List the user's consents, newest first"""
    return consent_service.list_consents(db, user.user_id)


@router.delete("/consents/{consent_id}", response_model=ConsentResponse)
def revoke_consent(
    consent_id: str,
    db: Session = Depends(get_db),
    client: OpenBankingClient = Depends(get_open_banking_client),
    user: UserContext = Depends(get_current_user)
):
    """Revoke a consent at the provider and stop syncing its accounts"""
    try:
        return consent_service.revoke_consent(db, client, user, consent_id)
    except BankLedgerError as e:
        raise to_http_exception(e)
