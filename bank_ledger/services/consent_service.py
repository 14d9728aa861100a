"""
Consent lifecycle: intent creation, provider callback resolution and
account linking.

    pending --(callback success)--> active --(auth failure during sync)--> expired
    active --(explicit revoke)--> revoked
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import BankLedgerError, NotFound, ValidationError
from ..identity import UserContext, get_company
from ..models.bank_account import BankAccount, ConsentStatus
from ..models.consent import Consent, DEFAULT_SCOPES
from .normalize import parse_datetime
from .open_banking import OpenBankingClient
from .regions import IntentRequest, resolve_region

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("SUCCESSFUL", "Authorised")


@dataclass
class LinkResult:
    """Outcome of a resolved callback"""
    consent: Consent
    accounts: List[BankAccount] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _best_effort(what: str, call: Callable[..., Any], *args, **kwargs) -> Optional[Any]:
    """Run an enrichment call; on failure log it and return None."""
    try:
        return call(*args, **kwargs)
    except BankLedgerError as e:
        logger.warning("Could not fetch %s, continuing with defaults: %s", what, e)
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def create_intent(
    db: Session,
    client: OpenBankingClient,
    user: UserContext,
    region: Optional[str] = None,
    provider_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Start bank linking: create a provider intent and store a pending consent.

    Returns:
        {"intentId", "connectUrl", "region"}
    """
    region = resolve_region(region)
    first_name, last_name = user.split_name()
    intent = IntentRequest(
        customer_user_id=user.user_id,
        first_name=first_name,
        last_name=last_name,
        email=user.email or "user@example.com",
        provider_id=provider_id,
        trading_name=settings.TPP_TRADING_NAME,
        legal_name=settings.TPP_LEGAL_NAME,
    )
    response = client.create_intent(intent, region)
    intent_id = response.get("intentId")
    if not intent_id:
        raise ValidationError("Provider did not return an intent id")

    consent = db.query(Consent).filter(
        Consent.user_id == user.user_id,
        Consent.intent_id == intent_id
    ).first()
    if consent is None:
        consent = Consent(
            user_id=user.user_id,
            intent_id=intent_id,
            consent_id=intent_id,  # replaced by the provider consent id on callback
            provider_id=provider_id or "pending",
            status=ConsentStatus.PENDING,
            scope=list(DEFAULT_SCOPES),
            region=region,
        )
        db.add(consent)
        db.commit()

    logger.info("Intent %s created for user %s in %s", intent_id, user.user_id, region)
    return {
        "intentId": intent_id,
        "connectUrl": response.get("connectUrl"),
        "region": region,
    }


def resolve_callback(
    db: Session,
    client: OpenBankingClient,
    user: UserContext,
    intent_id: Optional[str],
    callback_status: Optional[str] = None,
    callback_consent_id: Optional[str] = None,
) -> LinkResult:
    """
    Turn a provider callback into an active consent and linked accounts.

    Only a failed status or a missing intent id aborts. Intent/consent detail
    lookups and the account fetch are best effort: the provider sandbox does
    not reliably serve them, and linking must still succeed.
    """
    if not intent_id:
        raise ValidationError("Missing intent ID")
    if callback_status and callback_status not in SUCCESS_STATUSES:
        raise ValidationError(f"Authorization failed: {callback_status}")

    consent = _find_consent(db, user.user_id, intent_id)
    region = consent.region if consent else settings.OPEN_BANKING_DEFAULT_REGION

    intent_details = _as_dict(_best_effort("intent details", client.get_intent, intent_id, user.user_id, region))
    final_consent_id = callback_consent_id or intent_details.get("consentId") or intent_id

    details = _as_dict(_best_effort("consent details", client.get_consent, final_consent_id, user.user_id, region))
    provider_id = details.get("providerId") or intent_details.get("providerId") or settings.DEFAULT_PROVIDER_ID
    provider_name = details.get("providerName") or intent_details.get("providerName") or settings.DEFAULT_PROVIDER_NAME
    expires_at = parse_datetime(details.get("expiresAt"))

    if consent is None:
        consent = db.query(Consent).filter(Consent.consent_id == final_consent_id).first()
    if consent is None:
        consent = Consent(user_id=user.user_id, intent_id=intent_id, region=region)
        db.add(consent)

    consent.consent_id = final_consent_id
    consent.provider_id = provider_id
    consent.provider_name = provider_name
    consent.status = ConsentStatus.ACTIVE
    consent.scope = list(DEFAULT_SCOPES)
    consent.authorized_at = datetime.now(timezone.utc)
    consent.expires_at = expires_at
    db.commit()
    logger.info("Consent %s active for user %s", final_consent_id, user.user_id)

    result = LinkResult(consent=consent)
    provider_accounts = _best_effort("accounts", client.get_accounts, user.user_id, region)
    if provider_accounts is None:
        result.warnings.append("Bank connected but accounts could not be fetched yet")
        return result

    company = get_company(db, user.user_id)
    if company is None:
        logger.warning("User %s has no company settings; accounts not linked", user.user_id)
        result.warnings.append("Company settings not found; accounts were not linked")
        return result

    for provider_account in provider_accounts:
        account = _upsert_linked_account(
            db, user.user_id, company.id, consent, provider_account, provider_name, region
        )
        if account is not None:
            result.accounts.append(account)

    db.flush()
    consent.linked_account_ids = [account.id for account in result.accounts]
    db.commit()
    logger.info("Linked %d accounts under consent %s", len(result.accounts), final_consent_id)
    return result


def revoke_consent(db: Session, client: OpenBankingClient, user: UserContext, consent_id: str) -> Consent:
    """Revoke at the provider and stop syncing every account linked under it"""
    consent = db.query(Consent).filter(
        Consent.user_id == user.user_id,
        Consent.consent_id == consent_id
    ).first()
    if consent is None:
        raise NotFound("Consent not found")

    client.revoke_consent(consent.consent_id, user.user_id, consent.region)

    consent.status = ConsentStatus.REVOKED
    consent.revoked_at = datetime.now(timezone.utc)
    accounts = db.query(BankAccount).filter(
        BankAccount.user_id == user.user_id,
        BankAccount.provider_consent_id == consent.consent_id
    ).all()
    for account in accounts:
        account.consent_status = ConsentStatus.REVOKED
        account.sync_enabled = False
    db.commit()
    logger.info("Consent %s revoked (%d accounts)", consent_id, len(accounts))
    return consent


def expire_consent(db: Session, account: BankAccount) -> None:
    """
    Downgrade an account and the consent it was linked under after the
    provider rejected a call with an auth failure. Revoked consents stay revoked.
    """
    account.consent_status = ConsentStatus.EXPIRED
    if account.provider_consent_id:
        consent = db.query(Consent).filter(
            Consent.user_id == account.user_id,
            Consent.consent_id == account.provider_consent_id
        ).first()
        if consent is not None and consent.status == ConsentStatus.ACTIVE:
            consent.status = ConsentStatus.EXPIRED
    db.commit()


def list_consents(db: Session, user_id: str) -> List[Consent]:
    return db.query(Consent).filter(
        Consent.user_id == user_id
    ).order_by(Consent.created_at.desc()).all()


def _find_consent(db: Session, user_id: str, intent_id: str) -> Optional[Consent]:
    return db.query(Consent).filter(
        Consent.user_id == user_id,
        Consent.intent_id == intent_id
    ).first()


def _upsert_linked_account(
    db: Session,
    user_id: str,
    company_id: int,
    consent: Consent,
    provider_account: Dict[str, Any],
    provider_name: str,
    region: str,
) -> Optional[BankAccount]:
    provider_account_id = provider_account.get("accountId") if isinstance(provider_account, dict) else None
    if not provider_account_id:
        logger.warning("Skipping provider account without accountId: %s", provider_account)
        return None

    account = db.query(BankAccount).filter(
        BankAccount.provider_account_id == provider_account_id
    ).first()
    if account is not None and account.user_id != user_id:
        logger.error("Provider account %s is already linked to another user", provider_account_id)
        return None

    if account is None:
        account = BankAccount(
            user_id=user_id,
            company_id=company_id,
            provider_account_id=provider_account_id,
            account_holder_name=provider_account.get("nickname"),
            is_primary=False,
            is_active=True,
        )
        db.add(account)

    account.provider_consent_id = consent.consent_id
    account.provider_id = consent.provider_id or provider_account.get("providerId")
    account.provider_region = region
    account.consent_status = ConsentStatus.ACTIVE
    account.consent_expires_at = consent.expires_at
    account.bank_name = provider_name
    account.iban = provider_account.get("iban") or provider_account.get("accountNumber") or None
    account.swift_bic = provider_account.get("bic")
    account.account_currency = provider_account.get("currency") or account.account_currency
    account.sync_enabled = True
    return account
