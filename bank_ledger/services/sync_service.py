"""
Transaction sync from the Open Banking provider.

Provider fetches for the selected accounts run on a bounded thread pool; the
results are merged into the ledger one account at a time on the calling
thread, which owns the database session. Each account gets its own SyncLog
and its own failure handling, so one bad account never aborts the others.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import BankLedgerError, ProtocolError, as_consent_expired, is_auth_failure
from ..identity import UserContext
from ..models.bank_account import BankAccount, ConsentStatus
from ..models.bank_transaction import BankTransaction
from ..models.sync_log import SyncLog
from .consent_service import expire_consent
from .normalize import normalize_provider_transaction
from .open_banking import OpenBankingClient
from .reconciliation_service import auto_reconcile_pending

logger = logging.getLogger(__name__)


class SyncStatus:
    STARTED = "started"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SyncResult:
    total_accounts: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    total_transactions: int = 0
    new_transactions: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """At least one account synced"""
        return self.successful_syncs > 0


@dataclass
class _AccountJob:
    account_id: int
    provider_account_id: str
    region: str
    log_id: int
    started: float


def eligible_accounts(db: Session, user_id: str, account_id: Optional[int] = None) -> List[BankAccount]:
    """Active, sync-enabled, provider-linked accounts with an active consent"""
    query = db.query(BankAccount).filter(
        BankAccount.user_id == user_id,
        BankAccount.is_active.is_(True),
        BankAccount.sync_enabled.is_(True),
        BankAccount.consent_status == ConsentStatus.ACTIVE,
        BankAccount.provider_account_id.isnot(None),
        BankAccount.provider_consent_id.isnot(None)
    )
    if account_id is not None:
        query = query.filter(BankAccount.id == account_id)
    return query.order_by(BankAccount.id.asc()).all()


def sync_accounts(
    db: Session,
    client: OpenBankingClient,
    user: UserContext,
    account_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    refresh: bool = False,
    cancel: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
) -> SyncResult:
    """
    Pull provider transactions for the user's eligible accounts and merge them
    into the ledger by (account, external transaction id).

    Args:
        account_id: narrow the sync to one account
        from_date, to_date: booking window, default the trailing 90 days
        refresh: force a live pull from the bank instead of the cached endpoint
        cancel: set to stop before the next account is merged
    """
    to_date = to_date or date.today()
    from_date = from_date or to_date - timedelta(days=settings.SYNC_DEFAULT_WINDOW_DAYS)
    request_data = {"from": from_date.isoformat(), "to": to_date.isoformat(), "refresh": refresh}

    accounts = eligible_accounts(db, user.user_id, account_id)
    result = SyncResult(total_accounts=len(accounts))
    if not accounts:
        logger.info("No accounts to sync for user %s", user.user_id)
        return result

    jobs = [_open_log(db, user.user_id, account, request_data) for account in accounts]

    workers = max(1, min(max_workers or settings.SYNC_MAX_WORKERS, len(jobs)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bank-sync") as pool:
        futures: List[Tuple[_AccountJob, Future]] = [
            (job, pool.submit(_fetch, client, user.user_id, job, from_date, to_date, refresh))
            for job in jobs
        ]
        for job, future in futures:
            if cancel is not None and cancel.is_set():
                # Unmerged accounts keep their "started" log
                result.cancelled = True
                for _, pending in futures:
                    pending.cancel()
                logger.warning("Sync for user %s cancelled", user.user_id)
                break
            try:
                provider_transactions = future.result()
                fetched, created, updated = _merge(db, user.user_id, job, provider_transactions)
            except Exception as e:
                db.rollback()
                _record_failure(db, job, e, result)
                continue

            _close_log(
                db, job, SyncStatus.SUCCESS,
                records_fetched=fetched, records_created=created, records_updated=updated
            )
            result.successful_syncs += 1
            result.total_transactions += fetched
            result.new_transactions += created
            logger.info(
                "Synced account %s: %d fetched, %d new, %d updated",
                job.account_id, fetched, created, updated
            )

    if result.new_transactions > 0:
        try:
            auto_reconcile_pending(db, user.user_id, limit=settings.AUTO_RECONCILE_LIMIT)
        except Exception:
            db.rollback()
            logger.exception("Auto-reconciliation after sync failed for user %s", user.user_id)

    return result


def _open_log(db: Session, user_id: str, account: BankAccount, request_data: Dict[str, Any]) -> _AccountJob:
    log = SyncLog(
        user_id=user_id,
        bank_account_id=account.id,
        sync_type="transactions",
        status=SyncStatus.STARTED,
        started_at=datetime.now(timezone.utc),
        request_data=request_data,
    )
    db.add(log)
    db.commit()
    return _AccountJob(
        account_id=account.id,
        provider_account_id=account.provider_account_id,
        region=account.provider_region or settings.OPEN_BANKING_DEFAULT_REGION,
        log_id=log.id,
        started=time.monotonic(),
    )


def _fetch(
    client: OpenBankingClient,
    customer_user_id: str,
    job: _AccountJob,
    from_date: date,
    to_date: date,
    refresh: bool,
) -> List[Dict[str, Any]]:
    """Runs on a worker thread; touches only the client, never the session"""
    if refresh:
        return client.refresh_transactions(job.provider_account_id, customer_user_id, job.region)
    return list(client.iter_transactions(
        job.provider_account_id,
        customer_user_id,
        from_booking=f"{from_date.isoformat()}T00:00:00Z",
        to_booking=f"{to_date.isoformat()}T23:59:59Z",
        region=job.region,
    ))


def _merge(
    db: Session,
    user_id: str,
    job: _AccountJob,
    provider_transactions: List[Dict[str, Any]],
) -> Tuple[int, int, int]:
    """Upsert by (account, external id). Returns (fetched, created, updated)."""
    rows = [normalize_provider_transaction(tx) for tx in provider_transactions]

    # Providers occasionally repeat a transaction across pages; last one wins
    by_external_id = {row["external_transaction_id"]: row for row in rows}

    existing = {}
    if by_external_id:
        existing = {
            tx.external_transaction_id: tx
            for tx in db.query(BankTransaction).filter(
                BankTransaction.bank_account_id == job.account_id,
                BankTransaction.external_transaction_id.in_(list(by_external_id))
            ).all()
        }

    created = updated = 0
    for external_id, values in by_external_id.items():
        tx = existing.get(external_id)
        if tx is None:
            db.add(BankTransaction(bank_account_id=job.account_id, user_id=user_id, is_reconciled=False, **values))
            created += 1
        else:
            for key, value in values.items():
                setattr(tx, key, value)
            updated += 1

    account = db.get(BankAccount, job.account_id)
    account.last_sync_at = datetime.now(timezone.utc)
    db.commit()
    return len(by_external_id), created, updated


def _record_failure(db: Session, job: _AccountJob, error: Exception, result: SyncResult) -> None:
    if isinstance(error, ProtocolError):
        error = as_consent_expired(error)
    error_code = type(error).__name__
    if isinstance(error, ValueError) and not isinstance(error, BankLedgerError):
        error_code = "ParseError"

    if isinstance(error, BankLedgerError) and is_auth_failure(error):
        expire_consent(db, db.get(BankAccount, job.account_id))
        logger.warning("Consent expired for account %s: %s", job.account_id, error)
    elif isinstance(error, (BankLedgerError, ValueError)):
        logger.error("Sync failed for account %s: %s", job.account_id, error)
    else:
        logger.error("Unexpected error syncing account %s", job.account_id, exc_info=error)

    _close_log(db, job, SyncStatus.ERROR, error_code=error_code, error_message=str(error))
    result.failed_syncs += 1
    result.errors.append({"account_id": job.account_id, "error": str(error), "code": error_code})


def _close_log(db: Session, job: _AccountJob, status: str, **fields) -> None:
    log = db.get(SyncLog, job.log_id)
    log.status = status
    log.completed_at = datetime.now(timezone.utc)
    log.duration_ms = int((time.monotonic() - job.started) * 1000)
    for key, value in fields.items():
        setattr(log, key, value)
    db.commit()


def last_successful_sync(db: Session, account_id: int) -> Optional[SyncLog]:
    """Most recent completed successful sync; stale "started" logs never count"""
    return db.query(SyncLog).filter(
        SyncLog.bank_account_id == account_id,
        SyncLog.status == SyncStatus.SUCCESS,
        SyncLog.completed_at.isnot(None)
    ).order_by(SyncLog.completed_at.desc()).first()


def get_sync_history(db: Session, user_id: str, account_id: Optional[int] = None, limit: int = 20) -> List[SyncLog]:
    query = db.query(SyncLog).filter(SyncLog.user_id == user_id)
    if account_id is not None:
        query = query.filter(SyncLog.bank_account_id == account_id)
    return query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit).all()
