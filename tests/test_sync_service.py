"""Tests for the sync orchestrator."""
import threading
from datetime import date, timedelta
from decimal import Decimal

from bank_ledger.models import BankTransaction, Consent, ConsentStatus, SyncLog
from bank_ledger.services import sync_service
from bank_ledger.services.normalize import normalize_provider_transaction
from bank_ledger.services.sync_service import SyncStatus

from conftest import provider_tx


def _three_transactions():
    return [
        provider_tx("t1", "100.000", "Credit"),
        provider_tx("t2", "25.500", "Debit"),
        provider_tx("t3", "-40.000", "credit", booked="2026-02-05T08:30:00Z"),
    ]


def test_first_sync_creates_transactions_and_repeat_is_idempotent(db, ob_client, provider, user, make_account):
    account = make_account()
    provider.transactions["acc-1"] = _three_transactions()

    first = sync_service.sync_accounts(db, ob_client, user)
    second = sync_service.sync_accounts(db, ob_client, user)

    assert first.new_transactions == 3
    assert first.success
    assert second.new_transactions == 0
    assert second.total_transactions == 3
    assert db.query(BankTransaction).filter(BankTransaction.bank_account_id == account.id).count() == 3


def test_overlapping_windows_do_not_duplicate(db, ob_client, provider, user, make_account):
    make_account()
    provider.transactions["acc-1"] = _three_transactions()[:2]
    sync_service.sync_accounts(db, ob_client, user, from_date=date(2026, 1, 1), to_date=date(2026, 2, 4))

    provider.transactions["acc-1"] = _three_transactions()
    result = sync_service.sync_accounts(db, ob_client, user, from_date=date(2026, 2, 1), to_date=date(2026, 2, 10))

    assert result.new_transactions == 1
    assert db.query(BankTransaction).count() == 3


def test_amount_sign_follows_indicator(db, ob_client, provider, user, make_account):
    make_account()
    provider.transactions["acc-1"] = _three_transactions()

    sync_service.sync_accounts(db, ob_client, user)

    rows = {tx.external_transaction_id: tx for tx in db.query(BankTransaction).all()}
    assert rows["t1"].amount == Decimal("100.000") and rows["t1"].transaction_type == "credit"
    assert rows["t2"].amount == Decimal("-25.500") and rows["t2"].transaction_type == "debit"
    assert rows["t3"].amount == Decimal("40.000") and rows["t3"].transaction_type == "credit"
    for tx in rows.values():
        assert (tx.amount > 0) == (tx.transaction_type == "credit")


def test_resync_updates_existing_rows(db, ob_client, provider, user, make_account):
    make_account()
    provider.transactions["acc-1"] = [provider_tx("t1", "100.000", transactionInformation="Pending")]
    sync_service.sync_accounts(db, ob_client, user)

    provider.transactions["acc-1"] = [provider_tx("t1", "100.000", transactionInformation="Booked")]
    sync_service.sync_accounts(db, ob_client, user)

    tx = db.query(BankTransaction).one()
    assert tx.description == "Booked"
    log = db.query(SyncLog).order_by(SyncLog.id.desc()).first()
    assert log.records_updated == 1
    assert log.records_created == 0


def test_default_window_is_trailing_ninety_days(db, ob_client, provider, user, make_account):
    make_account()

    sync_service.sync_accounts(db, ob_client, user)

    params = provider.requests[-1].url.params
    expected_from = (date.today() - timedelta(days=90)).isoformat()
    assert params["fromBookingDateTime"].startswith(expected_from)
    assert params["toBookingDateTime"].startswith(date.today().isoformat())


def test_refresh_uses_live_endpoint(db, ob_client, provider, user, make_account):
    make_account()
    provider.transactions["acc-1"] = _three_transactions()

    result = sync_service.sync_accounts(db, ob_client, user, refresh=True)

    assert result.new_transactions == 3
    assert any(path.endswith("/rawtransactions/refresh") for path in provider.paths())


def test_success_writes_log_and_stamps_account(db, ob_client, provider, user, make_account):
    account = make_account()
    provider.transactions["acc-1"] = _three_transactions()

    sync_service.sync_accounts(db, ob_client, user)

    log = db.query(SyncLog).one()
    assert log.status == SyncStatus.SUCCESS
    assert log.records_fetched == 3
    assert log.records_created == 3
    assert log.completed_at is not None
    assert log.duration_ms is not None
    assert log.request_data["refresh"] is False
    db.refresh(account)
    assert account.last_sync_at is not None


def test_auth_failure_expires_consent_and_other_accounts_continue(db, ob_client, provider, user, make_account):
    bad = make_account(provider_account_id="acc-bad")
    good = make_account(provider_account_id="acc-1")
    provider.transactions["acc-1"] = _three_transactions()
    provider.fail("/accounts/acc-bad/", 401, "Unauthorized")

    result = sync_service.sync_accounts(db, ob_client, user)

    assert result.total_accounts == 2
    assert result.successful_syncs == 1
    assert result.failed_syncs == 1
    assert result.success
    assert result.errors[0]["account_id"] == bad.id
    assert result.errors[0]["code"] == "ConsentExpired"

    db.refresh(bad)
    db.refresh(good)
    assert bad.consent_status == ConsentStatus.EXPIRED
    assert good.consent_status == ConsentStatus.ACTIVE
    bad_log = db.query(SyncLog).filter(SyncLog.bank_account_id == bad.id).one()
    assert bad_log.status == SyncStatus.ERROR
    assert "401" in bad_log.error_message


def test_server_error_does_not_expire_consent(db, ob_client, provider, user, make_account):
    account = make_account()
    provider.fail("/transactions", 500, "upstream down")

    result = sync_service.sync_accounts(db, ob_client, user)

    assert not result.success
    db.refresh(account)
    assert account.consent_status == ConsentStatus.ACTIVE


def test_malformed_transaction_fails_only_its_account(db, ob_client, provider, user, make_account):
    make_account(provider_account_id="acc-1")
    make_account(provider_account_id="acc-2")
    provider.transactions["acc-1"] = [{"transactionId": "broken", "amount": {"value": "1"}}]
    provider.transactions["acc-2"] = [provider_tx("ok", "5.000")]

    result = sync_service.sync_accounts(db, ob_client, user)

    assert result.successful_syncs == 1
    assert result.failed_syncs == 1
    assert db.query(BankTransaction).one().external_transaction_id == "ok"


def test_string_amount_block_fails_only_its_account(db, ob_client, provider, user, make_account):
    broken = make_account(provider_account_id="acc-1")
    make_account(provider_account_id="acc-2")
    provider.transactions["acc-1"] = [provider_tx("t1", "10.000", amount="10.000")]
    provider.transactions["acc-2"] = [provider_tx("ok", "5.000")]

    result = sync_service.sync_accounts(db, ob_client, user)

    assert result.successful_syncs == 1
    assert result.errors[0]["account_id"] == broken.id
    assert result.errors[0]["code"] == "ParseError"
    assert db.query(BankTransaction).one().external_transaction_id == "ok"


def test_unexpected_error_is_recorded_and_siblings_still_merge(
    db, ob_client, provider, user, make_account, monkeypatch
):
    make_account(provider_account_id="acc-1")
    make_account(provider_account_id="acc-2")
    provider.transactions["acc-1"] = [provider_tx("boom", "1.000")]
    provider.transactions["acc-2"] = [provider_tx("ok", "5.000")]

    def normalize(tx):
        if tx["transactionId"] == "boom":
            raise RuntimeError("database went away")
        return normalize_provider_transaction(tx)

    monkeypatch.setattr(sync_service, "normalize_provider_transaction", normalize)

    result = sync_service.sync_accounts(db, ob_client, user)

    assert result.successful_syncs == 1
    assert result.failed_syncs == 1
    assert result.errors[0]["code"] == "RuntimeError"
    statuses = sorted(log.status for log in db.query(SyncLog).all())
    assert statuses == [SyncStatus.ERROR, SyncStatus.SUCCESS]


def test_auth_failure_expires_the_linked_consent_row(db, ob_client, provider, user, make_account):
    make_account()
    db.add(Consent(
        user_id=user.user_id,
        intent_id="intent-1",
        consent_id="consent-1",
        provider_id="BLUE",
        status=ConsentStatus.ACTIVE,
    ))
    db.commit()
    provider.fail("/transactions", 403, "Forbidden")

    result = sync_service.sync_accounts(db, ob_client, user)

    assert not result.success
    consent = db.query(Consent).one()
    assert consent.status == ConsentStatus.EXPIRED


def test_only_eligible_accounts_are_synced(db, ob_client, provider, user, make_account):
    make_account(provider_account_id="acc-1")
    make_account(provider_account_id="acc-expired", consent_status=ConsentStatus.EXPIRED)
    make_account(provider_account_id="acc-off", sync_enabled=False)
    make_account(provider_account_id="acc-gone", is_active=False)
    make_account(provider_account_id=None, iban="BH00IMPORTED")

    result = sync_service.sync_accounts(db, ob_client, user)

    assert result.total_accounts == 1


def test_sync_single_account(db, ob_client, provider, user, make_account):
    make_account(provider_account_id="acc-1")
    second = make_account(provider_account_id="acc-2")

    result = sync_service.sync_accounts(db, ob_client, user, account_id=second.id)

    assert result.total_accounts == 1
    assert db.query(SyncLog).one().bank_account_id == second.id


def test_cancelled_sync_leaves_started_logs_out_of_reporting(db, ob_client, provider, user, make_account):
    account = make_account()
    cancel = threading.Event()
    cancel.set()

    result = sync_service.sync_accounts(db, ob_client, user, cancel=cancel)

    assert result.cancelled
    assert result.successful_syncs == 0
    log = db.query(SyncLog).one()
    assert log.status == SyncStatus.STARTED
    assert sync_service.last_successful_sync(db, account.id) is None


def test_last_successful_sync_ignores_failures(db, ob_client, provider, user, make_account):
    account = make_account()
    sync_service.sync_accounts(db, ob_client, user)
    provider.fail("/transactions", 500, "down")
    sync_service.sync_accounts(db, ob_client, user)

    last = sync_service.last_successful_sync(db, account.id)

    assert last is not None
    assert last.status == SyncStatus.SUCCESS


def test_new_credits_are_auto_reconciled(db, ob_client, provider, user, make_account, make_invoice):
    make_account()
    invoice = make_invoice("INV-0042", "100.00")
    provider.transactions["acc-1"] = [
        provider_tx("t1", "100.000", transactionReference="Payment INV-0042"),
    ]

    sync_service.sync_accounts(db, ob_client, user)

    tx = db.query(BankTransaction).one()
    assert tx.is_reconciled
    assert tx.matched_invoice_id == invoice.id
    db.refresh(invoice)
    assert invoice.status == "paid"


def test_normalize_accepts_amount_under_either_key():
    row = normalize_provider_transaction({
        "transactionId": "x",
        "amount": {"amount": "1,250.750", "currency": "BHD"},
        "creditDebitIndicator": "DEBIT",
        "bookingDateTime": "2026-02-04T10:00:00+03:00",
    })

    assert row["amount"] == Decimal("-1250.750")
    assert row["transaction_type"] == "debit"
    assert row["transaction_date"] == date(2026, 2, 4)
