"""Tests for intent creation, callback resolution and consent revocation."""
import pytest

from bank_ledger.exceptions import NotFound, ValidationError
from bank_ledger.models import BankAccount, Consent, ConsentStatus, DEFAULT_SCOPES
from bank_ledger.services import consent_service

from conftest import USER_ID, read_json_body


def test_create_intent_stores_pending_consent(db, ob_client, provider, user):
    result = consent_service.create_intent(db, ob_client, user, region="bhr")

    assert result == {
        "intentId": "intent-1",
        "connectUrl": "https://connect.provider.test/intent-1",
        "region": "BHR",
    }
    consent = db.query(Consent).one()
    assert consent.status == ConsentStatus.PENDING
    assert consent.intent_id == "intent-1"
    assert consent.region == "BHR"
    assert consent.scope == DEFAULT_SCOPES


def test_create_intent_splits_display_name(db, ob_client, provider, user):
    consent_service.create_intent(db, ob_client, user)

    body = read_json_body(provider.requests[-1])
    assert body["user"]["firstName"] == "Fatima"
    assert body["user"]["lastName"] == "Al Khalifa"
    assert body["user"]["email"] == "fatima@example.com"


def test_unknown_region_falls_back_to_bahrain(db, ob_client, provider, user):
    result = consent_service.create_intent(db, ob_client, user, region="xx")

    assert result["region"] == "BHR"
    assert provider.requests[-1].url.host == "bhr.provider.test"


def test_create_intent_without_intent_id_is_rejected(db, ob_client, provider, user):
    provider.intent = {"connectUrl": "https://connect.provider.test/x"}

    with pytest.raises(ValidationError):
        consent_service.create_intent(db, ob_client, user)
    assert db.query(Consent).count() == 0


def test_callback_activates_consent_and_links_accounts(db, ob_client, provider, user, company):
    consent_service.create_intent(db, ob_client, user)

    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    consent = db.query(Consent).one()
    assert consent.consent_id == "consent-1"
    assert consent.status == ConsentStatus.ACTIVE
    assert consent.provider_name == "Blue Bank"
    assert consent.expires_at is not None

    account = db.query(BankAccount).one()
    assert account.provider_account_id == "acc-1"
    assert account.provider_consent_id == "consent-1"
    assert account.consent_status == ConsentStatus.ACTIVE
    assert account.iban == "BH67BLUE00001234567890"
    assert account.is_primary is False
    assert account.is_active is True
    assert account.sync_enabled is True
    assert consent.linked_account_ids == [account.id]
    assert result.warnings == []


def test_callback_consent_id_takes_precedence(db, ob_client, provider, user, company):
    provider.consent_details["consentId"] = "consent-from-callback"

    result = consent_service.resolve_callback(
        db, ob_client, user, "intent-1", "Authorised", callback_consent_id="consent-from-callback"
    )

    assert result.consent.consent_id == "consent-from-callback"


def test_callback_falls_back_to_intent_id_when_enrichment_fails(db, ob_client, provider, user, company):
    consent_service.create_intent(db, ob_client, user)
    provider.fail("/accountInformation/v1/intent/", 404, "not found")
    provider.fail("/consentInformation/v1/consents/", 500, "sandbox error")

    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    assert result.consent.consent_id == "intent-1"
    assert result.consent.status == ConsentStatus.ACTIVE
    assert result.consent.provider_id == "BLUE"
    assert result.consent.provider_name == "Blue Bank (Sandbox)"
    assert len(result.accounts) == 1


def test_callback_survives_html_and_list_enrichment_bodies(db, ob_client, provider, user, company):
    consent_service.create_intent(db, ob_client, user)
    provider.fail("/accountInformation/v1/intent/", 200, "<html>sandbox</html>")
    provider.consent_details = [{"consentId": "consent-1"}]
    provider.accounts = provider.accounts + ["not-an-account"]

    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL", "consent-1")

    assert result.consent.consent_id == "consent-1"
    assert result.consent.status == ConsentStatus.ACTIVE
    assert result.consent.provider_name == "Blue Bank (Sandbox)"
    assert [account.provider_account_id for account in result.accounts] == ["acc-1"]


def test_callback_survives_account_fetch_failure(db, ob_client, provider, user, company):
    provider.fail("/accountInformation/v2/accounts", 503, "try later")

    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    assert result.consent.status == ConsentStatus.ACTIVE
    assert result.accounts == []
    assert result.warnings


def test_callback_without_company_activates_but_links_nothing(db, ob_client, provider, user):
    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    assert result.consent.status == ConsentStatus.ACTIVE
    assert db.query(BankAccount).count() == 0
    assert result.warnings


def test_callback_is_idempotent(db, ob_client, provider, user, company):
    consent_service.create_intent(db, ob_client, user)

    consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")
    consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    assert db.query(Consent).count() == 1
    assert db.query(BankAccount).count() == 1


@pytest.mark.parametrize("status", ["FAILED", "Rejected"])
def test_failed_callback_status_is_rejected(db, ob_client, provider, user, status):
    with pytest.raises(ValidationError):
        consent_service.resolve_callback(db, ob_client, user, "intent-1", status)
    assert provider.requests == []


def test_callback_without_intent_is_rejected(db, ob_client, user):
    with pytest.raises(ValidationError):
        consent_service.resolve_callback(db, ob_client, user, None, "SUCCESSFUL")


def test_account_owned_by_another_user_is_not_relinked(db, ob_client, provider, user, company, make_account):
    make_account(provider_account_id="acc-1", user_id="someone-else")

    result = consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    assert result.accounts == []
    assert db.query(BankAccount).filter(BankAccount.user_id == USER_ID).count() == 0


def test_revoke_consent_stops_syncing_linked_accounts(db, ob_client, provider, user, company):
    consent_service.resolve_callback(db, ob_client, user, "intent-1", "SUCCESSFUL")

    consent = consent_service.revoke_consent(db, ob_client, user, "consent-1")

    assert consent.status == ConsentStatus.REVOKED
    assert consent.revoked_at is not None
    account = db.query(BankAccount).one()
    assert account.consent_status == ConsentStatus.REVOKED
    assert account.sync_enabled is False
    assert "/consentInformation/v1/consents/consent-1" in provider.paths("DELETE")


def test_revoke_unknown_consent_raises_not_found(db, ob_client, user):
    with pytest.raises(NotFound):
        consent_service.revoke_consent(db, ob_client, user, "missing")
