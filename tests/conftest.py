"""
Shared fixtures: an in-memory database, a fake Open Banking provider served
through httpx.MockTransport, and an API client wired to both.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import json
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bank_ledger import models  # noqa: F401  (registers tables)
from bank_ledger.database import Base, get_db
from bank_ledger.dependencies import get_open_banking_client
from bank_ledger.identity import UserContext
from bank_ledger.models import BankAccount, BankTransaction, Company, ConsentStatus, Invoice
from bank_ledger.services.open_banking import OpenBankingClient

USER_ID = "user-1"
BASE_URLS = {
    "BHR": "https://bhr.provider.test",
    "UAE": "https://uae.provider.test",
    "SAU": "https://sau.provider.test",
}
TOKEN_URL = "https://auth.provider.test/token"
REDIRECT_URI = "https://erp.test/api/bank/callback"


def provider_tx(
    transaction_id: str,
    value: str,
    indicator: str = "Credit",
    booked: str = "2026-02-04T10:00:00Z",
    **extra: Any,
) -> Dict[str, Any]:
    tx = {
        "transactionId": transaction_id,
        "amount": {"value": value, "currency": "BHD"},
        "creditDebitIndicator": indicator,
        "bookingDateTime": booked,
        "transactionInformation": f"Transfer {transaction_id}",
    }
    tx.update(extra)
    return tx


class FakeProvider:
    """Just enough of the provider API for the client, consent and sync flows"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_requests = 0
        self.token_status = 200
        self.expires_in = 3600
        self.intent = {"intentId": "intent-1", "connectUrl": "https://connect.provider.test/intent-1"}
        self.intent_details: Dict[str, Any] = {"intentId": "intent-1", "consentId": "consent-1"}
        self.consent_details: Dict[str, Any] = {
            "consentId": "consent-1",
            "providerId": "BLUE",
            "providerName": "Blue Bank",
            "expiresAt": "2027-02-04T00:00:00Z",
        }
        self.accounts: List[Dict[str, Any]] = [
            {"accountId": "acc-1", "iban": "BH67BLUE00001234567890", "currency": "BHD", "bic": "BLUEBHBM", "nickname": "Current"},
        ]
        self.transactions: Dict[str, List[Dict[str, Any]]] = {"acc-1": []}
        self.pages: Dict[str, List[Dict[str, Any]]] = {}
        self.balances: Dict[str, List[Dict[str, Any]]] = {
            "acc-1": [{"type": "InterimAvailable", "amount": {"value": "1250.500", "currency": "BHD"}}],
        }
        # path fragment -> (status, body)
        self.failures: Dict[str, Tuple[int, str]] = {}

    def fail(self, fragment: str, status: int, body: str = "error") -> None:
        self.failures[fragment] = (status, body)

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if str(request.url).startswith(TOKEN_URL):
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="invalid_client")
            return httpx.Response(200, json={"accessToken": f"token-{self.token_requests}", "expiresIn": self.expires_in})

        for fragment, (status, body) in self.failures.items():
            if fragment in path:
                return httpx.Response(status, text=body)

        parts = path.strip("/").split("/")
        if path == "/accountInformation/v1/intent":
            return httpx.Response(200, json=self.intent)
        if path.startswith("/accountInformation/v1/intent/"):
            return httpx.Response(200, json=self.intent_details)
        if path == "/accountInformation/v2/accounts":
            return httpx.Response(200, json={"accounts": self.accounts})
        if path.startswith("/accountInformation/v2/accounts/"):
            account_id = parts[3]
            if path.endswith("/transactions"):
                if account_id in self.pages:
                    page = request.url.params.get("page", "1")
                    return httpx.Response(200, json=self.pages[account_id][int(page) - 1])
                return httpx.Response(200, json={"transactions": self.transactions.get(account_id, [])})
            if path.endswith("/rawtransactions/refresh") or path.endswith("/rawtransactions"):
                return httpx.Response(200, json={"transactions": self.transactions.get(account_id, [])})
            if "/balances" in path:
                return httpx.Response(200, json={"balances": self.balances.get(account_id, [])})
            return httpx.Response(200, json={"accountId": account_id})
        if path == "/v1/providers":
            return httpx.Response(200, json={"providers": [{"providerId": "BLUE", "name": "Blue Bank"}]})
        if path.startswith("/consentInformation/v1/consents/"):
            if request.method == "DELETE":
                return httpx.Response(204)
            return httpx.Response(200, json=self.consent_details)
        if path == "/consentInformation/v1/consents":
            return httpx.Response(200, json={"consents": [self.consent_details]})
        if path == "/consentInformation/v1/dashboard":
            return httpx.Response(200, json={"dashboardUrl": "https://dashboard.provider.test"})
        return httpx.Response(404, text="not found")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def ob_client(provider):
    client = OpenBankingClient(
        client_id="client-id",
        client_secret="client-secret",
        token_url=TOKEN_URL,
        base_urls=BASE_URLS,
        redirect_uri=REDIRECT_URI,
        transport=httpx.MockTransport(provider),
    )
    yield client
    client.close()


@pytest.fixture
def user():
    return UserContext(user_id=USER_ID, full_name="Fatima Al Khalifa", email="fatima@example.com")


@pytest.fixture
def company(db):
    company = Company(user_id=USER_ID, name="Gulf Consulting W.L.L")
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def make_invoice(db):
    def _make(number: str, total: str, status: str = "sent", type: str = "outbound",
              currency: str = "BHD", user_id: str = USER_ID, **fields) -> Invoice:
        invoice = Invoice(
            user_id=user_id,
            invoice_number=number,
            type=type,
            status=status,
            total=Decimal(total),
            currency=currency,
            due_date=fields.pop("due_date", date(2026, 2, 28)),
            **fields,
        )
        db.add(invoice)
        db.commit()
        return invoice
    return _make


@pytest.fixture
def make_account(db, company):
    def _make(provider_account_id: Optional[str] = "acc-1", user_id: str = USER_ID, **fields) -> BankAccount:
        linked = provider_account_id is not None
        values = dict(
            user_id=user_id,
            company_id=company.id,
            bank_name="Blue Bank",
            account_currency="BHD",
            is_active=True,
            sync_enabled=linked,
            provider_account_id=provider_account_id,
            provider_consent_id="consent-1" if linked else None,
            provider_id="BLUE" if linked else None,
            provider_region="BHR",
            consent_status=ConsentStatus.ACTIVE if linked else ConsentStatus.NONE,
        )
        values.update(fields)
        account = BankAccount(**values)
        db.add(account)
        db.commit()
        return account
    return _make


@pytest.fixture
def make_transaction(db):
    def _make(account: BankAccount, amount: str, description: str = "Payment",
              transaction_date: date = date(2026, 2, 4), **fields) -> BankTransaction:
        value = Decimal(amount)
        tx = BankTransaction(
            bank_account_id=account.id,
            user_id=account.user_id,
            transaction_date=transaction_date,
            amount=value,
            currency=fields.pop("currency", "BHD"),
            description=description,
            transaction_type="credit" if value > 0 else "debit",
            is_reconciled=fields.pop("is_reconciled", False),
            **fields,
        )
        db.add(tx)
        db.commit()
        return tx
    return _make


@pytest.fixture
def api(db, ob_client):
    from bank_ledger.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_open_banking_client] = lambda: ob_client
    client = TestClient(app, headers={
        "X-User-Id": USER_ID,
        "X-User-Name": "Fatima Al Khalifa",
        "X-User-Email": "fatima@example.com",
    })
    yield client
    app.dependency_overrides.clear()


def read_json_body(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode())
