"""
Open Banking (Tarabut Gateway) API client.

One instance per process, injected where needed. It owns the OAuth token
cache and the per-region base URLs. It never retries: callers decide what to
do with AuthError and ProtocolError.
"""
import logging
import threading
import time
from typing import Any, Dict, Iterator, List, Optional

import httpx

from ..config import settings
from ..exceptions import AuthError, ProtocolError
from .regions import DEFAULT_REGION, IntentRequest, get_region, resolve_region

logger = logging.getLogger(__name__)

# Refresh the token this many seconds before the provider says it expires
TOKEN_REFRESH_MARGIN = 300
DEFAULT_TOKEN_LIFETIME = 3600
CUSTOMER_USER_HEADER = "X-TG-CustomerUserId"
MAX_TRANSACTION_PAGES = 100


class OpenBankingClient:
    """Client for the provider's account-information and consent APIs"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        base_urls: Dict[str, str],
        redirect_uri: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock=time.monotonic,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.base_urls = dict(base_urls)
        self.redirect_uri = redirect_uri
        self._http = httpx.Client(timeout=timeout, transport=transport)
        self._clock = clock

        # Single cache entry: credentials are client-level, not per end user
        self._token_lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @classmethod
    def from_settings(cls, transport: Optional[httpx.BaseTransport] = None) -> "OpenBankingClient":
        return cls(
            client_id=settings.OPEN_BANKING_CLIENT_ID,
            client_secret=settings.OPEN_BANKING_CLIENT_SECRET,
            token_url=settings.OPEN_BANKING_TOKEN_URL,
            base_urls=settings.OPEN_BANKING_BASE_URLS,
            redirect_uri=settings.OPEN_BANKING_REDIRECT_URI,
            timeout=settings.OPEN_BANKING_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    # =========================================================================
    # Authentication
    # =========================================================================

    def get_access_token(self, customer_user_id: str) -> str:
        """
        Return a bearer token, exchanging client credentials when the cached
        one is missing or within TOKEN_REFRESH_MARGIN of expiry.

        The lock makes the refresh single-flight: concurrent callers wait for
        the first refresh and then reuse its token.
        """
        with self._token_lock:
            if self._access_token and self._clock() < self._token_expires_at:
                return self._access_token

            logger.info("Requesting Open Banking access token")
            try:
                response = self._http.post(
                    self.token_url,
                    headers={CUSTOMER_USER_HEADER: customer_user_id},
                    json={
                        "clientId": self.client_id,
                        "clientSecret": self.client_secret,
                        "grantType": "client_credentials",
                    },
                )
            except httpx.RequestError as e:
                raise AuthError(f"Token request failed: {e}") from e

            if not response.is_success:
                logger.error("Token request rejected: %s %s", response.status_code, response.text)
                raise AuthError(f"Failed to get access token: {response.status_code} {response.text}")

            data = response.json()
            token = data.get("accessToken")
            if not token:
                raise AuthError("Token response did not contain an access token")

            expires_in = int(data.get("expiresIn") or DEFAULT_TOKEN_LIFETIME)
            self._access_token = token
            self._token_expires_at = self._clock() + max(expires_in - TOKEN_REFRESH_MARGIN, 0)
            return token

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._access_token = None
            self._token_expires_at = 0.0

    # =========================================================================
    # Transport
    # =========================================================================

    def base_url(self, region: Optional[str]) -> str:
        return self.base_urls[resolve_region(region)]

    def request(
        self,
        method: str,
        endpoint: str,
        customer_user_id: str,
        region: Optional[str] = DEFAULT_REGION,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue an authenticated call against a region and return the decoded body"""
        token = self.get_access_token(customer_user_id)
        url = f"{self.base_url(region)}{endpoint}"
        headers = {
            "Authorization": f"Bearer {token}",
            CUSTOMER_USER_HEADER: customer_user_id,
        }

        logger.info("Open Banking request: %s %s", method, url)
        try:
            response = self._http.request(method, url, headers=headers, params=params, json=json)
        except httpx.RequestError as e:
            raise ProtocolError(0, str(e), endpoint) from e

        if not response.is_success:
            logger.error("Open Banking error (%s): %s %s", endpoint, response.status_code, response.text)
            raise ProtocolError(response.status_code, response.text, endpoint)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            # Sandbox gateways sometimes answer 200 with an HTML page
            logger.error("Open Banking returned a non-JSON body (%s): %s", endpoint, response.text[:200])
            raise ProtocolError(response.status_code, response.text, endpoint) from e

    # =========================================================================
    # Providers and intents
    # =========================================================================

    def get_providers(self, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request("GET", "/v1/providers", customer_user_id, region)
        return _items(data, "providers")

    def create_intent(self, intent: IntentRequest, region: str = DEFAULT_REGION) -> Dict[str, Any]:
        """Start a consent journey. The response carries intentId and connectUrl."""
        body = get_region(region).intent_body(intent, self.redirect_uri)
        logger.info("Creating intent for region %s", resolve_region(region))
        return self.request(
            "POST", "/accountInformation/v1/intent", intent.customer_user_id, region, json=body
        )

    def get_intent(self, intent_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> Dict[str, Any]:
        return self.request("GET", f"/accountInformation/v1/intent/{intent_id}", customer_user_id, region)

    # =========================================================================
    # Accounts and balances
    # =========================================================================

    def get_accounts(self, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request("GET", "/accountInformation/v2/accounts", customer_user_id, region)
        return _items(data, "accounts")

    def get_account(self, account_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> Dict[str, Any]:
        return self.request("GET", f"/accountInformation/v2/accounts/{account_id}", customer_user_id, region)

    def get_balances(self, account_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request(
            "GET", f"/accountInformation/v2/accounts/{account_id}/balances", customer_user_id, region
        )
        return _items(data, "balances")

    def refresh_balances(self, account_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request(
            "GET", f"/accountInformation/v2/accounts/{account_id}/balances/refresh", customer_user_id, region
        )
        return _items(data, "balances")

    # =========================================================================
    # Transactions
    # =========================================================================

    def get_transactions(
        self,
        account_id: str,
        customer_user_id: str,
        from_booking: Optional[str] = None,
        to_booking: Optional[str] = None,
        page: Optional[str] = None,
        region: str = DEFAULT_REGION,
    ) -> Dict[str, Any]:
        """One page of cached, date-filtered transactions (raw response)"""
        params = {}
        if from_booking:
            params["fromBookingDateTime"] = from_booking
        if to_booking:
            params["toBookingDateTime"] = to_booking
        if page:
            params["page"] = page
        data = self.request(
            "GET",
            f"/accountInformation/v2/accounts/{account_id}/transactions",
            customer_user_id,
            region,
            params=params or None,
        )
        if isinstance(data, list):
            return {"transactions": data}
        return data if isinstance(data, dict) else {}

    def iter_transactions(
        self,
        account_id: str,
        customer_user_id: str,
        from_booking: Optional[str] = None,
        to_booking: Optional[str] = None,
        region: str = DEFAULT_REGION,
    ) -> Iterator[Dict[str, Any]]:
        """Yield every transaction in the window, following the page cursor"""
        page = None
        seen_pages = set()
        for _ in range(MAX_TRANSACTION_PAGES):
            data = self.get_transactions(account_id, customer_user_id, from_booking, to_booking, page, region)
            yield from data.get("transactions") or []

            next_page = _next_page(data)
            if not next_page or next_page in seen_pages:
                return
            seen_pages.add(next_page)
            page = next_page
        logger.warning("Stopped paging transactions for %s after %d pages", account_id, MAX_TRANSACTION_PAGES)

    def get_raw_transactions(self, account_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request(
            "GET", f"/accountInformation/v2/accounts/{account_id}/rawtransactions", customer_user_id, region
        )
        return _items(data, "transactions")

    def refresh_transactions(self, account_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        """Force a live pull from the bank"""
        data = self.request(
            "GET", f"/accountInformation/v2/accounts/{account_id}/rawtransactions/refresh", customer_user_id, region
        )
        return _items(data, "transactions")

    # =========================================================================
    # Consents
    # =========================================================================

    def get_consents(self, customer_user_id: str, region: str = DEFAULT_REGION) -> List[Dict[str, Any]]:
        data = self.request("GET", "/consentInformation/v1/consents", customer_user_id, region)
        return _items(data, "consents")

    def get_consent(self, consent_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> Dict[str, Any]:
        return self.request("GET", f"/consentInformation/v1/consents/{consent_id}", customer_user_id, region)

    def revoke_consent(self, consent_id: str, customer_user_id: str, region: str = DEFAULT_REGION) -> None:
        self.request("DELETE", f"/consentInformation/v1/consents/{consent_id}", customer_user_id, region)

    def create_consent_dashboard(self, intent: IntentRequest, region: str = DEFAULT_REGION) -> str:
        """URL of the provider page where the user manages all their consents"""
        body = {
            "user": {
                "customerUserId": intent.customer_user_id,
                "firstName": intent.first_name,
                "lastName": intent.last_name,
                "email": intent.email,
            },
            "redirectUrl": self.redirect_uri,
        }
        data = self.request("POST", "/consentInformation/v1/dashboard", intent.customer_user_id, region, json=body)
        return data.get("dashboardUrl") if isinstance(data, dict) else None


def _next_page(data: Dict[str, Any]) -> Optional[str]:
    if data.get("nextPage"):
        return str(data["nextPage"])
    meta = data.get("meta") or {}
    page, total = meta.get("page"), meta.get("totalPages")
    if page is not None and total is not None and int(page) < int(total):
        return str(int(page) + 1)
    return None


def _items(data: Any, key: str) -> List[Any]:
    """List payloads come either bare or wrapped as {key: [...]}"""
    if isinstance(data, dict):
        data = data.get(key)
    return data if isinstance(data, list) else []
