"""
Error taxonomy for the bank ledger engine.

Services raise these; routers translate them to HTTP responses through
`to_http_exception`. Nothing here is fatal to the process.
"""
from typing import Optional

from fastapi import HTTPException

EXPIRY_MARKER = "expired"
AUTH_FAILURE_STATUSES = (401, 403)


class BankLedgerError(Exception):
    """Base class for every error raised by this package"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(BankLedgerError):
    """Caller (or the client credentials) could not be authenticated"""

    status_code = 401


class ProtocolError(BankLedgerError):
    """The Open Banking provider rejected a call"""

    status_code = 502

    def __init__(self, status_code: int, body: str, endpoint: Optional[str] = None):
        self.http_status = status_code
        self.body = body
        self.endpoint = endpoint
        super().__init__(f"Provider API error: {status_code} {body}")

    @property
    def is_auth_failure(self) -> bool:
        return is_auth_failure(self)


class ConsentExpired(ProtocolError):
    """The consent behind a provider call is no longer valid"""

    status_code = 409


class NotFound(BankLedgerError):
    """Entity missing or not owned by the requesting tenant"""

    status_code = 404


class SetupRequired(BankLedgerError):
    """Tenant/company context has not been created yet"""

    status_code = 400


class ParseError(BankLedgerError):
    """A spreadsheet cell, date or amount could not be interpreted"""

    status_code = 400


class ValidationError(BankLedgerError):
    """Malformed request"""

    status_code = 400


def is_auth_failure(error: Exception) -> bool:
    """True when an error means the consent must be downgraded to expired."""
    if isinstance(error, ProtocolError) and error.http_status in AUTH_FAILURE_STATUSES:
        return True
    return EXPIRY_MARKER in str(error).lower()


def as_consent_expired(error: ProtocolError) -> ProtocolError:
    """Map an auth-failure ProtocolError to ConsentExpired, else return it unchanged."""
    if isinstance(error, ConsentExpired) or not error.is_auth_failure:
        return error
    return ConsentExpired(error.http_status, error.body, error.endpoint)


def to_http_exception(error: BankLedgerError) -> HTTPException:
    """Translate a domain error into the HTTPException a router should raise"""
    return HTTPException(status_code=error.status_code, detail=error.message)
