"""
Pydantic schemas for request/response validation.
All API endpoints should use these schemas instead of raw dicts.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# =============================================================================
# Connect / Consent Schemas
# =============================================================================

class ConnectResponse(BaseModel):
    """Schema for a started bank connection"""
    intent_id: str
    connect_url: Optional[str] = None
    region: str


class ConsentResponse(BaseModel):
    """Schema for consent response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    consent_id: str
    intent_id: Optional[str] = None
    provider_id: Optional[str] = None
    provider_name: Optional[str] = None
    region: Optional[str] = None
    status: str
    scope: Optional[List[str]] = None
    authorized_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    linked_account_ids: Optional[List[int]] = None


# =============================================================================
# Bank Account Schemas
# =============================================================================

class BankAccountResponse(BaseModel):
    """Schema for bank account response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_name: Optional[str] = None
    iban: Optional[str] = None
    swift_bic: Optional[str] = None
    account_currency: Optional[str] = None
    account_holder_name: Optional[str] = None
    is_primary: bool = False
    is_active: bool = True
    sync_enabled: bool = True
    provider_account_id: Optional[str] = None
    provider_id: Optional[str] = None
    provider_region: Optional[str] = None
    consent_status: Optional[str] = None
    last_sync_at: Optional[datetime] = None


class BalanceInfo(BaseModel):
    """Balance shown beside an account"""
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    type: Optional[str] = None
    source: str
    updated_at: Optional[datetime] = None


class AccountWithBalanceResponse(BaseModel):
    account: BankAccountResponse
    balance: Optional[BalanceInfo] = None
    balance_error: Optional[str] = None


# =============================================================================
# Sync Schemas
# =============================================================================

class SyncRequest(BaseModel):
    """Schema for triggering a sync"""
    account_id: Optional[int] = Field(None, ge=1, description="Sync only this account")
    from_date: Optional[date] = Field(None, description="Start of booking window")
    to_date: Optional[date] = Field(None, description="End of booking window")
    refresh: bool = Field(False, description="Force a live pull from the bank")

    @model_validator(mode="after")
    def validate_window(self):
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("from_date must not be after to_date")
        return self


class SyncErrorInfo(BaseModel):
    account_id: int
    error: str
    code: Optional[str] = None


class SyncResultResponse(BaseModel):
    """Schema for sync result response"""
    model_config = ConfigDict(from_attributes=True)

    success: bool
    total_accounts: int
    successful_syncs: int
    failed_syncs: int
    total_transactions: int
    new_transactions: int
    cancelled: bool = False
    errors: List[SyncErrorInfo] = []


class SyncLogResponse(BaseModel):
    """Schema for sync log response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_account_id: Optional[int] = None
    sync_type: str
    status: str
    records_fetched: Optional[int] = None
    records_created: Optional[int] = None
    records_updated: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


# =============================================================================
# Import Schemas
# =============================================================================

class StatementPeriod(BaseModel):
    from_date: Optional[date] = Field(None, alias="from")
    to_date: Optional[date] = Field(None, alias="to")

    model_config = ConfigDict(populate_by_name=True)


class StatementInfo(BaseModel):
    """Header metadata parsed from a statement"""
    bank_name: str
    account_number: Optional[str] = None
    iban: Optional[str] = None
    currency: Optional[str] = None
    swift_code: Optional[str] = None
    account_holder: Optional[str] = None
    statement_period: StatementPeriod
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    transaction_count: int


class ImportResponse(BaseModel):
    """Schema for statement import response"""
    import_id: Optional[int] = None
    bank_account_id: int
    imported: int
    skipped: int
    errors: List[str] = []
    statement: StatementInfo


class ImportHistoryResponse(BaseModel):
    """Schema for import history response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    bank_account_id: Optional[int] = None
    bank_name: Optional[str] = None
    iban: Optional[str] = None
    file_size: Optional[int] = None
    status: str
    records_imported: Optional[int] = None
    records_skipped: Optional[int] = None
    error_message: Optional[str] = None
    imported_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


# =============================================================================
# Transaction / Reconciliation Schemas
# =============================================================================

class TransactionResponse(BaseModel):
    """Schema for ledger transaction response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_account_id: int
    external_transaction_id: Optional[str] = None
    transaction_date: date
    booking_date: Optional[date] = None
    value_date: Optional[date] = None
    amount: Decimal
    currency: Optional[str] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    merchant_name: Optional[str] = None
    transaction_type: str
    category: Optional[str] = None
    balance_after: Optional[Decimal] = None
    matched_invoice_id: Optional[int] = None
    is_reconciled: bool
    reconciled_at: Optional[datetime] = None
    reconciled_by: Optional[str] = None
    reconciliation_notes: Optional[str] = None


class LedgerSummary(BaseModel):
    unreconciled_count: int
    unreconciled_credits: Decimal
    unreconciled_debits: Decimal
    oldest_unreconciled_date: Optional[date] = None


class TransactionListResponse(BaseModel):
    """Schema for paginated ledger response"""
    transactions: List[TransactionResponse]
    total: int
    limit: int
    offset: int
    summary: LedgerSummary


class ReconcileRequest(BaseModel):
    """Schema for reconciling a transaction; invoice_id null unlinks"""
    invoice_id: Optional[int] = Field(None, ge=1, description="Invoice ID, null to unreconcile")
    notes: Optional[str] = Field(None, max_length=1000, description="Reconciliation notes")

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v):
        if v is not None:
            v = v.strip()
            return v or None
        return v


class ReconcileResponse(BaseModel):
    success: bool
    transaction: TransactionResponse


# =============================================================================
# Invoice Schemas
# =============================================================================

class InvoiceResponse(BaseModel):
    """Schema for invoice response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    type: str
    status: str
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    total: Decimal
    currency: Optional[str] = None


class InvoiceSuggestion(BaseModel):
    invoice: InvoiceResponse
    exact_amount: bool
    reference_score: int = 0


# =============================================================================
# Common Response Schemas
# =============================================================================

class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    data: Optional[Dict[str, Any]] = None
