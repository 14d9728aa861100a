from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Date, Boolean, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..database import Base


class TransactionType:
    CREDIT = "credit"
    DEBIT = "debit"


class BankTransaction(Base):
    __tablename__ = "bank_transactions"

    id = Column(Integer, primary_key=True, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    external_transaction_id = Column(String)  # provider id, NULL for imported rows
    transaction_date = Column(Date, nullable=False, index=True)
    booking_date = Column(Date)
    value_date = Column(Date)
    amount = Column(Numeric(15, 3), nullable=False)  # positive = credit, negative = debit
    currency = Column(String, default="BHD")
    description = Column(String)
    reference = Column(String)
    merchant_name = Column(String)
    transaction_type = Column(String, nullable=False)  # credit, debit
    category = Column(String)
    balance_after = Column(Numeric(15, 3))

    # Reconciliation (the only mutable part of a transaction)
    matched_invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), index=True)
    is_reconciled = Column(Boolean, default=False, nullable=False)
    reconciled_at = Column(DateTime(timezone=True))
    reconciled_by = Column(String)
    reconciliation_notes = Column(String)

    raw_data = Column(JSON)  # provider payload for audit
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bank_account = relationship("BankAccount")
    matched_invoice = relationship("Invoice")

    __table_args__ = (
        UniqueConstraint('bank_account_id', 'external_transaction_id', name='uix_account_external_tx'),
        Index('ix_bank_transactions_dedup', 'bank_account_id', 'transaction_date', 'amount'),
        Index('ix_bank_transactions_unreconciled', 'user_id', 'is_reconciled'),
    )
