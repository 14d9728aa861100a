from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..database import Base


class SyncLog(Base):
    """Append-only audit of one sync attempt. Never touched after completed_at is set."""
    __tablename__ = "bank_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), index=True)
    sync_type = Column(String, nullable=False, default="transactions")  # transactions, balances, accounts
    status = Column(String, nullable=False, default="started")  # started, success, error
    records_fetched = Column(Integer, default=0)
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    error_code = Column(String)
    error_message = Column(String)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))
    duration_ms = Column(Integer)
    request_data = Column(JSON)

    # Relationships
    bank_account = relationship("BankAccount")
