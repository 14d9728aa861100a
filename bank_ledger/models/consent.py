from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from ..database import Base

DEFAULT_SCOPES = [
    "ReadAccountsBasic",
    "ReadAccountsDetail",
    "ReadBalances",
    "ReadTransactionsBasic",
    "ReadTransactionsDetail",
]


class Consent(Base):
    __tablename__ = "consents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    intent_id = Column(String, nullable=False, index=True)  # intent that started the grant
    consent_id = Column(String, nullable=False, unique=True)  # provider consent id, intent id until resolved
    provider_id = Column(String, nullable=False)
    provider_name = Column(String)
    region = Column(String, default="BHR")
    status = Column(String, default="pending")  # pending, active, expired, revoked
    scope = Column(JSON)
    authorized_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))
    revoked_at = Column(DateTime(timezone=True))
    linked_account_ids = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
