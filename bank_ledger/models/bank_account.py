from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..database import Base


class ConsentStatus:
    NONE = "none"
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    bank_name = Column(String)  # e.g., "Ithmaar Bank"
    iban = Column(String)  # unique per user, NULL for provider accounts without one
    swift_bic = Column(String)
    account_currency = Column(String, default="BHD")
    account_holder_name = Column(String)
    is_primary = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)  # soft delete
    sync_enabled = Column(Boolean, default=True)

    # Open Banking linkage
    provider_account_id = Column(String, unique=True, index=True)
    provider_consent_id = Column(String, index=True)
    provider_id = Column(String)
    provider_region = Column(String, default="BHR")  # BHR, UAE, SAU
    consent_status = Column(String, default=ConsentStatus.NONE)  # none, active, expired, revoked
    consent_expires_at = Column(DateTime(timezone=True))
    last_sync_at = Column(DateTime(timezone=True))

    # Manually-maintained balance (statement imports)
    current_balance = Column(Numeric(15, 3))
    opening_balance = Column(Numeric(15, 3))
    balance_currency = Column(String)
    balance_updated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint('user_id', 'iban', name='uix_user_iban'),
    )

    @property
    def is_provider_linked(self) -> bool:
        return bool(self.provider_account_id and self.provider_consent_id)
