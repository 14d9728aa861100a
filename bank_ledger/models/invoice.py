from sqlalchemy import Column, Integer, String, DateTime, Numeric, Date, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class InvoiceStatus:
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    OPEN = (SENT, OVERDUE)


class Invoice(Base):
    """Invoice as seen by reconciliation. CRUD lives in the invoicing module."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    invoice_number = Column(String, nullable=False)
    type = Column(String, nullable=False)  # inbound, outbound
    status = Column(String, nullable=False, default=InvoiceStatus.DRAFT)
    issue_date = Column(Date)
    due_date = Column(Date)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String, default="BHD")
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'invoice_number', name='uix_user_invoice_number'),
    )
