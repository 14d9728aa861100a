from .company import Company
from .bank_account import BankAccount, ConsentStatus
from .bank_transaction import BankTransaction, TransactionType
from .consent import Consent, DEFAULT_SCOPES
from .sync_log import SyncLog
from .invoice import Invoice, InvoiceStatus
from .import_history import ImportHistory

__all__ = [
    "Company",
    "BankAccount",
    "ConsentStatus",
    "BankTransaction",
    "TransactionType",
    "Consent",
    "DEFAULT_SCOPES",
    "SyncLog",
    "Invoice",
    "InvoiceStatus",
    "ImportHistory",
]
