import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/bank_ledger.db")
    DATABASE_PATH = Path("./data/bank_ledger.db")

    # API Settings
    API_V1_STR = "/api"
    PROJECT_NAME = "Bank Ledger"

    # Open Banking provider (Tarabut Gateway)
    OPEN_BANKING_CLIENT_ID = os.getenv("OPEN_BANKING_CLIENT_ID", "")
    OPEN_BANKING_CLIENT_SECRET = os.getenv("OPEN_BANKING_CLIENT_SECRET", "")
    OPEN_BANKING_REDIRECT_URI = os.getenv("OPEN_BANKING_REDIRECT_URI", "http://localhost:8000/api/bank/callback")
    OPEN_BANKING_TOKEN_URL = os.getenv("OPEN_BANKING_TOKEN_URL", "https://oauth.tarabutgateway.io/sandbox/token")
    OPEN_BANKING_BASE_URLS = {
        "BHR": os.getenv("OPEN_BANKING_URL_BHR", "https://api.sandbox.tarabutgateway.io"),
        "UAE": os.getenv("OPEN_BANKING_URL_UAE", "https://api.uae.sandbox.tarabutgateway.io"),
        "SAU": os.getenv("OPEN_BANKING_URL_SAU", "https://api.sau.sandbox.tarabutgateway.io"),
    }
    OPEN_BANKING_DEFAULT_REGION = os.getenv("OPEN_BANKING_DEFAULT_REGION", "BHR")
    OPEN_BANKING_TIMEOUT = float(os.getenv("OPEN_BANKING_TIMEOUT", "30"))

    # Intent defaults
    TPP_TRADING_NAME = os.getenv("TPP_TRADING_NAME", "ERP Lite")
    TPP_LEGAL_NAME = os.getenv("TPP_LEGAL_NAME", "ERP Lite")
    UAE_DEFAULT_IDENTITY = os.getenv("UAE_DEFAULT_IDENTITY", "784-1234-1234567-1")
    DEFAULT_PROVIDER_ID = os.getenv("DEFAULT_PROVIDER_ID", "BLUE")
    DEFAULT_PROVIDER_NAME = os.getenv("DEFAULT_PROVIDER_NAME", "Blue Bank (Sandbox)")

    # Sync settings
    SYNC_DEFAULT_WINDOW_DAYS = int(os.getenv("SYNC_DEFAULT_WINDOW_DAYS", "90"))
    SYNC_MAX_WORKERS = int(os.getenv("SYNC_MAX_WORKERS", "4"))
    AUTO_RECONCILE_LIMIT = int(os.getenv("AUTO_RECONCILE_LIMIT", "50"))

    # Reconciliation
    RECONCILE_REQUIRE_EXACT_AMOUNT = _env_bool("RECONCILE_REQUIRE_EXACT_AMOUNT", False)

    # Statement import
    MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB
    SUPPORTED_STATEMENT_EXTENSIONS = (".xlsx", ".xls")

    # Application settings
    DEFAULT_CURRENCY = "BHD"
    FRONTEND_BANK_PAGE = os.getenv("FRONTEND_BANK_PAGE", "/bank")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # text or json

    def __init__(self):
        # Ensure the SQLite data directory exists
        if self.DATABASE_URL.startswith("sqlite:///./"):
            self.DATABASE_PATH.parent.mkdir(exist_ok=True)


settings = Settings()
