from fastapi import Request

from .services.open_banking import OpenBankingClient


def get_open_banking_client(request: Request) -> OpenBankingClient:
    """Dependency to get the process-wide Open Banking client"""
    return request.app.state.open_banking
