"""
Regional deployments of the Open Banking provider.

Each region has its own base URL and its own intent-request body. A region is
a small strategy object registered in REGIONS, so supporting another country
means adding one class here.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import settings
from ..models.consent import DEFAULT_SCOPES

DEFAULT_REGION = settings.OPEN_BANKING_DEFAULT_REGION


@dataclass
class IntentRequest:
    """Everything the provider needs to start a consent journey for one user"""
    customer_user_id: str
    first_name: str = "User"
    last_name: str = "ERP"
    email: str = "user@example.com"
    mobile_number: Optional[str] = None
    provider_id: Optional[str] = None
    identity_document: Optional[str] = None
    trading_name: str = "ERP Lite"
    legal_name: str = "ERP Lite"


class Region(ABC):
    """Base class for a provider deployment"""

    code: str = ""
    default_mobile: str = ""

    @abstractmethod
    def intent_body(self, request: IntentRequest, redirect_url: str) -> Dict[str, Any]:
        """Build the POST body for /accountInformation/v1/intent"""
        pass


class SimpleUserRegion(Region):
    """Regions that only need a user block and a redirect URL"""

    def intent_body(self, request: IntentRequest, redirect_url: str) -> Dict[str, Any]:
        return {
            "user": {
                "customerUserId": request.customer_user_id,
                "firstName": request.first_name or "User",
                "lastName": request.last_name or "ERP",
                "email": request.email or "user@example.com",
                "mobileNumber": int(request.mobile_number or self.default_mobile),
                "mobileType": "iOS",
            },
            "redirectUrl": redirect_url,
        }


class BahrainRegion(SimpleUserRegion):
    code = "BHR"
    default_mobile = "97312345678"


class SaudiRegion(SimpleUserRegion):
    code = "SAU"
    default_mobile = "966501234567"


class UAERegion(Region):
    """UAE requires an Emirates ID plus an explicit consent/purpose block"""

    code = "UAE"
    default_mobile = "971501234567"
    default_provider_id = "BLUE"

    def __init__(self, default_identity: str = "784-1234-1234567-1"):
        self.default_identity = default_identity

    def intent_body(self, request: IntentRequest, redirect_url: str) -> Dict[str, Any]:
        identity = request.identity_document or self.default_identity
        return {
            "user": {
                "customerUserId": request.customer_user_id,
                "firstName": request.first_name or "User",
                "lastName": request.last_name or "ERP",
                "mobileType": "ios",
                "mobileNumber": str(request.mobile_number or self.default_mobile),
                "userIdentifier": {"type": "EmiratesID", "value": identity},
            },
            "consent": {
                "flowType": "TARABUT_MANAGED",
                "providerId": request.provider_id or self.default_provider_id,
                "tppDetails": {
                    "purposeStatement": "ACCOUNT_AGGREGATION",
                    "tradingName": request.trading_name,
                    "legalName": request.legal_name,
                    "identifier": {"type": "EmiratesID", "value": identity},
                },
                "permissionsList": list(DEFAULT_SCOPES),
            },
            "redirectUrl": redirect_url,
        }


REGIONS: Dict[str, Region] = {
    "BHR": BahrainRegion(),
    "UAE": UAERegion(settings.UAE_DEFAULT_IDENTITY),
    "SAU": SaudiRegion(),
}


def resolve_region(value: Optional[str]) -> str:
    """Normalise a user-supplied region code, falling back to the default"""
    code = (value or "").strip().upper()
    return code if code in REGIONS else DEFAULT_REGION


def get_region(code: str) -> Region:
    return REGIONS[resolve_region(code)]
