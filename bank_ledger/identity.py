"""
Request identity.

Authentication happens upstream; the session layer forwards the signed-in
user in headers. This module only reads them.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from .models.company import Company


@dataclass
class UserContext:
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None

    def split_name(self) -> Tuple[str, str]:
        """First word is the first name, the rest (or "User") the last name"""
        first, _, rest = (self.full_name or self.email or "User").strip().partition(" ")
        return first or "User", rest.strip() or "User"


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> UserContext:
    """Dependency to get the authenticated user"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return UserContext(user_id=x_user_id, full_name=x_user_name, email=x_user_email)


def get_company(db: Session, user_id: str) -> Optional[Company]:
    """The user's tenant, if company settings have been created"""
    return db.query(Company).filter(Company.user_id == user_id).first()
