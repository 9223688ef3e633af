from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt
from pydantic import BaseModel

from workshop_inventory.core.config import (
    ACCESS_TOKEN_COOKIE,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET,
)
from workshop_inventory.core.errors import AuthenticationError, ValidationError

SUPER_ADMIN = "super_admin"
SERVICE_ADMIN = "service_admin"

ADMIN_ROLES = frozenset({SERVICE_ADMIN, SUPER_ADMIN})
TECHNICIAN_ROLES = frozenset({"technician", "service_stuff", "service_technician"}) | ADMIN_ROLES


class CurrentUser(BaseModel):
    """Claims of a verified access token."""
    user_id: str
    email: Optional[str] = None
    role: str
    dealer_id: Optional[str] = None
    staff_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_technician(self) -> bool:
        return self.role in TECHNICIAN_ROLES

    def require_dealer(self) -> str:
        if not self.dealer_id:
            raise ValidationError("Dealer context required")
        return self.dealer_id


def create_access_token(
    user_id: str,
    role: str,
    dealer_id: Optional[str] = None,
    email: Optional[str] = None,
    staff_id: Optional[str] = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    payload = {
        "userId": user_id,
        "email": email,
        "role": role,
        "dealerId": dealer_id,
        "staffId": staff_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    """Verify and decode a JWT access token."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    if not payload.get("userId") or not payload.get("role"):
        raise AuthenticationError("Invalid token structure")

    return CurrentUser(
        user_id=payload["userId"],
        email=payload.get("email"),
        role=payload["role"],
        dealer_id=payload.get("dealerId"),
        staff_id=payload.get("staffId"),
    )


def extract_token(authorization: Optional[str], cookies) -> Optional[str]:
    # Bearer header wins, the portal cookie is the fallback
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return cookies.get(ACCESS_TOKEN_COOKIE)


def get_current_user(request: Request) -> CurrentUser:
    token = extract_token(request.headers.get("authorization"), request.cookies)
    if not token:
        raise AuthenticationError("Unauthorized")
    return decode_access_token(token)
