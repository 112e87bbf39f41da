import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt

from .config import JWT_ALGORITHM, JWT_SECRET
from .models import OWNER_TYPES, ROLE_ADMIN, ROLE_CLINIC, ROLE_THERAPIST

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

VALID_ROLES = (ROLE_ADMIN, ROLE_CLINIC, ROLE_THERAPIST)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by the identity service"""

    id: str
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def create_access_token(
    user_id: str, role: str, email: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed access token

    Tokens are normally minted by the identity service; this helper exists for
    service-to-service calls and local tooling.
    """
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=1))
    to_encode: dict[str, Any] = {"sub": user_id, "role": role, "email": email, "exp": expire}
    return jose_jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """Verify a bearer token and build the principal from its claims"""
    try:
        payload = jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ JWT verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e

    user_id = payload.get("sub")
    role = (payload.get("role") or payload.get("userType") or "").upper()
    email = payload.get("email") or ""

    if not user_id or role not in VALID_ROLES:
        logger.error(f"❌ Token missing required claims. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    return Principal(id=str(user_id), role=role, email=email)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """Get the authenticated principal from the bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    principal = decode_access_token(credentials.credentials)
    logger.debug(f"✅ Principal authenticated: {principal.role} {principal.id}")
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Allow only admin accounts"""
    if not principal.is_admin:
        logger.warning(f"⚠️ {principal.role} {principal.id} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


async def require_account_holder(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Allow only clinic and therapist accounts"""
    if principal.role not in OWNER_TYPES:
        raise HTTPException(
            status_code=403, detail="Only clinic and therapist accounts can access this resource"
        )
    return principal
