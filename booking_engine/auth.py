import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .security_utils import verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ROLE_CLIENT = "client"
ROLE_PROVIDER = "provider"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    subject: str
    role: str


def _decode_identity(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[Identity]:
    if credentials is None:
        return None

    payload = verify_jwt_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in (ROLE_CLIENT, ROLE_PROVIDER, ROLE_ADMIN):
        logger.warning(f"Token missing sub/role claims: role={role}")
        raise HTTPException(status_code=401, detail="Token is missing identity claims")

    return Identity(subject=str(subject), role=role)


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Identity]:
    """Identity when a bearer token was sent, None for anonymous callers"""
    return _decode_identity(credentials)


async def get_current_client_id(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> str:
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if identity.role != ROLE_CLIENT:
        raise HTTPException(status_code=403, detail="Client account required")
    return identity.subject


async def get_current_provider_id(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> int:
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if identity.role != ROLE_PROVIDER:
        raise HTTPException(status_code=403, detail="Provider account required")
    try:
        return int(identity.subject)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid provider token")


async def get_current_admin_id(
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> str:
    """Staff tokens only; used for account flags providers may not set themselves"""
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if identity.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin account required")
    return identity.subject
