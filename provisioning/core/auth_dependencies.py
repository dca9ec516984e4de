"""
FastAPI dependencies for JWT authentication and role checks.
"""
import jwt
from fastapi import Depends, Header, HTTPException, status
from typing import Optional
from provisioning.core import config

COLLEGE_ADMIN = "COLLEGE_ADMIN"
SYSTEM = "SYSTEM"


class Principal:
    """Authenticated caller taken from the token claims."""

    def __init__(self, user_id: str, tenant_id: Optional[str], role: Optional[str], email: Optional[str] = None):
        self.user_id = user_id
        self.tenant_id = tenant_id
        self.role = role
        self.email = email

    def __repr__(self):
        return f"Principal(user_id={self.user_id}, tenant_id={self.tenant_id}, role={self.role})"


def verify_token(authorization: Optional[str] = Header(None)) -> Principal:
    """
    Verify JWT token from Authorization header.

    Args:
        authorization: Authorization header value (Bearer <token>)

    Returns:
        Principal built from the sub, tenant_id, role and email claims

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    if not authorization.startswith('Bearer '):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    token = authorization[7:]

    try:
        payload = jwt.decode(token, config.settings.jwt_secret, algorithms=[config.settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    user_id = payload.get('sub')
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    return Principal(
        user_id=user_id,
        tenant_id=payload.get('tenant_id'),
        role=payload.get('role'),
        email=payload.get('email')
    )


def require_role(*roles: str):
    """Build a dependency that admits only callers holding one of ``roles``."""

    def checker(principal: Principal = Depends(verify_token)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        if principal.role == COLLEGE_ADMIN and not principal.tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Token is not bound to a tenant"
            )
        return principal

    return checker
