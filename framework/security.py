from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from framework.config import settings

# Tokens are issued by the external auth service; this app only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

# --- Core models ---

class CurrentUser(BaseModel):
    """Current logged-in user context"""
    id: int
    email: Optional[str] = None
    tenant_id: int
    role: str

# --- FastAPI dependencies ---

def get_token_from_request(
    request: Request,
    token_from_header: Optional[str] = Depends(oauth2_scheme)
) -> Optional[str]:
    """
    Get token from request: prefer cookie, then Authorization header.
    """
    token = request.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)

    if not token and token_from_header:
        token = token_from_header

    return token

def get_current_user(
    token: Optional[str] = Depends(get_token_from_request)
) -> CurrentUser:
    """
    Dependency: validate token and extract user. The token's tenant_id is the active tenant.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("user_id")
    tenant_id = payload.get("tenant_id")
    if user_id is None or tenant_id is None:
        raise credentials_exception

    return CurrentUser(
        id=user_id,
        email=payload.get("sub"),
        tenant_id=tenant_id,
        role=payload.get("role") or "member",
    )
