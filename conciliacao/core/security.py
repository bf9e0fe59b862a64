# conciliacao/core/security.py
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from conciliacao.constants import UserRole
from conciliacao.core.exceptions import AuthenticationError
from conciliacao.database import get_db

logger = logging.getLogger(__name__)

load_dotenv()

# Environment variables for JWT
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

if SECRET_KEY is None:
    raise ValueError("SECRET_KEY environment variable is not set.")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v2/login", auto_error=False)


class TokenData(BaseModel):
    email: Optional[str] = None
    user_id: Optional[int] = None
    role: Optional[UserRole] = None
    org_id: Optional[int] = Field(None, description="Organization from the user's profile, resolved from the database on every request")


class RequestContext(BaseModel):
    """
    Request-scoped identity handed to every service call.
    """
    user_id: int
    org_id: int
    role: Optional[UserRole] = None
    ip_address: Optional[str] = None


def require_context(context: Optional[RequestContext]) -> RequestContext:
    if context is None or context.user_id is None:
        raise AuthenticationError("Not authenticated.")
    if context.org_id is None:
        raise AuthenticationError("Profile not found: user is not linked to an organization.")
    return context


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> TokenData:
    from conciliacao.crud.crud import crud_user  # Late import

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        raise credentials_exception

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email: str = payload.get("sub")
        user_id: int = payload.get("user_id")
        if email is None or user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = crud_user.get(db, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive or deleted.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenData(email=user.email, user_id=user.id, role=user.role, org_id=user.org_id)


async def get_request_context(
    request: Request,
    current_user: TokenData = Depends(get_current_user),
) -> RequestContext:
    """
    Dependency that ensures the current user has an organization profile and
    turns the session into an explicit RequestContext.
    """
    if current_user.org_id is None:
        logger.warning(f"User {current_user.user_id} has no organization profile.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Profile not found: user is not linked to an organization.",
        )
    return RequestContext(
        user_id=current_user.user_id,
        org_id=current_user.org_id,
        role=current_user.role,
        ip_address=request.client.host if request.client else None,
    )
