"""
EZApply - Authentication Utilities
Password hashing, JWT tokens, and lifecycle-gated auth dependencies
"""
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import ACCESS_TOKEN_EXPIRE_HOURS, JWT_ALGORITHM, JWT_SECRET_KEY
from .database import get_db
from .models.db_models import UserDB, UserRole
from .services.lifecycle import AccountStateMachine, SessionVerdict
from .services.lifecycle.state_machine import REACTIVATION_ONLY_MESSAGE

logger = logging.getLogger(__name__)

# Bearer token security
security = HTTPBearer()


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(user: UserDB) -> str:
    """
    Create a JWT access token.

    The ``sv`` claim pins the token to the account's current session
    version; bumping the version invalidates the token.
    """
    expire = datetime.now(timezone.utc) + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "sv": user.session_version or 0,
        "exp": expire,
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def invalidate_sessions(db: Session, user: UserDB) -> None:
    """End every session of the account by moving its session version."""
    user.session_version = (user.session_version or 0) + 1
    db.commit()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_session_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> UserDB:
    """
    Authenticated user, gated by the account lifecycle.

    Deactivated accounts pass; use this only on the reactivation and logout
    routes. Everything else depends on get_current_user.
    """
    try:
        payload = jwt.decode(credentials.credentials, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    if payload.get("sub") is None:
        raise _unauthorized("Could not validate credentials")

    user = db.query(UserDB).filter(UserDB.id == payload["sub"]).first()
    if user is None:
        raise _unauthorized("Could not validate credentials")

    check = AccountStateMachine(db).check_session(user)
    if check.verdict == SessionVerdict.FORCE_LOGOUT:
        invalidate_sessions(db, user)
        logger.info(f"Forced logout of user {user.id}: deactivation pending")
        raise _unauthorized(check.message)

    if payload.get("sv") != (user.session_version or 0):
        raise _unauthorized("Session is no longer valid. Please log in again.")

    return user


async def get_current_user(user: UserDB = Depends(get_session_user)) -> UserDB:
    """
    Dependency to get the current authenticated, active user.
    Deactivated accounts are limited to the reactivation flow.
    """
    if user.is_deactivated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=REACTIVATION_ONLY_MESSAGE,
        )
    return user


async def require_admin(current_user: UserDB = Depends(get_current_user)) -> UserDB:
    """
    Dependency to require admin role.
    Use this on admin-only routes.
    """
    if current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


async def require_company(current_user: UserDB = Depends(get_current_user)) -> UserDB:
    """Dependency to require a company account."""
    if current_user.role != UserRole.COMPANY.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Company account required"
        )
    return current_user
