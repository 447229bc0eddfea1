"""
EZApply - Authentication Router
Registration, lifecycle-gated login, logout and session info.
"""
from uuid import uuid4
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..config import SIGNUP_BONUS_CREDITS
from ..database import atomic, get_db
from ..models.db_models import UserDB, UserRole
from ..auth import (
    hash_password, verify_password, create_access_token, invalidate_sessions,
    get_current_user, get_session_user,
)
from ..services.credits import CreditLedgerService
from ..services.lifecycle import AccountStateMachine, SessionVerdict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    role: str = UserRole.CUSTOMER.value

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        valid_roles = [UserRole.CUSTOMER.value, UserRole.COMPANY.value]
        if v.lower() not in valid_roles:
            raise ValueError(f'Invalid role. Must be one of: {", ".join(valid_roles)}')
        return v.lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_state: str
    message: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: str
    email: str
    role: str
    account_state: str
    credit_balance: int


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a customer or company account.
    Company accounts receive the configured signup bonus.
    """
    existing_email = db.query(UserDB).filter(UserDB.email == request.email).first()
    if existing_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = UserDB(
        id=str(uuid4()),
        email=request.email,
        password_hash=hash_password(request.password),
        role=request.role,
        session_version=0,
        is_deactivated=False,
    )

    with atomic(db):
        db.add(user)
        db.flush()
        if request.role == UserRole.COMPANY.value:
            CreditLedgerService(db).grant_signup_bonus(user.id, SIGNUP_BONUS_CREDITS)

    logger.info(f"User registered: {request.email} ({request.role})")
    return MessageResponse(message="User created successfully")


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate and return a JWT.

    An account with a pending deactivation request cannot log in. A
    deactivated account gets a token that only reaches the reactivation flow.
    """
    user = db.query(UserDB).filter(UserDB.email == request.email).first()

    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    check = AccountStateMachine(db).check_session(user)
    if check.verdict == SessionVerdict.FORCE_LOGOUT:
        logger.info(f"Login refused for {request.email}: deactivation pending")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=check.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(user)

    logger.info(f"User logged in: {request.email}")
    return TokenResponse(
        access_token=access_token,
        account_state=user.state.value,
        message=check.message,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: UserDB = Depends(get_session_user), db: Session = Depends(get_db)):
    """End every session of the current account (reachable when deactivated)."""
    invalidate_sessions(db, current_user)
    logger.info(f"User logged out: {current_user.email}")
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user), db: Session = Depends(get_db)):
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        role=current_user.role,
        account_state=current_user.state.value,
        credit_balance=CreditLedgerService(db).balance(current_user.id),
    )
