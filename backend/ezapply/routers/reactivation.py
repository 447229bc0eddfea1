"""
EZApply - Reactivation Router
The only routes a deactivated account can reach besides logout.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import LifecycleError
from ..models.db_models import UserDB
from ..auth import get_session_user
from ..services.lifecycle import AccountStateMachine, LifecycleContext

router = APIRouter(prefix="/reactivation", tags=["reactivation"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ReactivationRequestBody(BaseModel):
    reason: Optional[str] = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if v is not None:
            v = v.strip()
            if len(v) > 1000:
                raise ValueError('Reason must be at most 1000 characters')
            return v or None
        return v


class ReactivationRequestResponse(BaseModel):
    id: str
    status: str
    reason: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class ReactivationStatusResponse(BaseModel):
    is_deactivated: bool
    latest_request: Optional[ReactivationRequestResponse] = None


def _request_response(request) -> ReactivationRequestResponse:
    return ReactivationRequestResponse(
        id=request.id,
        status=request.status,
        reason=request.reason,
        admin_notes=request.admin_notes,
        reviewed_at=request.reviewed_at,
        created_at=request.created_at,
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/status", response_model=ReactivationStatusResponse)
async def get_reactivation_status(
    current_user: UserDB = Depends(get_session_user),
    db: Session = Depends(get_db),
):
    latest = AccountStateMachine(db).latest_request(current_user.id)
    return ReactivationStatusResponse(
        is_deactivated=bool(current_user.is_deactivated),
        latest_request=_request_response(latest) if latest else None,
    )


@router.post("/request", response_model=ReactivationRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_reactivation_request(
    body: ReactivationRequestBody,
    current_user: UserDB = Depends(get_session_user),
    db: Session = Depends(get_db),
):
    """File a reactivation request for admin review (deactivated accounts only)."""
    machine = AccountStateMachine(db)
    try:
        request = machine.request_reactivation(
            current_user, body.reason, LifecycleContext.for_actor(current_user.id)
        )
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return _request_response(request)
