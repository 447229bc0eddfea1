"""
EZApply - Account Router
Self-service deactivation request and status.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db, utc_now
from ..errors import LifecycleError
from ..models.db_models import UserDB
from ..auth import get_current_user
from ..services.lifecycle import AccountStateMachine, LifecycleContext

router = APIRouter(prefix="/account", tags=["account"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class DeactivationStatusResponse(BaseModel):
    account_state: str
    deactivation_requested_at: Optional[datetime] = None
    deactivation_scheduled_at: Optional[datetime] = None
    days_until_deactivation: Optional[int] = None
    message: Optional[str] = None


def _status_response(user: UserDB, message: Optional[str] = None) -> DeactivationStatusResponse:
    return DeactivationStatusResponse(
        account_state=user.state.value,
        deactivation_requested_at=user.deactivation_requested_at,
        deactivation_scheduled_at=user.deactivation_scheduled_at,
        days_until_deactivation=AccountStateMachine.days_until_deactivation(user, utc_now()),
        message=message,
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/deactivation", response_model=DeactivationStatusResponse)
async def request_deactivation(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Request deletion of the current account.

    Starts the grace period and logs the account out everywhere; the token
    used for this call stops working immediately.
    """
    machine = AccountStateMachine(db)
    try:
        user = machine.request_deactivation(current_user, LifecycleContext.for_actor(current_user.id))
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    days = AccountStateMachine.days_until_deactivation(user, utc_now())
    return _status_response(
        user,
        f"Your account will be deactivated in {days} day(s). "
        "Contact support to cancel this request.",
    )


@router.get("/deactivation", response_model=DeactivationStatusResponse)
async def get_deactivation_status(current_user: UserDB = Depends(get_current_user)):
    return _status_response(current_user)
