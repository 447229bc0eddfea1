"""
Scheduler API Routes

Internal endpoints for the daily deactivation run, driven by an external
job runner (cron, task queue) with the internal API key.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import INTERNAL_API_KEY
from ..database import get_db
from ..services.lifecycle import DeactivationScheduler


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


class DueAccount(BaseModel):
    user_id: str
    email: str
    deactivation_requested_at: Optional[datetime] = None
    deactivation_scheduled_at: Optional[datetime] = None


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/process-deactivations", response_model=dict)
async def process_deactivations(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Run the daily deactivation batch.

    System-automatic - archives and deactivates every account past its
    grace period. Failures are reported per account, never fatal to the run.
    """
    scheduler = DeactivationScheduler(db)

    result = scheduler.run()

    return result


# =============================================================================
# SCHEDULER STATUS ENDPOINTS (READ-ONLY)
# =============================================================================

@router.get("/due-deactivations", response_model=List[DueAccount])
async def get_due_deactivations(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """Accounts the next run would process."""
    return [
        DueAccount(
            user_id=user.id,
            email=user.email,
            deactivation_requested_at=user.deactivation_requested_at,
            deactivation_scheduled_at=user.deactivation_scheduled_at,
        )
        for user in DeactivationScheduler(db).due_accounts()
    ]
