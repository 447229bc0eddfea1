"""
EZApply - Admin Router
Reactivation review queue, archive console, wallet top-ups and pricing.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..database import atomic, get_db
from ..errors import LifecycleError, NotFound
from ..models.db_models import ArchivedUserDB, UserDB
from ..auth import require_admin
from ..services.credits import CreditLedgerService, PricingService, DISCLOSABLE_FIELDS
from ..services.lifecycle import AccountStateMachine, LifecycleContext, ReviewQueueService
from .credits import TransactionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ReviewRequest(BaseModel):
    admin_notes: Optional[str] = None


class RejectRequest(BaseModel):
    admin_notes: str

    @field_validator('admin_notes')
    @classmethod
    def validate_notes(cls, v):
        if not v.strip():
            raise ValueError('Admin notes are required when rejecting a request')
        return v.strip()


class ReviewResponse(BaseModel):
    id: str
    user_id: str
    status: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None


class ArchiveSummary(BaseModel):
    """Archive item for admin list view."""
    id: str
    original_user_id: str
    email: str
    snapshot_version: int
    archived_at: datetime
    archived_by: Optional[str] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[str] = None


class ArchiveDetail(ArchiveSummary):
    """Archive with its snapshot parts."""
    user_data: Dict[str, Any]
    basic_info_data: Optional[Dict[str, Any]] = None
    address_data: Optional[Dict[str, Any]] = None
    financial_data: Optional[Dict[str, Any]] = None
    affiliations_data: Optional[List[Dict[str, Any]]] = None
    attachments_data: Optional[List[Dict[str, Any]]] = None
    applications_data: Optional[List[Dict[str, Any]]] = None
    company_data: Optional[Dict[str, Any]] = None

    @field_validator('user_data')
    @classmethod
    def hide_password_hash(cls, v):
        # Stored for recreation only; never returned to the console
        return {key: value for key, value in v.items() if key != "password_hash"}


class RestoreResponse(BaseModel):
    message: str
    user_id: str
    email: str


class AccountStatusResponse(BaseModel):
    user_id: str
    account_state: str
    message: str


class AddCreditsRequest(BaseModel):
    user_id: str
    amount: int

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        if v < 1:
            raise ValueError('Amount must be at least 1')
        return v


class PricingUpdateRequest(BaseModel):
    field_key: str
    cost: int

    @field_validator('field_key')
    @classmethod
    def validate_field_key(cls, v):
        if v not in DISCLOSABLE_FIELDS:
            raise ValueError(f'Invalid field. Must be one of: {", ".join(DISCLOSABLE_FIELDS)}')
        return v

    @field_validator('cost')
    @classmethod
    def validate_cost(cls, v):
        if v < 0:
            raise ValueError('Cost cannot be negative')
        return v


def _review_response(request) -> ReviewResponse:
    return ReviewResponse(
        id=request.id,
        user_id=request.user_id,
        status=request.status,
        reviewed_by=request.reviewed_by,
        reviewed_at=request.reviewed_at,
        admin_notes=request.admin_notes,
    )


def _admin_ctx(admin: UserDB) -> LifecycleContext:
    return LifecycleContext.for_actor(admin.id)


# =============================================================================
# REACTIVATION REVIEW QUEUE
# =============================================================================

@router.get("/reactivation-requests", response_model=dict)
async def list_review_queue(
    search: Optional[str] = None,
    status: Optional[str] = None,
    type: str = Query("all", pattern="^(all|reactivation|deactivation)$"),
    page: int = Query(1, ge=1),
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Pending deactivations and reactivation requests, newest first.
    ``status`` applies to reactivation requests only.
    """
    try:
        return ReviewQueueService(db).list_queue(search=search, status=status, type=type, page=page)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/reactivation-requests/{request_id}/approve", response_model=ReviewResponse)
async def approve_reactivation(
    request_id: str,
    body: Optional[ReviewRequest] = None,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Approve a pending request and restore the account from its archive."""
    notes = body.admin_notes if body else None
    try:
        request = AccountStateMachine(db).review_reactivation(request_id, "approve", notes, _admin_ctx(admin))
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _review_response(request)


@router.post("/reactivation-requests/{request_id}/reject", response_model=ReviewResponse)
async def reject_reactivation(
    request_id: str,
    body: RejectRequest,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        request = AccountStateMachine(db).review_reactivation(
            request_id, "reject", body.admin_notes, _admin_ctx(admin)
        )
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _review_response(request)


@router.post("/users/{user_id}/cancel-deactivation", response_model=AccountStatusResponse)
async def cancel_deactivation(
    user_id: str,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Cancel a pending deactivation request on the user's behalf."""
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    try:
        if user is None:
            raise NotFound(f"User {user_id} not found")
        AccountStateMachine(db).cancel_deactivation(user, _admin_ctx(admin))
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return AccountStatusResponse(
        user_id=user.id,
        account_state=user.state.value,
        message="Deactivation request has been cancelled.",
    )


# =============================================================================
# ARCHIVE CONSOLE
# =============================================================================

@router.get("/archives", response_model=dict)
async def list_archives(
    page: int = Query(1, ge=1),
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = ReviewQueueService(db).list_archives(page=page)
    result["data"] = [
        ArchiveSummary.model_validate(r, from_attributes=True).model_dump(mode="json") for r in result["data"]
    ]
    return result


@router.get("/archives/{archive_id}", response_model=ArchiveDetail)
async def get_archive(
    archive_id: str,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        record: ArchivedUserDB = ReviewQueueService(db).get_archive(archive_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ArchiveDetail.model_validate(record, from_attributes=True)


@router.post("/archives/{archive_id}/restore", response_model=RestoreResponse)
async def restore_archive(
    archive_id: str,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        user = AccountStateMachine(db).restore_archive(archive_id, _admin_ctx(admin))
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return RestoreResponse(
        message="User account has been successfully restored.",
        user_id=user.id,
        email=user.email,
    )


# =============================================================================
# CREDITS / PRICING
# =============================================================================

@router.post("/credits/add", response_model=TransactionResponse)
async def add_credits(
    body: AddCreditsRequest,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Manually top up a company account's wallet."""
    try:
        with atomic(db):
            entry = CreditLedgerService(db).top_up_by_admin(admin.id, body.user_id, body.amount)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(f"Admin {admin.id} added {body.amount} credits to {body.user_id}")
    return TransactionResponse.from_entry(entry)


@router.get("/transactions", response_model=List[TransactionResponse])
async def list_all_transactions(
    limit: int = Query(100, ge=1, le=1000),
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = CreditLedgerService(db).history(limit=limit)
    return [TransactionResponse.from_entry(e) for e in entries]


@router.get("/pricing", response_model=Dict[str, int])
async def get_pricing(
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return PricingService(db).list_costs()


@router.put("/pricing", response_model=Dict[str, int])
async def update_pricing(
    body: PricingUpdateRequest,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Change one field's disclosure cost; every company account is notified."""
    pricing = PricingService(db)
    try:
        pricing.update_cost(body.field_key, body.cost, admin_id=admin.id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return pricing.list_costs()
