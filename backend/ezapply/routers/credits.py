"""
EZApply - Credits Router
Wallet balance, transaction history and per-field applicant disclosure.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import LifecycleError
from ..models.db_models import CreditTransactionDB, UserDB
from ..auth import get_current_user, require_company
from ..services.credits import CreditLedgerService, FieldDisclosureGate

router = APIRouter(prefix="/credits", tags=["credits"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class BalanceResponse(BaseModel):
    user_id: str
    balance: int


class TransactionResponse(BaseModel):
    id: str
    user_id: str
    amount: int
    type: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: CreditTransactionDB) -> "TransactionResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            amount=entry.amount,
            type=entry.type.value,
            description=entry.description,
            metadata=entry.transaction_metadata,
            created_at=entry.created_at,
        )


class DisclosureRequest(BaseModel):
    application_id: str
    field_key: str


class DisclosureResponse(BaseModel):
    application_id: str
    field_key: str
    disclosed: bool
    charged: int
    balance: int
    already_disclosed: bool


class PaidFieldsResponse(BaseModel):
    application_id: str
    paid_fields: List[str]
    already_purchased: bool


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return BalanceResponse(user_id=current_user.id, balance=CreditLedgerService(db).balance(current_user.id))


@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    limit: int = Query(100, ge=1, le=1000),
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Own ledger entries, newest first."""
    entries = CreditLedgerService(db).history(current_user.id, limit=limit)
    return [TransactionResponse.from_entry(e) for e in entries]


@router.post("/disclose", response_model=DisclosureResponse)
async def disclose_field(
    body: DisclosureRequest,
    current_user: UserDB = Depends(require_company),
    db: Session = Depends(get_db),
):
    """
    Pay to reveal one applicant field.

    Re-requesting a field already paid for is free and returns
    ``already_disclosed=true``.
    """
    viewer_id = current_user.id
    try:
        result = FieldDisclosureGate(db).request_disclosure(viewer_id, body.application_id, body.field_key)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return DisclosureResponse(
        application_id=result.application_id,
        field_key=result.field_key,
        disclosed=result.disclosed,
        charged=result.charged,
        balance=result.balance,
        already_disclosed=result.already_disclosed,
    )


@router.get("/applications/{application_id}/paid-fields", response_model=PaidFieldsResponse)
async def get_paid_fields(
    application_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    fields = FieldDisclosureGate(db).paid_fields(current_user.id, application_id)
    return PaidFieldsResponse(
        application_id=application_id,
        paid_fields=fields,
        already_purchased=bool(fields),
    )
