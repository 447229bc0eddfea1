"""
Credit Ledger Service

Append-only transaction log backing a derived balance.

Core Principles:
1. Balance is the sum of every CreditTransaction.amount for the user.
   It is computed on demand and never cached.
2. Entries are never updated or deleted. Corrections are new entries.
3. The ledger emits and flushes; the caller owns the transaction, so a debit
   commits or rolls back together with whatever action it pays for.
4. A debit never takes the balance below zero.
"""
import logging
from uuid import uuid4
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...errors import InsufficientBalance, InvalidRequest, NotFound
from ...models.db_models import CreditTransactionDB, TransactionType, UserDB, UserRole

logger = logging.getLogger(__name__)


class CreditLedgerService:
    """Balance, credit and debit operations over the credit_transactions table."""

    # Entry types that add credits; USAGE is reserved for debits
    CREDIT_TYPES = (TransactionType.SIGNUP_BONUS, TransactionType.TOP_UP, TransactionType.REFUND)

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # READ
    # =========================================================================

    def balance(self, user_id: str) -> int:
        """Sum of all ledger amounts for the user (0 with no history)."""
        total = self.db.query(
            func.coalesce(func.sum(CreditTransactionDB.amount), 0)
        ).filter(CreditTransactionDB.user_id == user_id).scalar()
        return int(total or 0)

    def history(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> List[CreditTransactionDB]:
        """Ledger entries newest first; all users when user_id is None."""
        query = self.db.query(CreditTransactionDB)
        if user_id is not None:
            query = query.filter(CreditTransactionDB.user_id == user_id)
        query = query.order_by(CreditTransactionDB.created_at.desc(), CreditTransactionDB.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    # =========================================================================
    # WRITE
    # =========================================================================

    def credit(
        self,
        user_id: str,
        amount: int,
        type: TransactionType = TransactionType.TOP_UP,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransactionDB:
        """Append a positive entry. Only input validation can fail."""
        type = TransactionType(type)
        if type not in self.CREDIT_TYPES:
            raise InvalidRequest(f"Transaction type '{type.value}' cannot add credits")
        self._require_positive(amount)

        entry = self._append(user_id, amount, type, description, metadata)
        logger.info(f"Credited {amount} ({type.value}) to user {user_id}")
        return entry

    def debit(
        self,
        user_id: str,
        amount: int,
        type: TransactionType = TransactionType.USAGE,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransactionDB:
        """
        Append a negative entry.

        Locks the account row first so concurrent debits for the same user
        see each other's entries. Raises InsufficientBalance, leaving the
        ledger unchanged, when the balance is below ``amount``.
        """
        self._require_positive(amount)
        self.lock_account(user_id)

        current = self.balance(user_id)
        if current < amount:
            raise InsufficientBalance(balance=current, required=amount)

        entry = self._append(user_id, -amount, TransactionType(type), description, metadata)
        logger.info(f"Debited {amount} from user {user_id}, balance now {current - amount}")
        return entry

    def lock_account(self, user_id: str) -> UserDB:
        """SELECT ... FOR UPDATE on the account that owns the ledger."""
        user = self.db.query(UserDB).filter(UserDB.id == user_id).with_for_update().first()
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    # =========================================================================
    # ADMIN / ONBOARDING
    # =========================================================================

    def top_up_by_admin(self, admin_id: str, target_user_id: str, amount: int) -> CreditTransactionDB:
        """Manual top-up of a company wallet by an admin."""
        target = self.db.query(UserDB).filter(UserDB.id == target_user_id).first()
        if target is None:
            raise NotFound(f"User {target_user_id} not found")
        if target.role != UserRole.COMPANY.value:
            raise InvalidRequest("Invalid company selected.")

        return self.credit(
            target_user_id,
            amount,
            TransactionType.TOP_UP,
            description=f"Admin added {amount} credits to wallet",
            metadata={"method": "manual_add", "added_by_admin_id": admin_id},
        )

    def grant_signup_bonus(self, user_id: str, amount: int) -> Optional[CreditTransactionDB]:
        """Welcome credits for a new account; no entry when amount is 0."""
        if amount <= 0:
            return None
        return self.credit(
            user_id,
            amount,
            TransactionType.SIGNUP_BONUS,
            description=f"Signup bonus of {amount} credits",
        )

    # =========================================================================
    # INTERNAL
    # =========================================================================

    @staticmethod
    def _require_positive(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRequest("Amount must be a positive whole number of credits")

    def _append(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        description: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> CreditTransactionDB:
        entry = CreditTransactionDB(
            id=str(uuid4()),
            user_id=user_id,
            amount=amount,
            type=type,
            description=description,
            transaction_metadata=metadata,
        )
        self.db.add(entry)
        self.db.flush()  # visible to balance() without committing
        return entry
