"""
Account State Machine

Active -> DeactivationRequested -> Deactivated -> (ReactivationRequested) -> Active

Every transition runs as one unit of work and is logged. Notifications are
fired only after the unit of work has committed.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DEACTIVATION_GRACE_PERIOD_DAYS
from ...database import atomic
from ...errors import (
    AlreadyDeactivated, AlreadyRequested, AlreadyReviewed, DeactivationNotDue,
    InvalidRequest, NoPendingRequest, NotDeactivated, NotFound, PendingExists,
)
from ...models.db_models import (
    AccountState, ArchivedUserDB, ReactivationRequestDB, ReactivationStatus, UserDB,
)
from ..notifications import ACCOUNT_DEACTIVATED, REACTIVATION_REVIEWED, Notifier, get_notifier
from .archival import ArchivalEngine
from .context import LifecycleContext

logger = logging.getLogger(__name__)


class SessionVerdict(str, Enum):
    """What the session boundary does with an authenticated request."""
    ALLOW = "allow"
    FORCE_LOGOUT = "force_logout"
    REACTIVATION_ONLY = "reactivation_only"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


FORCE_LOGOUT_MESSAGE = (
    "Your account deactivation has been requested. "
    "Please contact support if you wish to cancel this request."
)
REACTIVATION_ONLY_MESSAGE = (
    "Your account has been deactivated. You may submit a reactivation request."
)


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# "session" is the verdict applied at the session boundary while the account
# sits in that state. The grace period is not usable for work: a pending
# request forces logout on every request.
#
# =============================================================================

STATE_CONFIG = {
    AccountState.ACTIVE: {
        "description": "Account in normal use",
        "allowed_transitions": [AccountState.DEACTIVATION_REQUESTED],
        "session": SessionVerdict.ALLOW,
        "message": None,
        "entry_authority": "USER",  # cancel, or admin restore
    },
    AccountState.DEACTIVATION_REQUESTED: {
        "description": "Grace period running, cancellable",
        "allowed_transitions": [AccountState.ACTIVE, AccountState.DEACTIVATED],
        "session": SessionVerdict.FORCE_LOGOUT,
        "message": FORCE_LOGOUT_MESSAGE,
        "entry_authority": "USER",
    },
    AccountState.DEACTIVATED: {
        "description": "Archived; only reactivation flow and logout reachable",
        "allowed_transitions": [AccountState.ACTIVE],
        "session": SessionVerdict.REACTIVATION_ONLY,
        "message": REACTIVATION_ONLY_MESSAGE,
        "entry_authority": "SYSTEM",  # scheduler executes deactivation
    },
}


@dataclass
class SessionCheck:
    verdict: SessionVerdict
    message: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.verdict == SessionVerdict.ALLOW


# =============================================================================
# STATE MACHINE
# =============================================================================

class AccountStateMachine:
    """
    Lifecycle transitions for accounts.

    Core Principles:
    - Lifecycle columns are written only here and by the ArchivalEngine
    - Deactivation archives and flips the flag in one transaction
    - A conditional update on is_deactivated is the claim token, so two
      scheduler runs never deactivate the same account twice
    - Every review is terminal for its request
    """

    def __init__(
        self,
        db: Session,
        archival: Optional[ArchivalEngine] = None,
        notifier: Optional[Notifier] = None,
        grace_period_days: Optional[int] = None,
    ):
        self.db = db
        self.archival = archival or ArchivalEngine(db)
        self.notifier = notifier or get_notifier()
        self.grace_period_days = (
            DEACTIVATION_GRACE_PERIOD_DAYS if grace_period_days is None else grace_period_days
        )

    # =========================================================================
    # STATE QUERIES
    # =========================================================================

    def get_state_config(self, state: AccountState) -> Dict[str, Any]:
        return STATE_CONFIG.get(state, {})

    def can_transition(self, from_state: AccountState, to_state: AccountState) -> Tuple[bool, str]:
        """Returns (allowed, reason)."""
        if to_state in self.get_state_config(from_state).get("allowed_transitions", []):
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_state.value} to {to_state.value}"

    def check_session(self, user: UserDB) -> SessionCheck:
        """Session-boundary verdict for an authenticated request."""
        config = self.get_state_config(user.state)
        return SessionCheck(verdict=config["session"], message=config["message"])

    @staticmethod
    def days_until_deactivation(user: UserDB, now: datetime) -> Optional[int]:
        """Whole days left in the grace period; 0 when due, None when nothing is scheduled."""
        if user.is_deactivated or user.deactivation_scheduled_at is None:
            return None
        remaining = (user.deactivation_scheduled_at - now).total_seconds()
        if remaining <= 0:
            return 0
        # Rounded up, not truncated: a fresh 5-day request reads 5 until the first full day passes
        return math.ceil(remaining / 86400)

    # =========================================================================
    # DEACTIVATION
    # =========================================================================

    def request_deactivation(
        self,
        user: UserDB,
        ctx: LifecycleContext,
        grace_period_days: Optional[int] = None,
    ) -> UserDB:
        """
        Start the grace period and end every session of the account.

        Raises AlreadyRequested if a request is pending or the account is
        already deactivated.
        """
        allowed, _ = self.can_transition(user.state, AccountState.DEACTIVATION_REQUESTED)
        if not allowed:
            raise AlreadyRequested()

        days = self.grace_period_days if grace_period_days is None else grace_period_days
        with atomic(self.db):
            user.deactivation_requested_at = ctx.now
            user.deactivation_scheduled_at = ctx.now + timedelta(days=days)
            user.session_version = (user.session_version or 0) + 1

        logger.info(
            f"Deactivation requested for user {user.id}, scheduled {user.deactivation_scheduled_at.isoformat()}"
        )
        return user

    def cancel_deactivation(self, user: UserDB, ctx: LifecycleContext) -> UserDB:
        """Clear a pending request. Raises NoPendingRequest otherwise."""
        if user.state != AccountState.DEACTIVATION_REQUESTED:
            raise NoPendingRequest()

        with atomic(self.db):
            user.deactivation_requested_at = None
            user.deactivation_scheduled_at = None

        logger.info(f"Deactivation cancelled for user {user.id} by {ctx.actor_id or 'system'}")
        return user

    def execute_deactivation(self, user_id: str, ctx: LifecycleContext) -> ArchivedUserDB:
        """
        Archive the account and mark it deactivated, atomically.

        Raises:
            NotFound: no such account
            AlreadyDeactivated: already deactivated, or another run claimed it
            DeactivationNotDue: nothing scheduled, or scheduled after ctx.now
        """
        user = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if user is None:
            raise NotFound(f"User {user_id} not found")
        if user.is_deactivated:
            raise AlreadyDeactivated()
        if user.deactivation_scheduled_at is None or user.deactivation_scheduled_at > ctx.now:
            raise DeactivationNotDue()

        with atomic(self.db):
            archive = self.archival.archive(user, ctx)

            # Claim: only succeeds if no other run flipped the account first
            claimed = self.db.query(UserDB).filter(
                UserDB.id == user_id,
                UserDB.is_deactivated.is_(False),
                UserDB.deactivation_scheduled_at.isnot(None),
                UserDB.deactivation_scheduled_at <= ctx.now,
            ).update(
                {
                    UserDB.is_deactivated: True,
                    UserDB.deactivation_requested_at: None,
                    UserDB.deactivation_scheduled_at: None,
                },
                synchronize_session=False,
            )
            if claimed != 1:
                logger.warning(f"Lost deactivation claim for user {user_id}; rolling back archive")
                raise AlreadyDeactivated(f"User {user_id} was deactivated by another run")

        self.db.refresh(user)
        logger.info(f"Deactivated user {user_id}, archive {archive.id}")
        self.notifier.notify(user_id, ACCOUNT_DEACTIVATED, {"archive_id": archive.id})
        return archive

    # =========================================================================
    # REACTIVATION
    # =========================================================================

    def request_reactivation(
        self,
        user: UserDB,
        reason: Optional[str],
        ctx: LifecycleContext,
    ) -> ReactivationRequestDB:
        """
        File a reactivation request for a deactivated account.

        Raises NotDeactivated for live accounts and PendingExists when an
        unresolved request is already on file.
        """
        if not user.is_deactivated:
            raise NotDeactivated()
        if self.pending_request(user.id) is not None:
            raise PendingExists()

        request = ReactivationRequestDB(
            id=str(uuid4()),
            user_id=user.id,
            email=user.email,
            reason=reason,
            status=ReactivationStatus.PENDING.value,
            created_at=ctx.now,
        )
        with atomic(self.db):
            self.db.add(request)
            try:
                self.db.flush()
            except IntegrityError as e:
                # Partial unique index on pending requests
                raise PendingExists() from e

        logger.info(f"Reactivation request {request.id} filed by user {user.id}")
        return request

    def pending_request(self, user_id: str) -> Optional[ReactivationRequestDB]:
        return self.db.query(ReactivationRequestDB).filter(
            ReactivationRequestDB.user_id == user_id,
            ReactivationRequestDB.status == ReactivationStatus.PENDING.value,
        ).first()

    def latest_request(self, user_id: str) -> Optional[ReactivationRequestDB]:
        return self.db.query(ReactivationRequestDB).filter(
            ReactivationRequestDB.user_id == user_id,
        ).order_by(ReactivationRequestDB.created_at.desc()).first()

    def review_reactivation(
        self,
        request_id: str,
        decision: str,
        admin_notes: Optional[str],
        ctx: LifecycleContext,
    ) -> ReactivationRequestDB:
        """
        Approve (restore the account) or reject a pending request.

        Raises:
            InvalidRequest: unknown decision, or reject without notes
            NotFound: request missing, or approve with no live archive
            AlreadyReviewed: request is no longer pending
            AlreadyActive: approve while a live account holds the identity
        """
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise InvalidRequest(f"Unknown decision '{decision}'. Expected approve or reject")

        request = self.db.query(ReactivationRequestDB).filter(ReactivationRequestDB.id == request_id).first()
        if request is None:
            raise NotFound(f"Reactivation request {request_id} not found")
        if request.status != ReactivationStatus.PENDING.value:
            raise AlreadyReviewed()
        if decision == ReviewDecision.REJECT and not (admin_notes or "").strip():
            raise InvalidRequest("Admin notes are required when rejecting a request.")

        status = (
            ReactivationStatus.APPROVED if decision == ReviewDecision.APPROVE else ReactivationStatus.REJECTED
        )
        user_id = request.user_id

        with atomic(self.db):
            if decision == ReviewDecision.APPROVE:
                archive = self.archival.live_archive(user_id)
                if archive is None:
                    raise NotFound(f"No archive to restore for user {user_id}")
                self.archival.restore(archive.id, ctx)

            self._resolve(request_id, status, admin_notes, ctx)

        self.db.refresh(request)
        logger.info(f"Reactivation request {request_id} {status.value} by admin {ctx.actor_id}")
        self.notifier.notify(
            user_id,
            REACTIVATION_REVIEWED,
            {"request_id": request_id, "status": status.value, "admin_notes": admin_notes},
        )
        return request

    def restore_archive(self, archive_id: str, ctx: LifecycleContext) -> UserDB:
        """
        Admin restore from the archive console.

        Any pending reactivation request of the account is resolved as
        approved in the same unit of work.
        """
        with atomic(self.db):
            user = self.archival.restore(archive_id, ctx)
            pending = self.pending_request(user.id)
            if pending is not None:
                self._resolve(pending.id, ReactivationStatus.APPROVED, "Restored from archive", ctx)
        return user

    def _resolve(
        self,
        request_id: str,
        status: ReactivationStatus,
        admin_notes: Optional[str],
        ctx: LifecycleContext,
    ) -> None:
        # Conditional on still pending: concurrent reviews resolve once
        updated = self.db.query(ReactivationRequestDB).filter(
            ReactivationRequestDB.id == request_id,
            ReactivationRequestDB.status == ReactivationStatus.PENDING.value,
        ).update(
            {
                ReactivationRequestDB.status: status.value,
                ReactivationRequestDB.reviewed_by: ctx.actor_id,
                ReactivationRequestDB.reviewed_at: ctx.now,
                ReactivationRequestDB.admin_notes: admin_notes,
            },
            synchronize_session=False,
        )
        if updated != 1:
            raise AlreadyReviewed()
