"""
Deactivation Scheduler

Daily batch that executes every deactivation whose grace period has ended.

AUTHORITY: SYSTEM - runs from the internal endpoint or the cron script.
Each account is its own unit of work: one failure is logged and counted,
and the rest of the batch carries on. Nothing is retried within a run; a
failed account stays due and is picked up again next run.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...database import utc_now
from ...errors import AlreadyDeactivated, DeactivationNotDue
from ...models.db_models import UserDB
from .context import LifecycleContext
from .state_machine import AccountStateMachine

logger = logging.getLogger(__name__)


class DeactivationScheduler:
    def __init__(self, db: Session, state_machine: Optional[AccountStateMachine] = None):
        self.db = db
        self.state_machine = state_machine or AccountStateMachine(db)

    def due_accounts(self, now: Optional[datetime] = None) -> List[UserDB]:
        """Accounts with a pending request whose scheduled date has passed."""
        now = now or utc_now()
        return self.db.query(UserDB).filter(
            UserDB.deactivation_requested_at.isnot(None),
            UserDB.deactivation_scheduled_at.isnot(None),
            UserDB.deactivation_scheduled_at <= now,
            UserDB.is_deactivated.is_(False),
        ).order_by(UserDB.deactivation_scheduled_at).all()

    def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Process every due account.

        Returns a report with counts and per-account details.
        """
        now = now or utc_now()
        ctx = LifecycleContext.system(now)

        # Plain values; a rollback expires ORM instances mid-loop
        due = [(user.id, user.email) for user in self.due_accounts(now)]
        logger.info(f"Deactivation run at {now.isoformat()}: {len(due)} account(s) due")

        deactivated = []
        skipped = []
        errors = []

        for user_id, email in due:
            try:
                archive = self.state_machine.execute_deactivation(user_id, ctx)
                deactivated.append({"user_id": user_id, "email": email, "archive_id": archive.id})
            except (AlreadyDeactivated, DeactivationNotDue) as e:
                logger.warning(f"Skipped deactivation of user {user_id}: {e.message}")
                skipped.append({"user_id": user_id, "email": email, "reason": e.message})
            except Exception as e:
                logger.error(f"Failed to deactivate user {user_id} ({email}): {e}")
                errors.append({"user_id": user_id, "email": email, "error": str(e)})

        logger.info(
            f"Deactivation run complete: {len(deactivated)} deactivated, "
            f"{len(skipped)} skipped, {len(errors)} failed"
        )

        return {
            "run_date": now.isoformat(),
            "found": len(due),
            "deactivated": len(deactivated),
            "skipped": len(skipped),
            "errors": len(errors),
            "details": {
                "deactivated": deactivated,
                "skipped": skipped,
                "errors": errors,
            },
        }
