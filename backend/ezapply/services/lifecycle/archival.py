"""
Archival Engine

Snapshots an account and its dependent records into archived_users as part
of deactivation, and reverses that on restoration.

Core Principles:
1. Rows are never deleted. Archival copies; restoration un-flags or recreates.
2. The engine only flushes. The state machine owns the transaction, so the
   archive row and the is_deactivated flip commit or roll back together.
3. Snapshots are decoded through the versioned schema before use; a stored
   archive is never trusted blindly.
"""
import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import AlreadyActive, AlreadyDeactivated, NotFound
from ...models.db_models import (
    ArchivedUserDB, BasicInfoDB, FinancialDB, TransactionType, UserAddressDB, UserDB,
)
from ...models.snapshot import (
    AddressSnapshot, AffiliationSnapshot, ApplicationSnapshot, ArchiveSnapshot,
    AttachmentSnapshot, BasicInfoSnapshot, CompanySnapshot, FinancialSnapshot, UserSnapshot,
)
from ..credits.ledger import CreditLedgerService
from .context import LifecycleContext

logger = logging.getLogger(__name__)


def _one(model, record):
    return model.model_validate(record) if record is not None else None


def _many(model, records):
    # Empty collections archive as null, matching absent single records
    return [model.model_validate(r) for r in records] or None


class ArchivalEngine:
    """Archive and restore account graphs."""

    def __init__(self, db: Session, ledger: Optional[CreditLedgerService] = None):
        self.db = db
        self.ledger = ledger or CreditLedgerService(db)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def live_archive(self, user_id: str) -> Optional[ArchivedUserDB]:
        """The unrestored archive for an account, if any."""
        return self.db.query(ArchivedUserDB).filter(
            ArchivedUserDB.original_user_id == user_id,
            ArchivedUserDB.restored_at.is_(None),
        ).first()

    def snapshot(self, user: UserDB) -> ArchiveSnapshot:
        """Build the structured snapshot of an account's current graph."""
        user_part = UserSnapshot.model_validate(user).model_copy(
            update={"credit_balance": self.ledger.balance(user.id)}
        )
        return ArchiveSnapshot(
            user=user_part,
            basic_info=_one(BasicInfoSnapshot, user.basic_info),
            address=_one(AddressSnapshot, user.address),
            financial=_one(FinancialSnapshot, user.financial),
            affiliations=_many(AffiliationSnapshot, user.affiliations),
            attachments=_many(AttachmentSnapshot, user.attachments),
            applications=_many(ApplicationSnapshot, user.applications),
            company=_one(CompanySnapshot, user.company),
        )

    # =========================================================================
    # ARCHIVE
    # =========================================================================

    def archive(self, user: UserDB, ctx: LifecycleContext) -> ArchivedUserDB:
        """
        Persist a snapshot of ``user``. Does not flip is_deactivated.

        Raises AlreadyDeactivated if the account already has a live archive.
        """
        if self.live_archive(user.id) is not None:
            raise AlreadyDeactivated(f"User {user.id} already has an unrestored archive")

        snapshot = self.snapshot(user)
        record = ArchivedUserDB(
            id=str(uuid4()),
            original_user_id=user.id,
            email=user.email,
            archived_at=ctx.now,
            archived_by=ctx.actor_id,
            **snapshot.to_columns(),
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Live-archive index: a concurrent run archived this account first
            logger.warning(f"Concurrent archive of user {user.id} detected; not archived twice")
            raise AlreadyDeactivated(f"User {user.id} was archived by another run") from e

        logger.info(f"Archived user {user.id} as archive {record.id} (balance {snapshot.user.credit_balance})")
        return record

    # =========================================================================
    # RESTORE
    # =========================================================================

    def restore(self, archive_id: str, ctx: LifecycleContext) -> UserDB:
        """
        Bring an archived account back.

        - Existing deactivated account: reactivated in place; the live row is
          authoritative and the snapshot is not reapplied.
        - Missing account: recreated from the validated snapshot, with a
          corrective refund entry if its ledger no longer matches.
        - Existing active account: AlreadyActive, archive left untouched.

        Raises NotFound when the archive does not exist or was already restored.
        """
        record = self.db.query(ArchivedUserDB).filter(ArchivedUserDB.id == archive_id).first()
        if record is None or record.restored_at is not None:
            raise NotFound(f"Archive {archive_id} not found or already restored")

        user = self.db.query(UserDB).filter(UserDB.id == record.original_user_id).first()
        if user is not None and not user.is_deactivated:
            raise AlreadyActive()

        if user is not None:
            user.is_deactivated = False
            user.deactivation_requested_at = None
            user.deactivation_scheduled_at = None
            action = "reactivated in place"
        else:
            user = self._recreate(ArchiveSnapshot.from_record(record), ctx)
            action = "recreated from snapshot"

        record.restored_at = ctx.now
        record.restored_by = ctx.actor_id
        self.db.flush()

        logger.info(f"Restored archive {record.id}: user {user.id} {action} by {ctx.actor_id}")
        return user

    def _recreate(self, snapshot: ArchiveSnapshot, ctx: LifecycleContext) -> UserDB:
        data = snapshot.user

        clash = self.db.query(UserDB).filter(UserDB.email == data.email).first()
        if clash is not None:
            raise AlreadyActive(f"Another account already uses {data.email}")

        user = UserDB(
            id=data.id,
            email=data.email,
            password_hash=data.password_hash,
            role=data.role,
            email_verified_at=data.email_verified_at,
            session_version=0,
            is_deactivated=False,
            deactivation_requested_at=None,
            deactivation_scheduled_at=None,
        )
        if data.created_at is not None:
            user.created_at = data.created_at
        self.db.add(user)

        if snapshot.basic_info is not None:
            self.db.add(BasicInfoDB(user_id=user.id, **snapshot.basic_info.model_dump()))
        if snapshot.address is not None:
            self.db.add(UserAddressDB(user_id=user.id, **snapshot.address.model_dump()))
        if snapshot.financial is not None:
            self.db.add(FinancialDB(user_id=user.id, **snapshot.financial.model_dump()))
        self.db.flush()

        shortfall = data.credit_balance - self.ledger.balance(user.id)
        if shortfall > 0:
            self.ledger.credit(
                user.id,
                shortfall,
                TransactionType.REFUND,
                description="Balance restored from archive",
                metadata={"source": "archive_restore", "restored_by": ctx.actor_id},
            )
        return user
