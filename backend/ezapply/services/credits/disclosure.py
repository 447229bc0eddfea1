"""
Field Disclosure Gate

A company viewer pays once per (viewer, application, field) to reveal an
applicant field. The grant row and the ledger debit commit together; the
unique key on applicant_views is the only thing that stops two concurrent
requests for the same field from both charging.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import LOW_BALANCE_THRESHOLD
from ...database import atomic
from ...errors import AlreadyDisclosed, DisclosureForbidden, InsufficientBalance, InvalidRequest, NotFound
from ...models.db_models import ApplicantViewDB, ApplicationDB, TransactionType, UserDB, UserRole
from ..notifications import CREDIT_BALANCE_LOW, Notifier, get_notifier
from .ledger import CreditLedgerService
from .pricing import PricingService, validate_field_key

logger = logging.getLogger(__name__)


@dataclass
class DisclosureResult:
    """Outcome of a disclosure request. ``charged`` is 0 on replay."""
    application_id: str
    field_key: str
    charged: int
    balance: int
    already_disclosed: bool = False
    disclosed: bool = True


class FieldDisclosureGate:
    """
    Per-field paywall over applicant data.

    Core Principles:
    1. A grant, once created, is permanent and never charged again
    2. Debit and grant are one unit of work
    3. A duplicate request (sequential or racing) is a free success
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[CreditLedgerService] = None,
        pricing: Optional[PricingService] = None,
        notifier: Optional[Notifier] = None,
        low_balance_threshold: Optional[int] = None,
    ):
        self.db = db
        self.ledger = ledger or CreditLedgerService(db)
        self.pricing = pricing or PricingService(db)
        self.notifier = notifier or get_notifier()
        self.low_balance_threshold = (
            LOW_BALANCE_THRESHOLD if low_balance_threshold is None else low_balance_threshold
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def is_disclosed(self, viewer_id: str, application_id: str, field_key: str) -> bool:
        return self.db.query(ApplicantViewDB.id).filter(
            ApplicantViewDB.company_id == viewer_id,
            ApplicantViewDB.application_id == application_id,
            ApplicantViewDB.field_key == field_key,
        ).first() is not None

    def paid_fields(self, viewer_id: str, application_id: str) -> List[str]:
        """Field keys the viewer has already paid for on this application."""
        rows = self.db.query(ApplicantViewDB.field_key).filter(
            ApplicantViewDB.company_id == viewer_id,
            ApplicantViewDB.application_id == application_id,
            ApplicantViewDB.paid.is_(True),
        ).order_by(ApplicantViewDB.created_at).all()
        return [row.field_key for row in rows]

    # =========================================================================
    # DISCLOSURE
    # =========================================================================

    def request_disclosure(
        self,
        viewer_id: str,
        application_id: str,
        field_key: str,
        cost: Optional[int] = None,
    ) -> DisclosureResult:
        """
        Reveal one field of one application to the viewer.

        Raises:
            InvalidRequest: unknown field key, or negative cost
            NotFound: application or viewer does not exist
            DisclosureForbidden: viewer is not a company, or owns the application
            InsufficientBalance: balance below cost; nothing is written
        """
        validate_field_key(field_key)
        if cost is not None and (isinstance(cost, bool) or not isinstance(cost, int) or cost < 0):
            raise InvalidRequest("Cost must be a non-negative whole number of credits")
        application = self._authorize(viewer_id, application_id)

        if self.is_disclosed(viewer_id, application_id, field_key):
            return self._replay(viewer_id, application_id, field_key)

        if cost is None:
            cost = self.pricing.get_cost(field_key)

        try:
            with atomic(self.db):
                self._charge_and_grant(viewer_id, application, field_key, cost)
        except AlreadyDisclosed:
            logger.info(
                f"Concurrent disclosure of '{field_key}' on application {application_id} "
                f"for viewer {viewer_id} lost the race; not charged"
            )
            return self._replay(viewer_id, application_id, field_key)

        balance = self.ledger.balance(viewer_id)
        logger.info(
            f"Disclosed '{field_key}' on application {application_id} to viewer {viewer_id} "
            f"for {cost} credit(s), balance {balance}"
        )

        if cost > 0 and 0 < balance <= self.low_balance_threshold:
            self.notifier.notify(viewer_id, CREDIT_BALANCE_LOW, {"balance": balance})

        return DisclosureResult(
            application_id=application_id,
            field_key=field_key,
            charged=cost,
            balance=balance,
        )

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _authorize(self, viewer_id: str, application_id: str) -> ApplicationDB:
        application = self.db.query(ApplicationDB).filter(ApplicationDB.id == application_id).first()
        if application is None:
            raise NotFound(f"Application {application_id} not found")

        viewer = self.db.query(UserDB).filter(UserDB.id == viewer_id).first()
        if viewer is None:
            raise NotFound(f"User {viewer_id} not found")
        if viewer.role != UserRole.COMPANY.value:
            raise DisclosureForbidden("Only company accounts can purchase applicant information.")
        if application.user_id == viewer_id:
            raise DisclosureForbidden("You cannot purchase information on your own application.")
        return application

    def _charge_and_grant(self, viewer_id: str, application: ApplicationDB, field_key: str, cost: int) -> None:
        # Serialize on the viewer's ledger before checking the balance
        self.ledger.lock_account(viewer_id)
        current = self.ledger.balance(viewer_id)
        if cost > current:
            raise InsufficientBalance(balance=current, required=cost)

        grant = ApplicantViewDB(
            id=str(uuid4()),
            company_id=viewer_id,
            user_id=application.user_id,
            application_id=application.id,
            field_key=field_key,
            paid=True,
            cost=cost,
        )
        self.db.add(grant)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise AlreadyDisclosed(f"Field '{field_key}' already disclosed") from e

        if cost > 0:
            self.ledger.debit(
                viewer_id,
                cost,
                TransactionType.USAGE,
                description=f"Viewed applicant {field_key}",
                metadata={"application_id": application.id, "field_key": field_key},
            )

    def _replay(self, viewer_id: str, application_id: str, field_key: str) -> DisclosureResult:
        return DisclosureResult(
            application_id=application_id,
            field_key=field_key,
            charged=0,
            balance=self.ledger.balance(viewer_id),
            already_disclosed=True,
        )
