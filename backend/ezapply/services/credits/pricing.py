"""
Disclosure Pricing

Per-field disclosure cost, admin managed. Fields without a stored price
cost the configured PACKAGE_COST.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ...config import PACKAGE_COST
from ...database import atomic, utc_now
from ...errors import InvalidRequest
from ...models.db_models import PricingSettingDB, UserDB, UserRole
from ..notifications import PRICING_CHANGED, Notifier, get_notifier

logger = logging.getLogger(__name__)


# Applicant fields a company can pay to reveal
DISCLOSABLE_FIELDS = (
    "package",
    "phone",
    "email",
    "social_links",
    "financial",
    "attachments",
    "address",
)


def validate_field_key(field_key: str) -> str:
    if field_key not in DISCLOSABLE_FIELDS:
        raise InvalidRequest(
            f"Unknown field '{field_key}'. Expected one of: {', '.join(DISCLOSABLE_FIELDS)}"
        )
    return field_key


class PricingService:
    def __init__(self, db: Session, default_cost: Optional[int] = None, notifier: Optional[Notifier] = None):
        self.db = db
        self.default_cost = PACKAGE_COST if default_cost is None else default_cost
        self.notifier = notifier or get_notifier()

    def get_cost(self, field_key: str) -> int:
        validate_field_key(field_key)
        setting = self.db.query(PricingSettingDB).filter(PricingSettingDB.field_key == field_key).first()
        return setting.cost if setting else self.default_cost

    def list_costs(self) -> Dict[str, int]:
        stored = {row.field_key: row.cost for row in self.db.query(PricingSettingDB).all()}
        return {key: stored.get(key, self.default_cost) for key in DISCLOSABLE_FIELDS}

    def update_cost(self, field_key: str, cost: int, admin_id: Optional[str] = None) -> PricingSettingDB:
        """
        Store a new price and tell every company account about it.

        Committed before notifying; the notification is best effort.
        """
        validate_field_key(field_key)
        if isinstance(cost, bool) or not isinstance(cost, int) or cost < 0:
            raise InvalidRequest("Cost must be a non-negative whole number of credits")

        with atomic(self.db):
            setting = self.db.query(PricingSettingDB).filter(PricingSettingDB.field_key == field_key).first()
            old_cost = setting.cost if setting else self.default_cost
            if setting is None:
                setting = PricingSettingDB(field_key=field_key, cost=cost, updated_by=admin_id)
                self.db.add(setting)
            else:
                setting.cost = cost
                setting.updated_by = admin_id
                setting.updated_at = utc_now()

        logger.info(f"Pricing for '{field_key}' changed from {old_cost} to {cost} by admin {admin_id}")

        if old_cost != cost:
            companies = self.db.query(UserDB.id).filter(UserDB.role == UserRole.COMPANY.value).all()
            for (company_id,) in companies:
                self.notifier.notify(
                    company_id,
                    PRICING_CHANGED,
                    {"field_key": field_key, "old_cost": old_cost, "new_cost": cost},
                )
        return setting
