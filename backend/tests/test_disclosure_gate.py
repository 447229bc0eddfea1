"""
Tests for the Field Disclosure Gate.

The gate charges once per (viewer, application, field):
- first request debits and creates the grant together
- replays (sequential or racing) are free successes
- insufficient balance creates nothing
"""
import pytest

from conftest import fund, make_application, make_company, make_user
from ezapply.errors import DisclosureForbidden, InsufficientBalance, InvalidRequest, NotFound
from ezapply.models.db_models import ApplicantViewDB, CreditTransactionDB, PricingSettingDB, TransactionType
from ezapply.services.credits import CreditLedgerService, FieldDisclosureGate
from ezapply.services.notifications import CREDIT_BALANCE_LOW, Notifier


@pytest.fixture
def viewer(db):
    return make_company(db)


@pytest.fixture
def application(db, viewer):
    applicant = make_user(db, profile=True)
    return make_application(db, applicant, viewer)


def usage_entries(db, user_id):
    return db.query(CreditTransactionDB).filter(
        CreditTransactionDB.user_id == user_id,
        CreditTransactionDB.type == TransactionType.USAGE,
    ).all()


# =============================================================================
# TEST: CHARGE ONCE
# =============================================================================

class TestChargeOnce:
    """Idempotent disclosure."""

    def test_balance_ten_cost_five_scenario(self, db, viewer, application, notifier):
        """First request charges 5; the identical second request is free."""
        fund(db, viewer, 10)
        gate = FieldDisclosureGate(db, notifier=notifier)

        first = gate.request_disclosure(viewer.id, application.id, "phone", cost=5)
        assert first.charged == 5
        assert first.balance == 5
        assert first.already_disclosed is False
        assert gate.is_disclosed(viewer.id, application.id, "phone") is True

        second = gate.request_disclosure(viewer.id, application.id, "phone", cost=5)
        assert second.charged == 0
        assert second.balance == 5
        assert second.already_disclosed is True
        assert second.disclosed is True

        assert len(usage_entries(db, viewer.id)) == 1
        assert db.query(ApplicantViewDB).count() == 1

    def test_grant_records_cost_and_applicant(self, db, viewer, application):
        fund(db, viewer, 3)
        FieldDisclosureGate(db).request_disclosure(viewer.id, application.id, "email", cost=2)

        grant = db.query(ApplicantViewDB).one()
        assert grant.company_id == viewer.id
        assert grant.user_id == application.user_id
        assert grant.cost == 2
        assert grant.paid is True

    def test_fields_are_charged_independently(self, db, viewer, application):
        fund(db, viewer, 10)
        gate = FieldDisclosureGate(db)

        gate.request_disclosure(viewer.id, application.id, "phone", cost=2)
        gate.request_disclosure(viewer.id, application.id, "address", cost=2)

        assert CreditLedgerService(db).balance(viewer.id) == 6
        assert set(gate.paid_fields(viewer.id, application.id)) == {"phone", "address"}

    def test_concurrent_duplicate_is_not_charged_twice(self, db, viewer, application, monkeypatch):
        """A request that misses the existence check loses on the unique key, without charge."""
        fund(db, viewer, 10)
        gate = FieldDisclosureGate(db)
        gate.request_disclosure(viewer.id, application.id, "financial", cost=4)

        # Simulate a racing request that read "not disclosed" before the winner committed
        monkeypatch.setattr(gate, "is_disclosed", lambda *args: False)
        replay = gate.request_disclosure(viewer.id, application.id, "financial", cost=4)

        assert replay.already_disclosed is True
        assert replay.charged == 0
        assert CreditLedgerService(db).balance(viewer.id) == 6
        assert len(usage_entries(db, viewer.id)) == 1
        assert db.query(ApplicantViewDB).count() == 1


# =============================================================================
# TEST: FAILURES
# =============================================================================

class TestDisclosureFailures:
    """Nothing is written when disclosure fails."""

    def test_insufficient_balance_creates_no_grant(self, db, viewer, application):
        fund(db, viewer, 2)
        gate = FieldDisclosureGate(db)

        with pytest.raises(InsufficientBalance):
            gate.request_disclosure(viewer.id, application.id, "phone", cost=5)

        assert gate.is_disclosed(viewer.id, application.id, "phone") is False
        assert CreditLedgerService(db).balance(viewer.id) == 2
        assert usage_entries(db, viewer.id) == []

    def test_customer_cannot_disclose(self, db, application):
        customer = make_user(db)
        fund(db, customer, 10)
        with pytest.raises(DisclosureForbidden):
            FieldDisclosureGate(db).request_disclosure(customer.id, application.id, "phone")

    def test_owner_cannot_disclose_own_application(self, db):
        company = make_company(db)
        fund(db, company, 10)
        own = make_application(db, company)
        with pytest.raises(DisclosureForbidden):
            FieldDisclosureGate(db).request_disclosure(company.id, own.id, "phone")

    def test_unknown_application(self, db, viewer):
        with pytest.raises(NotFound):
            FieldDisclosureGate(db).request_disclosure(viewer.id, "no-such-application", "phone")

    def test_unknown_field_key(self, db, viewer, application):
        with pytest.raises(InvalidRequest):
            FieldDisclosureGate(db).request_disclosure(viewer.id, application.id, "password_hash")

    def test_negative_cost_rejected(self, db, viewer, application):
        fund(db, viewer, 3)
        gate = FieldDisclosureGate(db)

        with pytest.raises(InvalidRequest):
            gate.request_disclosure(viewer.id, application.id, "phone", cost=-5)

        assert gate.is_disclosed(viewer.id, application.id, "phone") is False
        assert db.query(ApplicantViewDB).count() == 0
        assert CreditLedgerService(db).balance(viewer.id) == 3

    def test_zero_cost_grants_without_ledger_entry(self, db, viewer, application):
        result = FieldDisclosureGate(db).request_disclosure(viewer.id, application.id, "phone", cost=0)

        assert result.charged == 0
        assert result.already_disclosed is False
        assert usage_entries(db, viewer.id) == []


# =============================================================================
# TEST: PRICING / NOTIFICATIONS / PAID FIELDS
# =============================================================================

class TestPricingAndNotifications:
    """Cost lookup and low-balance events."""

    def test_default_cost_is_package_cost(self, db, viewer, application):
        fund(db, viewer, 10)
        result = FieldDisclosureGate(db).request_disclosure(viewer.id, application.id, "package")
        assert result.charged == 1

    def test_stored_price_is_used(self, db, viewer, application):
        db.add(PricingSettingDB(field_key="attachments", cost=3))
        db.commit()
        fund(db, viewer, 10)

        result = FieldDisclosureGate(db).request_disclosure(viewer.id, application.id, "attachments")
        assert result.charged == 3
        assert result.balance == 7

    def test_low_balance_notification(self, db, viewer, application, notifier):
        fund(db, viewer, 6)
        FieldDisclosureGate(db, notifier=notifier).request_disclosure(viewer.id, application.id, "phone", cost=1)

        events = notifier.events(CREDIT_BALANCE_LOW)
        assert events == [(viewer.id, CREDIT_BALANCE_LOW, {"balance": 5})]

    def test_no_low_balance_notification_above_threshold_or_at_zero(self, db, viewer, application, notifier):
        fund(db, viewer, 20)
        gate = FieldDisclosureGate(db, notifier=notifier)
        gate.request_disclosure(viewer.id, application.id, "phone", cost=1)
        gate.request_disclosure(viewer.id, application.id, "email", cost=19)

        assert notifier.events(CREDIT_BALANCE_LOW) == []

    def test_failing_notifier_does_not_undo_disclosure(self, db, viewer, application):
        class BrokenNotifier(Notifier):
            def deliver(self, user_id, event, payload):
                raise ConnectionError("mail server down")

        fund(db, viewer, 3)
        result = FieldDisclosureGate(db, notifier=BrokenNotifier()).request_disclosure(
            viewer.id, application.id, "phone", cost=1
        )

        assert result.charged == 1
        assert FieldDisclosureGate(db).is_disclosed(viewer.id, application.id, "phone") is True

    def test_paid_fields_empty_for_other_viewer(self, db, viewer, application):
        fund(db, viewer, 5)
        gate = FieldDisclosureGate(db)
        gate.request_disclosure(viewer.id, application.id, "phone", cost=1)

        other = make_company(db)
        assert gate.paid_fields(other.id, application.id) == []
        assert gate.paid_fields(viewer.id, application.id) == ["phone"]
