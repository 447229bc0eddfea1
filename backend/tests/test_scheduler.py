"""
Tests for the Deactivation Scheduler.

Requests made on day 0 with a 5-day grace period:
- a run on day 4 deactivates nothing
- a run on day 5 deactivates exactly those accounts
- one account failing does not stop the batch
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import T0, make_user
from ezapply.errors import AlreadyDeactivated
from ezapply.models.db_models import ArchivedUserDB, UserDB
from ezapply.services.lifecycle import AccountStateMachine, DeactivationScheduler, LifecycleContext


@pytest.fixture
def machine(db, notifier):
    return AccountStateMachine(db, notifier=notifier, grace_period_days=5)


def requested(db, machine, count=1, days=0):
    users = []
    for _ in range(count):
        user = make_user(db)
        machine.request_deactivation(user, LifecycleContext.for_actor(user.id, T0 + timedelta(days=days)))
        users.append(user)
    return users


class TestDueAccounts:
    """Selection of due accounts."""

    def test_due_only_after_grace_period(self, db, machine):
        requested(db, machine, count=2)
        scheduler = DeactivationScheduler(db, machine)

        assert scheduler.due_accounts(T0 + timedelta(days=4)) == []
        assert len(scheduler.due_accounts(T0 + timedelta(days=5))) == 2

    def test_cancelled_and_active_accounts_not_due(self, db, machine):
        make_user(db)
        [user] = requested(db, machine)
        machine.cancel_deactivation(user, LifecycleContext.system(T0 + timedelta(days=1)))

        assert DeactivationScheduler(db, machine).due_accounts(T0 + timedelta(days=30)) == []

    def test_ordered_by_schedule(self, db, machine):
        later = requested(db, machine, days=2)[0]
        earlier = requested(db, machine, days=0)[0]

        due = DeactivationScheduler(db, machine).due_accounts(T0 + timedelta(days=10))
        assert [u.id for u in due] == [earlier.id, later.id]


class TestRun:
    """Batch execution and its report."""

    def test_day_four_deactivates_nothing(self, db, machine):
        requested(db, machine, count=3)

        report = DeactivationScheduler(db, machine).run(T0 + timedelta(days=4))

        assert report["found"] == 0
        assert report["deactivated"] == 0
        assert db.query(ArchivedUserDB).count() == 0

    def test_day_five_deactivates_due_accounts(self, db, machine):
        users = requested(db, machine, count=3)
        make_user(db)

        report = DeactivationScheduler(db, machine).run(T0 + timedelta(days=5))

        assert report["found"] == 3
        assert report["deactivated"] == 3
        assert report["errors"] == 0
        assert report["run_date"] == (T0 + timedelta(days=5)).isoformat()
        assert {d["user_id"] for d in report["details"]["deactivated"]} == {u.id for u in users}
        assert db.query(UserDB).filter(UserDB.is_deactivated.is_(True)).count() == 3
        assert db.query(ArchivedUserDB).count() == 3

    def test_second_run_finds_nothing(self, db, machine):
        requested(db, machine, count=2)
        scheduler = DeactivationScheduler(db, machine)
        scheduler.run(T0 + timedelta(days=5))

        report = scheduler.run(T0 + timedelta(days=6))

        assert report["found"] == 0
        assert db.query(ArchivedUserDB).count() == 2

    def test_one_failure_does_not_stop_batch(self, db, machine, monkeypatch):
        users = requested(db, machine, count=3)
        broken_id = users[1].id
        real_execute = machine.execute_deactivation

        def execute(user_id, ctx):
            if user_id == broken_id:
                raise RuntimeError("archive storage unavailable")
            return real_execute(user_id, ctx)

        monkeypatch.setattr(machine, "execute_deactivation", execute)
        scheduler = DeactivationScheduler(db, machine)
        report = scheduler.run(T0 + timedelta(days=5))

        assert report["deactivated"] == 2
        assert report["errors"] == 1
        assert report["details"]["errors"][0]["user_id"] == broken_id
        assert "archive storage unavailable" in report["details"]["errors"][0]["error"]

        # Still due next run
        assert [u.id for u in scheduler.due_accounts(T0 + timedelta(days=6))] == [broken_id]

    def test_concurrent_archive_is_skipped_not_failed(self, db, machine, monkeypatch):
        """Another run's committed archive trips the live-archive index for this run."""
        [user] = requested(db, machine)
        machine.archival.archive(user, LifecycleContext.system(T0 + timedelta(days=5)))
        db.commit()
        monkeypatch.setattr(machine.archival, "live_archive", lambda user_id: None)

        report = DeactivationScheduler(db, machine).run(T0 + timedelta(days=5, hours=1))

        assert report["skipped"] == 1
        assert report["errors"] == 0
        assert db.query(ArchivedUserDB).count() == 1

    def test_lost_claim_is_skipped_not_failed(self, db):
        user = make_user(db, deactivation_requested_at=T0, deactivation_scheduled_at=T0 + timedelta(days=5))
        state_machine = MagicMock()
        state_machine.execute_deactivation.side_effect = AlreadyDeactivated("claimed by another run")

        report = DeactivationScheduler(db, state_machine).run(T0 + timedelta(days=5))

        assert report["skipped"] == 1
        assert report["errors"] == 0
        assert report["details"]["skipped"] == [
            {"user_id": user.id, "email": user.email, "reason": "claimed by another run"}
        ]
        state_machine.execute_deactivation.assert_called_once()

    def test_notifications_sent_per_account(self, db, machine, notifier):
        users = requested(db, machine, count=2)
        DeactivationScheduler(db, machine).run(T0 + timedelta(days=5))

        assert {user_id for user_id, _, _ in notifier.sent} == {u.id for u in users}
