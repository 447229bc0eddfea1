"""
Tests for the admin Review Queue and archive console listings.
"""
from datetime import timedelta

import pytest

from conftest import T0, make_user
from ezapply.errors import InvalidRequest, NotFound
from ezapply.services.lifecycle import (
    AccountStateMachine, LifecycleContext, ReviewQueueService, paginate,
)
from ezapply.services.lifecycle.review_queue import PENDING_DEACTIVATION


@pytest.fixture
def machine(db):
    return AccountStateMachine(db, grace_period_days=5)


@pytest.fixture
def queue_data(db, machine):
    """
    One account in its grace period (day 3), one deactivated account with a
    pending reactivation request (day 8) and one with a rejected request (day 9).
    """
    grace = make_user(db, profile=True, email="grace@example.com")
    machine.request_deactivation(grace, LifecycleContext.for_actor(grace.id, T0 + timedelta(days=3)))

    pending = make_user(db, email="pending@example.com")
    rejected = make_user(db, email="rejected@example.com")
    for user in (pending, rejected):
        machine.request_deactivation(user, LifecycleContext.for_actor(user.id, T0))
        machine.execute_deactivation(user.id, LifecycleContext.system(T0 + timedelta(days=5)))

    pending_request = machine.request_reactivation(
        pending, "Back from leave", LifecycleContext.for_actor(pending.id, T0 + timedelta(days=8))
    )
    rejected_request = machine.request_reactivation(
        rejected, None, LifecycleContext.for_actor(rejected.id, T0 + timedelta(days=9))
    )
    machine.review_reactivation(
        rejected_request.id, "reject", "Duplicate account", LifecycleContext.for_actor("admin", T0 + timedelta(days=10))
    )
    return {
        "grace": grace,
        "pending_request": pending_request,
        "rejected_request": rejected_request,
    }


class TestReviewQueue:
    """Combined listing."""

    def test_combined_newest_first(self, db, queue_data):
        page = ReviewQueueService(db).list_queue()

        assert page["total"] == 3
        assert [e["id"] for e in page["data"]] == [
            queue_data["rejected_request"].id,
            queue_data["pending_request"].id,
            f"deactivation_{queue_data['grace'].id}",
        ]

    def test_grace_period_entry_shape(self, db, queue_data):
        [entry] = ReviewQueueService(db).list_queue(type="deactivation")["data"]

        assert entry["type"] == "deactivation"
        assert entry["status"] == PENDING_DEACTIVATION
        assert entry["first_name"] == "Maria"
        assert entry["created_at"] == T0 + timedelta(days=3)
        assert entry["deactivation_scheduled_at"] == T0 + timedelta(days=8)

    def test_status_filter_applies_to_reactivations(self, db, queue_data):
        page = ReviewQueueService(db).list_queue(type="reactivation", status="pending")
        assert [e["id"] for e in page["data"]] == [queue_data["pending_request"].id]

        page = ReviewQueueService(db).list_queue(status="rejected")
        types = sorted(e["type"] for e in page["data"])
        assert types == ["deactivation", "reactivation"]
        assert page["data"][0]["admin_notes"] == "Duplicate account"

    def test_search_matches_email_and_name(self, db, queue_data):
        service = ReviewQueueService(db)

        assert [e["email"] for e in service.list_queue(search="pending@")["data"]] == ["pending@example.com"]
        assert [e["email"] for e in service.list_queue(search="santos")["data"]] == ["grace@example.com"]
        assert service.list_queue(search="nobody")["total"] == 0

    def test_unknown_type(self, db):
        with pytest.raises(InvalidRequest):
            ReviewQueueService(db).list_queue(type="deletion")

    def test_pagination(self, db, queue_data):
        service = ReviewQueueService(db, page_size=2)

        first = service.list_queue(page=1)
        second = service.list_queue(page=2)

        assert len(first["data"]) == 2
        assert first["last_page"] == 2
        assert second["from"] == 3
        assert second["to"] == 3
        assert second["data"][0]["type"] == "deactivation"


class TestArchiveListing:
    """Archive console."""

    def test_archives_newest_first(self, db, machine):
        first = make_user(db)
        second = make_user(db)
        machine.request_deactivation(first, LifecycleContext.for_actor(first.id, T0))
        machine.request_deactivation(second, LifecycleContext.for_actor(second.id, T0 + timedelta(days=1)))
        machine.execute_deactivation(first.id, LifecycleContext.system(T0 + timedelta(days=5)))
        machine.execute_deactivation(second.id, LifecycleContext.system(T0 + timedelta(days=6)))

        page = ReviewQueueService(db).list_archives()

        assert page["total"] == 2
        assert [r.original_user_id for r in page["data"]] == [second.id, first.id]

    def test_get_archive_missing(self, db):
        with pytest.raises(NotFound):
            ReviewQueueService(db).get_archive("missing")


class TestPaginate:
    def test_empty_page(self):
        assert paginate([], 0, 1, 20) == {
            "data": [], "total": 0, "per_page": 20, "current_page": 1,
            "last_page": 1, "from": None, "to": None,
        }

    def test_middle_page(self):
        envelope = paginate(["c", "d"], 5, 2, 2)
        assert envelope["from"] == 3
        assert envelope["to"] == 4
        assert envelope["last_page"] == 3
