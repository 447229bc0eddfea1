"""
Tests for the command-line scripts (admin seeding, cron deactivation run).
"""
import json
from datetime import timedelta

from conftest import T0, make_user
from ezapply.models.db_models import UserDB, UserRole


class TestSeedAdmin:
    def test_creates_admin(self, db):
        from scripts.seed_admin import create_admin_user

        assert create_admin_user(db, "root@ezapply.ph", "securepassword123") is True
        admin = db.query(UserDB).filter(UserDB.email == "root@ezapply.ph").one()
        assert admin.role == UserRole.ADMIN.value

    def test_promotes_existing_user(self, db):
        from scripts.seed_admin import create_admin_user

        user = make_user(db, email="staff@ezapply.ph")
        assert create_admin_user(db, "staff@ezapply.ph", "irrelevant") is True
        db.refresh(user)
        assert user.role == UserRole.ADMIN.value

    def test_refuses_deactivated_user(self, db):
        from scripts.seed_admin import create_admin_user

        make_user(db, email="gone@ezapply.ph", is_deactivated=True)
        assert create_admin_user(db, "gone@ezapply.ph", "irrelevant") is False


class TestProcessDeactivations:
    """Cron entry point."""

    def test_run_prints_report(self, db, monkeypatch, capsys):
        from scripts import process_deactivations

        user = make_user(db, deactivation_requested_at=T0, deactivation_scheduled_at=T0 + timedelta(days=5))
        user_id = user.id
        monkeypatch.setattr(process_deactivations, "SessionLocal", lambda: db)

        assert process_deactivations.main([]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["deactivated"] == 1
        assert report["details"]["deactivated"][0]["user_id"] == user_id

    def test_dry_run_changes_nothing(self, db, monkeypatch, capsys):
        from scripts import process_deactivations

        user = make_user(db, deactivation_requested_at=T0, deactivation_scheduled_at=T0 + timedelta(days=5))
        user_id = user.id
        monkeypatch.setattr(process_deactivations, "SessionLocal", lambda: db)

        assert process_deactivations.main(["--dry-run"]) == 0

        assert "1 account(s) due" in capsys.readouterr().out
        assert db.query(UserDB).filter(UserDB.id == user_id).one().is_deactivated is False

    def test_unknown_argument(self, capsys):
        from scripts import process_deactivations

        assert process_deactivations.main(["--now"]) == 2
        assert "Usage" in capsys.readouterr().out
