"""
Tests for the activity ledger CRUD, posting and notification bookkeeping.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.errors import (
    ActivityAlreadyExistsError,
    ActivityNotFoundError,
    InvalidActivityNameError,
    MissingReferenceError,
    UserNotFoundError,
)
from app.models import User

T0 = datetime(2026, 3, 10, 5, tzinfo=timezone.utc)


@pytest.fixture()
def user(registry):
    registry.register(1, "chat-1")
    return 1


class TestCreate:
    def test_zeroed_counters(self, ledger, user):
        stats = ledger.create(user, "run")
        assert (stats.name, stats.total, stats.current) == ("run", 0, 0)

    def test_requires_existing_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            ledger.create(77, "run")

    def test_user_deleted_mid_create(self, ledger, monkeypatch):
        # the user row vanishes between the lookup and the insert
        monkeypatch.setattr(
            "app.services.ledger.require_user",
            lambda db, user_id, lock=False: SimpleNamespace(last_activity_at=None),
        )
        with pytest.raises(UserNotFoundError) as info:
            ledger.create(77, "run")
        assert info.value.details == {"user_id": 77}
        assert isinstance(info.value.__cause__, MissingReferenceError)

    def test_duplicate_name_conflicts(self, ledger, user):
        ledger.create(user, "run")
        with pytest.raises(ActivityAlreadyExistsError):
            ledger.create(user, "run")

    def test_name_kept_as_supplied(self, ledger, user):
        ledger.create(user, "  Morning Run ")
        ledger.create(user, "morning run")
        assert ledger.list_names(user) == ["Morning Run", "morning run"]

    def test_same_name_different_users(self, ledger, registry, user):
        registry.register(2, None)
        ledger.create(user, "run")
        ledger.create(2, "run")
        assert ledger.list_names(2) == ["run"]

    @pytest.mark.parametrize("bad", ["", "   ", "x" * 65, None, 5])
    def test_invalid_names(self, ledger, user, bad):
        with pytest.raises(InvalidActivityNameError):
            ledger.create(user, bad)


class TestDelete:
    def test_delete(self, ledger, user):
        ledger.create(user, "run")
        ledger.delete(user, "run")
        assert ledger.list_names(user) == []

    def test_missing_activity(self, ledger, user):
        with pytest.raises(ActivityNotFoundError):
            ledger.delete(user, "run")

    def test_missing_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            ledger.delete(8, "run")


class TestPost:
    def test_increments_current(self, ledger, user):
        ledger.create(user, "run")
        ledger.post(user, "run")
        stats = ledger.post(user, "run")
        assert (stats.total, stats.current) == (0, 2)

    def test_stamps_user_last_post(self, ledger, user, db, clock):
        ledger.create(user, "run")
        clock.advance(minutes=7)
        ledger.post(user, "run")
        stored = db.get(User, user).last_post_at
        assert stored.replace(tzinfo=timezone.utc) == T0 + timedelta(minutes=7)

    def test_appends_to_history(self, ledger, user, clock):
        ledger.create(user, "run")
        ledger.post(user, "run")
        clock.advance(hours=1)
        ledger.post(user, "run")
        history = ledger.history(user, "run")
        assert [p.posted_at for p in history] == [T0 + timedelta(hours=1), T0]

    def test_unknown_activity(self, ledger, user):
        with pytest.raises(ActivityNotFoundError):
            ledger.post(user, "swim")

    def test_unknown_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            ledger.post(9, "run")

    def test_user_deleted_mid_post(self, ledger, monkeypatch):
        def lost_race(*args, **kwargs):
            raise MissingReferenceError(operation="post_activity", cause="FOREIGN KEY constraint failed")

        monkeypatch.setattr("app.services.ledger.run_in_transaction", lost_race)
        with pytest.raises(UserNotFoundError):
            ledger.post(1, "run")

    def test_does_not_touch_other_activities(self, ledger, user):
        ledger.create(user, "run")
        ledger.create(user, "read")
        ledger.post(user, "run")
        assert ledger.stats(user, "read").current == 0


class TestReads:
    def test_stats_unknown_activity(self, ledger, user):
        with pytest.raises(ActivityNotFoundError):
            ledger.stats(user, "run")

    def test_list_names_sorted(self, ledger, user):
        for name in ("walk", "code", "read"):
            ledger.create(user, name)
        assert ledger.list_names(user) == ["code", "read", "walk"]

    def test_list_names_unknown_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            ledger.list_names(55)

    def test_list_activities_carries_counters(self, ledger, user):
        ledger.create(user, "run")
        ledger.create(user, "code")
        ledger.post(user, "run")
        items = ledger.list_activities(user)
        assert [(a.name, a.current) for a in items] == [("code", 0), ("run", 1)]

    def test_history_limit(self, ledger, user, clock):
        ledger.create(user, "run")
        for _ in range(5):
            ledger.post(user, "run")
            clock.advance(minutes=1)
        assert len(ledger.history(user, "run", limit=2)) == 2


class TestMarkNotified:
    def test_stamps_named_activities(self, ledger, user):
        ledger.create(user, "run")
        ledger.create(user, "read")
        stamped = ledger.mark_notified(user, ["run"], T0)
        assert stamped == 1
        assert ledger.stats(user, "run").last_notified_at == T0
        assert ledger.stats(user, "read").last_notified_at is None

    def test_unknown_names_ignored(self, ledger, user):
        ledger.create(user, "run")
        assert ledger.mark_notified(user, ["run", "ghost"], T0) == 1

    def test_unknown_user(self, ledger):
        with pytest.raises(UserNotFoundError):
            ledger.mark_notified(404, ["run"], T0)

    def test_empty_list_is_noop(self, ledger, user):
        assert ledger.mark_notified(user, [], T0) == 0
