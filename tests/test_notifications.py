"""
Tests for notification eligibility and the notify batch.

Freeze-window boundaries use an on-the-hour `now` so that truncation to the
hour does not shift the comparison point.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.services.notifications import NotificationEvaluator, PendingNotification

T0 = datetime(2026, 3, 10, 5, tzinfo=timezone.utc)
FREEZE = timedelta(hours=15)


@pytest.fixture()
def evaluator(registry, ledger, clock):
    return NotificationEvaluator(registry, ledger, clock=clock, freeze_window=FREEZE, max_workers=1)


@pytest.fixture()
def stalled_user(registry, ledger):
    registry.register(1, "chat-1")
    ledger.create(1, "run")
    return 1


class TestUsersToNotify:
    def test_never_notified_stalled_activity_included(self, evaluator, stalled_user):
        assert evaluator.users_to_notify(T0, FREEZE) == {1}

    def test_active_activity_excluded(self, evaluator, ledger, stalled_user):
        ledger.post(stalled_user, "run")
        assert evaluator.users_to_notify(T0, FREEZE) == set()

    def test_inside_freeze_window_excluded(self, evaluator, ledger, stalled_user):
        ledger.mark_notified(stalled_user, ["run"], T0 - (FREEZE - timedelta(minutes=1)))
        assert evaluator.users_to_notify(T0, FREEZE) == set()

    def test_outside_freeze_window_included(self, evaluator, ledger, stalled_user):
        ledger.mark_notified(stalled_user, ["run"], T0 - (FREEZE + timedelta(minutes=1)))
        assert evaluator.users_to_notify(T0, FREEZE) == {1}

    def test_same_hour_calls_agree(self, evaluator, ledger, stalled_user):
        ledger.mark_notified(stalled_user, ["run"], T0 - FREEZE - timedelta(minutes=30))
        first = evaluator.users_to_notify(T0 + timedelta(minutes=1), FREEZE)
        second = evaluator.users_to_notify(T0 + timedelta(minutes=59), FREEZE)
        assert first == second == {1}

    def test_one_stalled_activity_is_enough(self, evaluator, ledger, stalled_user):
        ledger.create(stalled_user, "read")
        ledger.post(stalled_user, "run")
        assert evaluator.users_to_notify(T0, FREEZE) == {1}

    def test_defaults_come_from_clock_and_config(self, evaluator, stalled_user):
        assert evaluator.users_to_notify() == {1}

    def test_user_without_activities_not_included(self, evaluator, registry):
        registry.register(2, None)
        assert evaluator.users_to_notify(T0, FREEZE) == set()


class TestPending:
    def test_carries_target_and_names(self, evaluator, ledger, stalled_user):
        ledger.create(stalled_user, "code")
        assert evaluator.pending(T0, FREEZE) == [
            PendingNotification(user_id=1, notification_target="chat-1", activities=["code", "run"]),
        ]

    def test_only_stalled_names_listed(self, evaluator, ledger, stalled_user):
        ledger.create(stalled_user, "code")
        ledger.post(stalled_user, "code")
        assert evaluator.pending(T0, FREEZE)[0].activities == ["run"]


class TestRunBatch:
    def test_marks_after_delivery_and_goes_quiet(self, evaluator, stalled_user):
        delivered = []
        outcomes = evaluator.run_batch(delivered.append, T0, FREEZE)

        assert [o.ok for o in outcomes] == [True]
        assert delivered[0].activities == ["run"]
        # Repeat inside the freeze window: nothing to send.
        assert evaluator.users_to_notify(T0 + timedelta(hours=14), FREEZE) == set()
        assert evaluator.users_to_notify(T0 + timedelta(hours=16), FREEZE) == {1}

    def test_failed_delivery_is_not_marked(self, evaluator, registry, ledger, stalled_user):
        registry.register(2, "chat-2")
        ledger.create(2, "run")

        def notifier(notification):
            if notification.user_id == 1:
                raise ConnectionError("chat api down")

        outcomes = evaluator.run_batch(notifier, T0, FREEZE)

        by_id = {o.user_id: o for o in outcomes}
        assert not by_id[1].ok
        assert by_id[1].error_code == "INTERNAL_ERROR"
        assert by_id[2].ok
        assert ledger.stats(1, "run").last_notified_at is None
        assert ledger.stats(2, "run").last_notified_at == T0
        assert evaluator.users_to_notify(T0 + timedelta(hours=1), FREEZE) == {1}
