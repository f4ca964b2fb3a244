"""
Notification eligibility — who gets a stall reminder this hour.

A user is eligible when at least one activity has current == 0 and its
last_notified_at is NULL or older than truncate_to_hour(now) - freeze_window.
Truncating `now` makes every call within the same hour return the same set.

Delivery itself belongs to the chat front-end (a Notifier). Only after the
notifier returns without raising are the activities stamped via
ledger.mark_notified, so a failed delivery is retried next hour.

Two ways in:
  pending(now)              POST /triggers/notification returns this list; an
                            external sender delivers, then confirms through
                            POST /users/{id}/activities/notified
  run_batch(notifier, now)  for a process that embeds these services as a
                            library (a chat bot with its own scheduler);
                            delivers and stamps in one pass
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

import structlog

from app.core.clock import Clock, as_utc, notification_cutoff, utc_now
from app.core.errors import UserNotFoundError
from app.services.interfaces import ActivityLedger, UserRegistry
from app.services.rotation import UserOutcome, run_per_user

logger = structlog.get_logger(__name__)

DEFAULT_FREEZE_WINDOW = timedelta(hours=15)


@dataclass(frozen=True)
class PendingNotification:
    user_id: int
    notification_target: Optional[str]
    activities: list[str]


class Notifier(Protocol):
    def __call__(self, notification: PendingNotification) -> None: ...


class NotificationEvaluator:
    def __init__(
        self,
        registry: UserRegistry,
        ledger: ActivityLedger,
        clock: Clock = utc_now,
        freeze_window: timedelta = DEFAULT_FREEZE_WINDOW,
        max_workers: int = 8,
    ):
        self._registry = registry
        self._ledger = ledger
        self._clock = clock
        self._freeze_window = freeze_window
        self._max_workers = max_workers

    def _resolve(self, now: Optional[datetime], freeze_window: Optional[timedelta]) -> tuple[datetime, timedelta]:
        now = as_utc(now) if now is not None else as_utc(self._clock())
        return now, freeze_window if freeze_window is not None else self._freeze_window

    def _stalled(self, now: datetime, freeze_window: timedelta, deadline: Optional[float]) -> dict[int, list[str]]:
        return self._ledger.stalled_activities(notification_cutoff(now, freeze_window), deadline=deadline)

    def users_to_notify(
        self,
        now: Optional[datetime] = None,
        freeze_window: Optional[timedelta] = None,
        deadline: Optional[float] = None,
    ) -> set[int]:
        now, freeze_window = self._resolve(now, freeze_window)
        return set(self._stalled(now, freeze_window, deadline))

    def pending(
        self,
        now: Optional[datetime] = None,
        freeze_window: Optional[timedelta] = None,
        deadline: Optional[float] = None,
    ) -> list[PendingNotification]:
        """Eligible users with their delivery target and stalled activity names."""
        now, freeze_window = self._resolve(now, freeze_window)
        result = []
        for user_id, names in sorted(self._stalled(now, freeze_window, deadline).items()):
            try:
                user = self._registry.get(user_id, deadline=deadline)
            except UserNotFoundError:
                # Deregistered between the two reads.
                continue
            result.append(PendingNotification(
                user_id=user_id,
                notification_target=user.notification_target,
                activities=names,
            ))
        return result

    def run_batch(
        self,
        notifier: Notifier,
        now: Optional[datetime] = None,
        freeze_window: Optional[timedelta] = None,
        deadline: Optional[float] = None,
    ) -> list[UserOutcome]:
        """Deliver to every eligible user and stamp what was delivered."""
        now, freeze_window = self._resolve(now, freeze_window)
        by_user = {p.user_id: p for p in self.pending(now, freeze_window, deadline)}

        def notify_one(user_id: int) -> dict[str, Any]:
            notification = by_user[user_id]
            notifier(notification)
            stamped = self._ledger.mark_notified(user_id, notification.activities, now, deadline=deadline)
            return {"activities": notification.activities, "stamped": stamped}

        outcomes = run_per_user(set(by_user), notify_one, self._max_workers, batch="notification")
        logger.info(
            "notification_batch_complete",
            eligible=len(by_user),
            succeeded=sum(1 for o in outcomes if o.ok),
            failed=sum(1 for o in outcomes if not o.ok),
        )
        return outcomes
