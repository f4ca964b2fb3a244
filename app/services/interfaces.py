"""
Storage capabilities the batch engines depend on.

RotationEngine and NotificationEvaluator only see these protocols, so a
test double (or another backend) can stand in for the SQL implementations
in app/services/registry.py and app/services/ledger.py.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol


@dataclass(frozen=True)
class UserView:
    user_id: int
    rotation_hour: int
    notification_target: Optional[str]
    last_rotation_at: Optional[datetime]
    last_post_at: Optional[datetime]


@dataclass(frozen=True)
class ActivityStats:
    name: str
    total: int
    current: int
    last_notified_at: Optional[datetime] = None


@dataclass(frozen=True)
class RotationSummary:
    user_id: int
    rotated_at: datetime
    extended: int   # activities whose `current` was banked into `total`
    reset: int      # activities whose `total` dropped to 0
    skipped: bool = False  # already rotated inside the 23h window; nothing changed


@dataclass(frozen=True)
class PostRecord:
    activity_name: str
    posted_at: datetime


class UserRegistry(Protocol):
    def register(self, user_id: int, notification_target: Optional[str], deadline: Optional[float] = None) -> UserView: ...

    def deregister(self, user_id: int, deadline: Optional[float] = None) -> None: ...

    def get(self, user_id: int, deadline: Optional[float] = None) -> UserView: ...

    def set_rotation_hour(self, user_id: int, hour: int, deadline: Optional[float] = None) -> UserView: ...

    def users_due_for_rotation(self, hour: int, now: datetime, deadline: Optional[float] = None) -> set[int]: ...

    def users_without_activities(self, deadline: Optional[float] = None) -> set[int]: ...


class ActivityLedger(Protocol):
    def create(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats: ...

    def delete(self, user_id: int, name: str, deadline: Optional[float] = None) -> None: ...

    def post(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats: ...

    def stats(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats: ...

    def list_names(self, user_id: int, deadline: Optional[float] = None) -> list[str]: ...

    def list_activities(self, user_id: int, deadline: Optional[float] = None) -> list[ActivityStats]: ...

    def history(self, user_id: int, name: str, limit: int = 50, deadline: Optional[float] = None) -> list[PostRecord]: ...

    def rotate(
        self, user_id: int, now: datetime, deadline: Optional[float] = None, force: bool = False,
    ) -> RotationSummary: ...

    def stalled_activities(self, cutoff: datetime, deadline: Optional[float] = None) -> dict[int, list[str]]: ...

    def mark_notified(
        self, user_id: int, names: Iterable[str], at: datetime, deadline: Optional[float] = None,
    ) -> int: ...
