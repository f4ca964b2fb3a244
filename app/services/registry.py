"""
User registry: existence and per-user configuration.

Public API (SqlUserRegistry)
----------------------------
register(user_id, target)            → UserView   (idempotent upsert)
deregister(user_id)                  → None       (cascades to activities + posts)
get(user_id)                         → UserView
set_rotation_hour(user_id, hour)     → UserView
users_due_for_rotation(hour, now)    → set[int]
users_without_activities()           → set[int]

Every call is one run_in_transaction unit.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.orm import Session, sessionmaker

from app.core.clock import Clock, as_utc, rotation_cutoff, utc_now
from app.core.errors import ConflictError, InvalidRotationHourError, InvalidUserError, UserNotFoundError
from app.models.activity import Activity
from app.models.post import Post
from app.models.user import User
from app.services.interfaces import UserView
from app.services.retry import RetryPolicy, run_in_transaction

NOTIFICATION_TARGET_MAX_LENGTH = 128


# ---------------------------------------------------------------------------
# Helpers shared with the ledger
# ---------------------------------------------------------------------------

def _opt_utc(dt: Optional[datetime]) -> Optional[datetime]:
    return as_utc(dt) if dt is not None else None


def to_view(user: User) -> UserView:
    return UserView(
        user_id=user.user_id,
        rotation_hour=user.rotation_hour,
        notification_target=user.notification_target,
        last_rotation_at=_opt_utc(user.last_rotation_at),
        last_post_at=_opt_utc(user.last_post_at),
    )


def require_user(db: Session, user_id: int, lock: bool = False) -> User:
    """Load the user row or raise UserNotFoundError. `lock` takes a row lock."""
    stmt = select(User).where(User.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    user = db.execute(stmt).scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def validate_user_id(user_id) -> int:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise InvalidUserError("user_id must be a positive integer", {"user_id": user_id})
    return user_id


def validate_rotation_hour(hour) -> int:
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        raise InvalidRotationHourError(hour)
    return hour


# ---------------------------------------------------------------------------
# SQL backend
# ---------------------------------------------------------------------------

class SqlUserRegistry:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: RetryPolicy = RetryPolicy(),
        clock: Clock = utc_now,
        default_rotation_hour: int = 12,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock
        self._default_rotation_hour = validate_rotation_hour(default_rotation_hour)

    def _run(self, operation: str, work, deadline: Optional[float]):
        return run_in_transaction(
            self._session_factory, work,
            policy=self._policy, deadline=deadline, operation=operation,
        )

    def register(
        self,
        user_id: int,
        notification_target: Optional[str],
        deadline: Optional[float] = None,
    ) -> UserView:
        """
        Create the user with the default rotation hour, or, if it exists,
        update its notification target. Rotation hour and activities of an
        existing user are left untouched. A None target keeps the stored one.
        """
        validate_user_id(user_id)
        if notification_target is not None and len(notification_target) > NOTIFICATION_TARGET_MAX_LENGTH:
            raise InvalidUserError(
                f"notification_target longer than {NOTIFICATION_TARGET_MAX_LENGTH} characters",
                {"user_id": user_id},
            )

        def work(db: Session) -> UserView:
            now = as_utc(self._clock())
            user = db.get(User, user_id)
            if user is None:
                user = User(
                    user_id=user_id,
                    rotation_hour=self._default_rotation_hour,
                    notification_target=notification_target,
                    last_activity_at=now,
                )
                db.add(user)
            else:
                if notification_target is not None:
                    user.notification_target = notification_target
                user.last_activity_at = now
            db.flush()
            return to_view(user)

        try:
            return self._run("register", work, deadline)
        except ConflictError:
            # Lost an insert race with a concurrent register; the row exists now.
            return self._run("register", work, deadline)

    def deregister(self, user_id: int, deadline: Optional[float] = None) -> None:
        """Delete the user, its activities and its post log in one transaction."""

        def work(db: Session) -> None:
            require_user(db, user_id, lock=True)
            db.execute(delete(Post).where(Post.user_id == user_id))
            db.execute(delete(Activity).where(Activity.user_id == user_id))
            db.execute(delete(User).where(User.user_id == user_id))

        self._run("deregister", work, deadline)

    def get(self, user_id: int, deadline: Optional[float] = None) -> UserView:
        return self._run("get_user", lambda db: to_view(require_user(db, user_id)), deadline)

    def set_rotation_hour(self, user_id: int, hour: int, deadline: Optional[float] = None) -> UserView:
        validate_rotation_hour(hour)

        def work(db: Session) -> UserView:
            user = require_user(db, user_id, lock=True)
            user.rotation_hour = hour
            user.last_activity_at = as_utc(self._clock())
            db.flush()
            return to_view(user)

        return self._run("set_rotation_hour", work, deadline)

    def users_due_for_rotation(
        self,
        hour: int,
        now: datetime,
        deadline: Optional[float] = None,
    ) -> set[int]:
        """
        Users whose rotation_hour == hour and who have not rotated since
        rotation_cutoff(now) (exclusive). Never-rotated users are due.
        """
        validate_rotation_hour(hour)
        cutoff = rotation_cutoff(now)

        def work(db: Session) -> set[int]:
            rows = db.execute(
                select(User.user_id).where(
                    User.rotation_hour == hour,
                    or_(User.last_rotation_at.is_(None), User.last_rotation_at < cutoff),
                )
            ).scalars()
            return set(rows)

        return self._run("users_due_for_rotation", work, deadline)

    def users_without_activities(self, deadline: Optional[float] = None) -> set[int]:
        def work(db: Session) -> set[int]:
            has_activity = exists().where(Activity.user_id == User.user_id)
            return set(db.execute(select(User.user_id).where(~has_activity)).scalars())

        return self._run("users_without_activities", work, deadline)
