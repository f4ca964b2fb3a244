"""
Activity ledger: named activities per user, their counters and the post log.

Public API (SqlActivityLedger)
------------------------------
create(user_id, name)                 → ActivityStats
delete(user_id, name)                 → None
post(user_id, name)                   → ActivityStats
stats(user_id, name)                  → ActivityStats
list_names(user_id)                   → list[str]          (lexicographic)
list_activities(user_id)              → list[ActivityStats]
history(user_id, name, limit)         → list[PostRecord]   (newest first)
rotate(user_id, now, force=False)      → RotationSummary
stalled_activities(cutoff)            → dict[user_id, list[name]]
mark_notified(user_id, names, at)     → int                (rows stamped)

Rotation
--------
One transaction per user:
  1. lock the user row (SELECT ... FOR UPDATE)
  2. claim the window: UPDATE users SET last_rotation_at = now
     WHERE last_rotation_at IS NULL OR last_rotation_at < rotation_cutoff(now)
     (no row updated → already rotated, skip; `force` drops the condition)
  3. for every activity:
       current == 0 → total = 0                  (streak broken)
       current  > 0 → total += current, current = 0  (day banked)
     as a single UPDATE with a CASE expression

Steps 1–3 commit together or not at all.

Posting increments `current` in SQL (current = current + 1) so a post racing
a rotation lands before or after it but is never lost.

A create or post racing a deregister trips the users foreign key; that
surfaces as UserNotFoundError, the same as losing the race earlier.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

import structlog
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from app.core.clock import Clock, as_utc, rotation_cutoff, utc_now
from app.core.errors import (
    ActivityAlreadyExistsError,
    ActivityNotFoundError,
    InvalidActivityNameError,
    MissingReferenceError,
    UserNotFoundError,
)
from app.models.activity import ACTIVITY_NAME_MAX_LENGTH, Activity
from app.models.post import Post
from app.models.user import User
from app.services.interfaces import ActivityStats, PostRecord, RotationSummary
from app.services.registry import require_user
from app.services.retry import RetryPolicy, run_in_transaction

logger = structlog.get_logger(__name__)

HISTORY_MAX_LIMIT = 500


def normalize_activity_name(name) -> str:
    """Strip outer whitespace; case and inner spacing are kept as supplied."""
    if not isinstance(name, str):
        raise InvalidActivityNameError(name, "must be a string")
    cleaned = name.strip()
    if not cleaned:
        raise InvalidActivityNameError(name, "must not be empty")
    if len(cleaned) > ACTIVITY_NAME_MAX_LENGTH:
        raise InvalidActivityNameError(name, f"longer than {ACTIVITY_NAME_MAX_LENGTH} characters")
    return cleaned


def _to_stats(activity: Activity) -> ActivityStats:
    return ActivityStats(
        name=activity.activity_name,
        total=activity.total,
        current=activity.current,
        last_notified_at=as_utc(activity.last_notified_at) if activity.last_notified_at else None,
    )


def _require_activity(db: Session, user_id: int, name: str) -> Activity:
    activity = db.get(Activity, (user_id, name))
    if activity is None:
        raise ActivityNotFoundError(user_id, name)
    return activity


class SqlActivityLedger:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: RetryPolicy = RetryPolicy(),
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock

    def _run(self, operation: str, work, deadline: Optional[float]):
        return run_in_transaction(
            self._session_factory, work,
            policy=self._policy, deadline=deadline, operation=operation,
        )

    def _now(self) -> datetime:
        return as_utc(self._clock())

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats:
        name = normalize_activity_name(name)

        def work(db: Session) -> ActivityStats:
            user = require_user(db, user_id)
            if db.get(Activity, (user_id, name)) is not None:
                raise ActivityAlreadyExistsError(user_id, name)
            activity = Activity(user_id=user_id, activity_name=name, total=0, current=0)
            db.add(activity)
            user.last_activity_at = self._now()
            db.flush()
            return _to_stats(activity)

        try:
            return self._run("create_activity", work, deadline)
        except MissingReferenceError as exc:
            raise UserNotFoundError(user_id) from exc

    def delete(self, user_id: int, name: str, deadline: Optional[float] = None) -> None:
        name = normalize_activity_name(name)

        def work(db: Session) -> None:
            user = require_user(db, user_id)
            db.delete(_require_activity(db, user_id, name))
            user.last_activity_at = self._now()

        self._run("delete_activity", work, deadline)

    def post(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats:
        """current += 1, stamp the user and append to the post log."""
        name = normalize_activity_name(name)

        def work(db: Session) -> ActivityStats:
            now = self._now()
            require_user(db, user_id)
            result = db.execute(
                update(Activity)
                .where(Activity.user_id == user_id, Activity.activity_name == name)
                .values(current=Activity.current + 1, last_post_at=now)
            )
            if result.rowcount == 0:
                raise ActivityNotFoundError(user_id, name)
            db.execute(
                update(User)
                .where(User.user_id == user_id)
                .values(last_post_at=now, last_activity_at=now)
            )
            db.add(Post(user_id=user_id, activity_name=name, posted_at=now))
            db.flush()
            row = db.execute(
                select(Activity).where(Activity.user_id == user_id, Activity.activity_name == name)
                .execution_options(populate_existing=True)
            ).scalar_one()
            return _to_stats(row)

        try:
            return self._run("post_activity", work, deadline)
        except MissingReferenceError as exc:
            raise UserNotFoundError(user_id) from exc

    def stats(self, user_id: int, name: str, deadline: Optional[float] = None) -> ActivityStats:
        name = normalize_activity_name(name)

        def work(db: Session) -> ActivityStats:
            require_user(db, user_id)
            return _to_stats(_require_activity(db, user_id, name))

        return self._run("stats", work, deadline)

    def list_names(self, user_id: int, deadline: Optional[float] = None) -> list[str]:
        def work(db: Session) -> list[str]:
            require_user(db, user_id)
            return list(db.execute(
                select(Activity.activity_name)
                .where(Activity.user_id == user_id)
                .order_by(Activity.activity_name)
            ).scalars())

        return self._run("list_activities", work, deadline)

    def list_activities(self, user_id: int, deadline: Optional[float] = None) -> list[ActivityStats]:
        def work(db: Session) -> list[ActivityStats]:
            require_user(db, user_id)
            rows = db.execute(
                select(Activity)
                .where(Activity.user_id == user_id)
                .order_by(Activity.activity_name)
            ).scalars()
            return [_to_stats(a) for a in rows]

        return self._run("list_activities", work, deadline)

    def history(
        self,
        user_id: int,
        name: str,
        limit: int = 50,
        deadline: Optional[float] = None,
    ) -> list[PostRecord]:
        name = normalize_activity_name(name)
        limit = max(1, min(limit, HISTORY_MAX_LIMIT))

        def work(db: Session) -> list[PostRecord]:
            require_user(db, user_id)
            _require_activity(db, user_id, name)
            rows = db.execute(
                select(Post)
                .where(Post.user_id == user_id, Post.activity_name == name)
                .order_by(Post.posted_at.desc(), Post.id.desc())
                .limit(limit)
            ).scalars()
            return [PostRecord(activity_name=p.activity_name, posted_at=as_utc(p.posted_at)) for p in rows]

        return self._run("post_history", work, deadline)

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def _rotate_counters(self, db: Session, user_id: int) -> tuple[int, int]:
        """Apply the streak rule to every activity of the user. Returns (extended, reset)."""
        extended, reset = db.execute(
            select(
                func.sum(case((Activity.current > 0, 1), else_=0)),
                func.sum(case((Activity.current == 0, 1), else_=0)),
            ).where(Activity.user_id == user_id)
        ).one()
        db.execute(
            update(Activity)
            .where(Activity.user_id == user_id)
            .values(
                total=case(
                    (Activity.current == 0, 0),
                    else_=Activity.total + Activity.current,
                ),
                current=0,
            )
            .execution_options(synchronize_session=False)
        )
        return extended or 0, reset or 0

    def _stamp_rotation(
        self,
        db: Session,
        user_id: int,
        now: datetime,
        cutoff: Optional[datetime] = None,
    ) -> bool:
        """
        Claim the rotation by stamping last_rotation_at. With a `cutoff`, the
        stamp only lands when the user has not rotated since then; False means
        another rotation already claimed this window.
        """
        stmt = update(User).where(User.user_id == user_id)
        if cutoff is not None:
            stmt = stmt.where(
                or_(User.last_rotation_at.is_(None), User.last_rotation_at < cutoff)
            )
        result = db.execute(
            stmt.values(last_rotation_at=now).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def rotate(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        deadline: Optional[float] = None,
        force: bool = False,
    ) -> RotationSummary:
        """
        Bank or reset every activity of the user and stamp last_rotation_at,
        atomically. A user already rotated since rotation_cutoff(now) is left
        untouched and reported as skipped, unless `force` is set.
        """
        rotated_at = as_utc(now) if now is not None else self._now()
        cutoff = None if force else rotation_cutoff(rotated_at)

        def work(db: Session) -> RotationSummary:
            require_user(db, user_id, lock=True)
            if not self._stamp_rotation(db, user_id, rotated_at, cutoff):
                logger.info("rotation_skipped", user_id=user_id, rotated_at=rotated_at.isoformat())
                return RotationSummary(
                    user_id=user_id, rotated_at=rotated_at, extended=0, reset=0, skipped=True,
                )
            extended, reset = self._rotate_counters(db, user_id)
            return RotationSummary(
                user_id=user_id, rotated_at=rotated_at, extended=extended, reset=reset,
            )

        return self._run("rotate", work, deadline)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def stalled_activities(self, cutoff: datetime, deadline: Optional[float] = None) -> dict[int, list[str]]:
        """
        Activities with current == 0 whose last reminder is older than
        `cutoff` (or that were never reminded), grouped by user.
        """
        cutoff = as_utc(cutoff)

        def work(db: Session) -> dict[int, list[str]]:
            rows = db.execute(
                select(Activity.user_id, Activity.activity_name)
                .where(
                    Activity.current == 0,
                    or_(Activity.last_notified_at.is_(None), Activity.last_notified_at < cutoff),
                )
                .order_by(Activity.user_id, Activity.activity_name)
            ).all()
            grouped: dict[int, list[str]] = {}
            for user_id, name in rows:
                grouped.setdefault(user_id, []).append(name)
            return grouped

        return self._run("stalled_activities", work, deadline)

    def mark_notified(
        self,
        user_id: int,
        names: Iterable[str],
        at: datetime,
        deadline: Optional[float] = None,
    ) -> int:
        """Stamp last_notified_at on the named activities. Unknown names are skipped."""
        cleaned = sorted({normalize_activity_name(n) for n in names})
        at = as_utc(at)

        def work(db: Session) -> int:
            require_user(db, user_id)
            if not cleaned:
                return 0
            result = db.execute(
                update(Activity)
                .where(Activity.user_id == user_id, Activity.activity_name.in_(cleaned))
                .values(last_notified_at=at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        return self._run("mark_notified", work, deadline)
