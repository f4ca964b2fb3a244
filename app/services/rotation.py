"""
Rotation engine — hourly batch that rolls over every user due in the current
UTC hour bucket.

Per invocation (no state kept between runs):
  1. bucket = hour_bucket(now)
  2. ids    = registry.users_due_for_rotation(bucket, now)
  3. ledger.rotate(id, now) for each id, one worker per user

Two overlapping runs may select the same user; ledger.rotate re-checks the
window under the user lock, so the second one reports `skipped` instead of
rotating again.

A failing user is logged and reported in its UserOutcome; the rest of the
batch carries on. Outcomes come back sorted by user_id.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from app.core.clock import Clock, as_utc, hour_bucket, utc_now
from app.core.errors import LedgerException
from app.services.interfaces import ActivityLedger, UserRegistry

logger = structlog.get_logger(__name__)


@dataclass
class UserOutcome:
    user_id: int
    ok: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)


def run_per_user(
    user_ids: set[int],
    unit: Callable[[int], dict[str, Any]],
    max_workers: int,
    batch: str,
) -> list[UserOutcome]:
    """
    Run `unit(user_id)` concurrently for every id and turn each result or
    exception into a UserOutcome. Never raises for a single user's failure.
    """

    def guarded(user_id: int) -> UserOutcome:
        try:
            return UserOutcome(user_id=user_id, ok=True, detail=unit(user_id) or {})
        except LedgerException as exc:
            logger.warning(f"{batch}_user_failed", user_id=user_id, code=exc.code, error=exc.message)
            return UserOutcome(user_id=user_id, ok=False, error_code=exc.code, error=exc.message)
        except Exception as exc:
            logger.exception(f"{batch}_user_failed", user_id=user_id)
            return UserOutcome(user_id=user_id, ok=False, error_code="INTERNAL_ERROR", error=str(exc))

    ordered = sorted(user_ids)
    if not ordered:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(ordered)))) as pool:
        return list(pool.map(guarded, ordered))


@dataclass
class RotationReport:
    hour: int
    now: datetime
    outcomes: list[UserOutcome]

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.ok and o.detail.get("skipped"))


class RotationEngine:
    def __init__(
        self,
        registry: UserRegistry,
        ledger: ActivityLedger,
        clock: Clock = utc_now,
        max_workers: int = 8,
    ):
        self._registry = registry
        self._ledger = ledger
        self._clock = clock
        self._max_workers = max_workers

    def run(self, now: Optional[datetime] = None, deadline: Optional[float] = None) -> RotationReport:
        """Rotate the cohort due at `now` (defaults to the clock)."""
        now = as_utc(now) if now is not None else as_utc(self._clock())
        hour = hour_bucket(now)
        due = self._registry.users_due_for_rotation(hour, now, deadline=deadline)

        def rotate_one(user_id: int) -> dict[str, Any]:
            summary = self._ledger.rotate(user_id, now, deadline=deadline)
            return {"extended": summary.extended, "reset": summary.reset, "skipped": summary.skipped}

        outcomes = run_per_user(due, rotate_one, self._max_workers, batch="rotation")
        report = RotationReport(hour=hour, now=now, outcomes=outcomes)
        logger.info(
            "rotation_batch_complete",
            hour=hour, due=len(due), succeeded=report.succeeded,
            skipped=report.skipped, failed=report.failed,
        )
        return report
