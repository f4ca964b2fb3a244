"""Service container and shared FastAPI dependencies."""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session, sessionmaker

from app.core.clock import Clock, utc_now
from app.core.config import Settings
from app.core.errors import TriggerForbiddenError
from app.services.ledger import SqlActivityLedger
from app.services.notifications import NotificationEvaluator
from app.services.registry import SqlUserRegistry
from app.services.retry import RetryPolicy
from app.services.rotation import RotationEngine


@dataclass
class Services:
    settings: Settings
    session_factory: sessionmaker[Session]
    clock: Clock
    registry: SqlUserRegistry
    ledger: SqlActivityLedger
    rotation: RotationEngine
    notifications: NotificationEvaluator


def build_services(
    settings: Settings,
    session_factory: sessionmaker[Session],
    clock: Clock = utc_now,
) -> Services:
    policy = RetryPolicy.from_settings(settings)
    registry = SqlUserRegistry(
        session_factory, policy=policy, clock=clock,
        default_rotation_hour=settings.DEFAULT_ROTATION_HOUR,
    )
    ledger = SqlActivityLedger(session_factory, policy=policy, clock=clock)
    return Services(
        settings=settings,
        session_factory=session_factory,
        clock=clock,
        registry=registry,
        ledger=ledger,
        rotation=RotationEngine(registry, ledger, clock=clock, max_workers=settings.ROTATION_WORKERS),
        notifications=NotificationEvaluator(
            registry, ledger, clock=clock,
            freeze_window=settings.freeze_window,
            max_workers=settings.ROTATION_WORKERS,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_db(services: Services = Depends(get_services)) -> Generator[Session, None, None]:
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


def request_deadline(
    x_request_timeout: Optional[float] = Header(
        default=None, gt=0, description="Seconds the caller is willing to wait.",
    ),
) -> Optional[float]:
    """Turn the caller's timeout into a time.monotonic() deadline."""
    if x_request_timeout is None:
        return None
    return time.monotonic() + x_request_timeout


def require_trigger_token(
    services: Services = Depends(get_services),
    x_trigger_token: Optional[str] = Header(default=None),
) -> None:
    """Guard for /triggers/*; open when TRIGGER_TOKEN is unset."""
    expected = services.settings.TRIGGER_TOKEN
    if not expected:
        return
    if x_trigger_token is None or not secrets.compare_digest(x_trigger_token, expected):
        raise TriggerForbiddenError()
