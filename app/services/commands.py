"""
Inbound command enumeration for the chat front-end.

The front-end parses "/post run" or a button press into one of the frozen
dataclasses below and hands it to `dispatch`, which performs exactly one
registry/ledger call. Application errors come back as a failed
CommandResult carrying the error `code`; the front-end decides the wording.

The HTTP routers call the registry and ledger directly. `dispatch` is the entry
point for a front-end that imports these services in-process instead of going
through the API (`build_services` gives it the registry and ledger).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional, Union

from app.core.errors import LedgerException
from app.services.interfaces import ActivityLedger, UserRegistry


@dataclass(frozen=True)
class Register:
    user_id: int
    notification_target: Optional[str] = None


@dataclass(frozen=True)
class Deregister:
    user_id: int


@dataclass(frozen=True)
class CreateActivity:
    user_id: int
    name: str


@dataclass(frozen=True)
class DeleteActivity:
    user_id: int
    name: str


@dataclass(frozen=True)
class PostActivity:
    user_id: int
    name: str


@dataclass(frozen=True)
class ListActivities:
    user_id: int


@dataclass(frozen=True)
class GetStats:
    user_id: int
    name: str


@dataclass(frozen=True)
class SetRotationHour:
    user_id: int
    hour: int


Command = Union[
    Register, Deregister, CreateActivity, DeleteActivity,
    PostActivity, ListActivities, GetStats, SetRotationHour,
]


@dataclass
class CommandResult:
    ok: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    message: Optional[str] = None


_Handler = Callable[[Any, UserRegistry, ActivityLedger], dict[str, Any]]


def _register(cmd: Register, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return asdict(registry.register(cmd.user_id, cmd.notification_target))


def _deregister(cmd: Deregister, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    registry.deregister(cmd.user_id)
    return {"user_id": cmd.user_id}


def _create(cmd: CreateActivity, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return asdict(ledger.create(cmd.user_id, cmd.name))


def _delete(cmd: DeleteActivity, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    ledger.delete(cmd.user_id, cmd.name)
    return {"user_id": cmd.user_id, "name": cmd.name}


def _post(cmd: PostActivity, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return asdict(ledger.post(cmd.user_id, cmd.name))


def _list(cmd: ListActivities, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return {"names": ledger.list_names(cmd.user_id)}


def _stats(cmd: GetStats, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return asdict(ledger.stats(cmd.user_id, cmd.name))


def _set_hour(cmd: SetRotationHour, registry: UserRegistry, ledger: ActivityLedger) -> dict[str, Any]:
    return asdict(registry.set_rotation_hour(cmd.user_id, cmd.hour))


_HANDLERS: dict[type, _Handler] = {
    Register: _register,
    Deregister: _deregister,
    CreateActivity: _create,
    DeleteActivity: _delete,
    PostActivity: _post,
    ListActivities: _list,
    GetStats: _stats,
    SetRotationHour: _set_hour,
}


def dispatch(command: Command, registry: UserRegistry, ledger: ActivityLedger) -> CommandResult:
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported command: {type(command).__name__}")
    try:
        return CommandResult(ok=True, payload=handler(command, registry, ledger))
    except LedgerException as exc:
        return CommandResult(ok=False, error_code=exc.code, message=exc.message)
