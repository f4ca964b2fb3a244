"""Tests for the chat command dispatcher."""
from dataclasses import dataclass

import pytest

from app.services.commands import (
    CreateActivity,
    DeleteActivity,
    Deregister,
    GetStats,
    ListActivities,
    PostActivity,
    Register,
    SetRotationHour,
    dispatch,
)


class TestDispatch:
    def test_register_then_create_and_post(self, registry, ledger):
        result = dispatch(Register(1, "chat-1"), registry, ledger)
        assert result.ok
        assert result.payload["user_id"] == 1
        assert result.payload["notification_target"] == "chat-1"

        assert dispatch(CreateActivity(1, "run"), registry, ledger).ok
        posted = dispatch(PostActivity(1, "run"), registry, ledger)
        assert posted.ok
        assert posted.payload["total"] == 0
        assert posted.payload["current"] == 1

    def test_list_and_stats(self, registry, ledger):
        dispatch(Register(1), registry, ledger)
        dispatch(CreateActivity(1, "run"), registry, ledger)
        dispatch(CreateActivity(1, "read"), registry, ledger)

        listed = dispatch(ListActivities(1), registry, ledger)
        assert sorted(listed.payload["names"]) == ["read", "run"]

        stats = dispatch(GetStats(1, "read"), registry, ledger)
        assert stats.payload == {"name": "read", "total": 0, "current": 0, "last_notified_at": None}

    def test_set_rotation_hour(self, registry, ledger):
        dispatch(Register(1), registry, ledger)
        result = dispatch(SetRotationHour(1, 21), registry, ledger)
        assert result.ok
        assert result.payload["rotation_hour"] == 21

    def test_delete_and_deregister(self, registry, ledger):
        dispatch(Register(1), registry, ledger)
        dispatch(CreateActivity(1, "run"), registry, ledger)
        assert dispatch(DeleteActivity(1, "run"), registry, ledger).ok
        assert dispatch(Deregister(1), registry, ledger).payload == {"user_id": 1}
        assert not dispatch(ListActivities(1), registry, ledger).ok

    @pytest.mark.parametrize("command, code", [
        (PostActivity(404, "run"), "USER_NOT_FOUND"),
        (GetStats(1, "missing"), "ACTIVITY_NOT_FOUND"),
        (CreateActivity(1, "run"), "ACTIVITY_EXISTS"),
        (SetRotationHour(1, 24), "INVALID_ROTATION_HOUR"),
        (CreateActivity(1, "   "), "INVALID_ACTIVITY_NAME"),
    ])
    def test_errors_become_failed_results(self, registry, ledger, command, code):
        dispatch(Register(1), registry, ledger)
        dispatch(CreateActivity(1, "run"), registry, ledger)

        result = dispatch(command, registry, ledger)
        assert not result.ok
        assert result.error_code == code
        assert result.message
        assert result.payload == {}

    def test_unknown_command_type(self, registry, ledger):
        @dataclass(frozen=True)
        class Shout:
            user_id: int

        with pytest.raises(TypeError):
            dispatch(Shout(1), registry, ledger)
