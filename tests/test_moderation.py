# tests/test_moderation.py
import pytest

from app.models.audit import RoomAuditEvent
from app.models.room import ROOM_STATUS_SUSPENDED, ROOM_STATUS_TERMINATED
from app.services.errors import InvalidInput
from app.services.moderation import (
    SUSPENDED_DESCRIPTION,
    TERMINATED_DESCRIPTION,
    ReportSeverity,
    classify_report,
)
from app.services.notifications import URGENT_NOTIFICATION_EVENT
from app.services.permissions import Everyone, has_permission, resolve_role


@pytest.fixture
def populated_room(room, roles, owner):
    """everyone に viewAndJoin、builder ロールに U1 を割り当てたルーム。"""
    roles.update_permissions(room, "everyone", owner, {"viewAndJoin": True, "managePermissions": True})
    roles.create_role(room, "builder", owner)
    roles.update_permissions(room, "builder", owner, {"createVersions": True})
    roles.set_user_role(room, owner, "U1", "builder")
    return room


# -----------------------------
# 一時停止
# -----------------------------

def test_suspend_locks_room_down(populated_room, moderation, developer, db, notifier, live, sink):
    room = populated_room

    moderation.suspend(room, developer, note="spam")

    assert room.status == ROOM_STATUS_SUSPENDED
    assert room.description == SUSPENDED_DESCRIPTION
    assert resolve_role(room, "U1") == Everyone()
    assert not has_permission(room, None, "viewAndJoin")
    assert not has_permission(room, None, "managePermissions")
    # 名前付きロール自体は残る
    assert room.get_role("builder") is not None

    event = db.query(RoomAuditEvent).filter_by(event_type="room_suspended").one()
    assert event.actor_id == developer.id
    assert event.note == "spam"

    inbox = notifier.list_for(room.creator_id)
    assert [n.template for n in inbox] == ["room_suspension_notice"]
    assert '"Test"' in inbox[0].parameters["bodyText"]

    assert live.drain(room.creator_id) == [{"event": URGENT_NOTIFICATION_EVENT, "data": {}}]
    assert room.creator_id not in live.closed
    assert sink.messages == [(f"!! MODERATION ACTION !! - User {developer.id} **suspended** room {room.id}", False)]


def test_suspend_terminated_room_is_rejected(room, moderation, developer):
    moderation.terminate(room, developer)

    with pytest.raises(InvalidInput):
        moderation.suspend(room, developer)
    assert room.status == ROOM_STATUS_TERMINATED


# -----------------------------
# 終了 / 完全削除
# -----------------------------

def test_terminate_strips_every_role(populated_room, moderation, developer, db, notifier, live):
    room = populated_room

    moderation.terminate(room, developer)

    assert room.status == ROOM_STATUS_TERMINATED
    assert room.description == TERMINATED_DESCRIPTION
    assert room.user_roles == []
    for role in room.roles:
        assert not any(role.permissions.values())
    assert has_permission(room, None, "viewAndJoin") is False

    assert db.query(RoomAuditEvent).filter_by(event_type="room_terminated").count() == 1
    assert [n.template for n in notifier.list_for(room.creator_id)] == ["room_termination_notice"]
    assert room.creator_id in live.closed


def test_permanent_terminate_deletes_room_but_keeps_audit(room, moderation, developer, store, db, notifier, live, sink):
    room_id = room.id
    creator_id = room.creator_id

    moderation.terminate(room, developer, note="legal", permanent=True)

    assert store.get(room_id) is None
    events = db.query(RoomAuditEvent).filter_by(room_id=room_id).all()
    assert "room_terminated_for_illegal_content" in [e.event_type for e in events]

    assert [n.template for n in notifier.list_for(creator_id)] == ["room_termination_notice"]
    assert creator_id in live.closed
    message, urgent = sink.messages[-1]
    assert urgent is True
    assert "EXTREME MODERATION ACTION" in message


# -----------------------------
# 通報
# -----------------------------

@pytest.mark.parametrize(
    "illegal, danger, expected",
    [
        (True, True, ReportSeverity.ILLEGAL_CONTENT_AND_DANGER_TO_LIFE),
        (True, False, ReportSeverity.ILLEGAL_CONTENT),
        (False, True, ReportSeverity.DANGER_TO_LIFE),
        (False, False, ReportSeverity.ROUTINE),
    ],
)
def test_classify_report(illegal, danger, expected):
    assert classify_report(illegal, danger) is expected


def test_routine_report_is_not_urgent(room, moderation, sink):
    severity = moderation.report(room, "R1", "offensive sign", False, False)

    assert severity is ReportSeverity.ROUTINE
    assert len(room.reports) == 1
    message, urgent = sink.messages[-1]
    assert urgent is False
    assert message.startswith("!! MODERATION ACTION !!")
    assert "offensive sign" in message


def test_emergency_report_is_urgent(room, moderation, sink):
    severity = moderation.report(room, "R1", "weapons", True, True)

    assert severity is ReportSeverity.ILLEGAL_CONTENT_AND_DANGER_TO_LIFE
    message, urgent = sink.messages[-1]
    assert urgent is True
    assert message.startswith("!! EMERGENCY !!")
    assert "IMMEDIATE THREAT TO HUMAN LIFE" in message
    assert "ILLEGAL CONTENT" in message
    assert room.reports[0].alleges_danger_to_life is True
