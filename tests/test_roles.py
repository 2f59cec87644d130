# tests/test_roles.py
import pytest

from app.models.audit import RoomAuditEvent
from app.services.errors import (
    InvalidInput,
    PermissionDenied,
    ReservedRoleName,
    RoleAlreadyExists,
    RoleNotFound,
)
from app.services.notifications import PERMISSION_UPDATE_EVENT
from app.services.permissions import Actor, Everyone, Named, resolve, resolve_role


# -----------------------------
# ロール作成
# -----------------------------

def test_create_role_starts_with_no_permissions(room, roles, owner):
    roles.create_role(room, "builder", owner)

    _, stored = roles.list_permissions(room)
    assert set(stored) == {"everyone", "builder"}
    assert not any(stored["builder"].values())


@pytest.mark.parametrize("name", ["owner", "everyone"])
def test_create_role_rejects_reserved_names(room, roles, owner, name):
    with pytest.raises(ReservedRoleName):
        roles.create_role(room, name, owner)


def test_create_role_rejects_duplicates(room, roles, owner):
    roles.create_role(room, "builder", owner)
    with pytest.raises(RoleAlreadyExists):
        roles.create_role(room, "builder", owner)


def test_create_role_rejects_bad_names(room, roles, owner):
    with pytest.raises(InvalidInput):
        roles.create_role(room, "", owner)
    with pytest.raises(InvalidInput):
        roles.create_role(room, "x" * 40, owner)


# -----------------------------
# 権限の更新
# -----------------------------

def test_owner_role_permissions_cannot_be_edited(room, roles, owner):
    with pytest.raises(ReservedRoleName):
        roles.update_permissions(room, "owner", owner, {"viewAndJoin": False})


def test_update_unknown_role(room, roles, owner):
    with pytest.raises(RoleNotFound):
        roles.update_permissions(room, "ghost", owner, {"viewAndJoin": True})


@pytest.mark.parametrize(
    "updates",
    [
        {"__proto__": True},
        {"viewAndJoin": "true"},
        {"viewAndJoin": 1},
        {"fly": True},
    ],
)
def test_update_rejects_invalid_payload_without_writing(room, roles, owner, updates):
    roles.create_role(room, "builder", owner)

    with pytest.raises(InvalidInput):
        roles.update_permissions(room, "builder", owner, {"kickPlayers": True, **updates})

    # 1件でも不正なら何も書かない
    _, stored = roles.list_permissions(room)
    assert stored["builder"]["kickPlayers"] is False


def test_update_rejects_prototype_role_name(room, roles, owner):
    with pytest.raises(InvalidInput):
        roles.update_permissions(room, "__proto__", owner, {"viewAndJoin": True})


def test_delegation_is_capped_by_own_permissions(room, roles, owner):
    roles.create_role(room, "manager", owner)
    roles.update_permissions(
        room, "manager", owner, {"managePermissions": True, "manageSubrooms": True}
    )
    roles.create_role(room, "builder", owner)
    roles.set_user_role(room, owner, "B", "manager")
    manager = Actor(id="B")

    # 自分が持っている権限は付けられる
    roles.update_permissions(room, "builder", manager, {"manageSubrooms": True})
    _, stored = roles.list_permissions(room)
    assert stored["builder"]["manageSubrooms"] is True
    assert resolve(room, None).granted("manageSubrooms") is False

    # 持っていない権限は付けられない（外すこともできない）
    with pytest.raises(PermissionDenied):
        roles.update_permissions(room, "builder", manager, {"deleteSubrooms": True})
    with pytest.raises(PermissionDenied):
        roles.update_permissions(room, "builder", manager, {"kickPlayers": False})


def test_update_writes_one_audit_and_notifies_holders(room, roles, owner, db, live):
    roles.create_role(room, "builder", owner)
    roles.set_user_role(room, owner, "U1", "builder")
    live.drain("U1")

    updated = roles.update_permissions(room, "builder", owner, {"createVersions": True})

    assert updated.granted("createVersions") is True
    events = db.query(RoomAuditEvent).filter_by(event_type="role_permissions_updated").all()
    assert len(events) == 1
    assert events[0].note == "builder"
    assert events[0].previous_value["createVersions"] is False
    assert events[0].new_value["createVersions"] is True
    assert live.drain("U1") == [{"event": PERMISSION_UPDATE_EVENT, "data": room.id}]


# -----------------------------
# ロール削除
# -----------------------------

def test_delete_role_reverts_holders_to_everyone(room, roles, owner, db, live):
    roles.create_role(room, "builder", owner)
    roles.update_permissions(room, "builder", owner, {"createVersions": True})
    roles.set_user_role(room, owner, "U1", "builder")
    roles.set_user_role(room, owner, "U2", "builder")
    live.drain("U1")
    live.drain("U2")

    affected = roles.delete_role(room, "builder", owner)

    assert sorted(affected) == ["U1", "U2"]
    assert room.get_role("builder") is None
    assert resolve_role(room, "U1") == Everyone()
    users, _ = roles.list_permissions(room)
    assert users == {}

    events = db.query(RoomAuditEvent).filter_by(event_type="role_deleted").all()
    assert len(events) == 1
    assert events[0].previous_value["name"] == "builder"
    assert sorted(events[0].previous_value["users"]) == ["U1", "U2"]

    for account_id in ("U1", "U2"):
        assert live.drain(account_id) == [{"event": PERMISSION_UPDATE_EVENT, "data": room.id}]


@pytest.mark.parametrize("name", ["owner", "everyone"])
def test_delete_reserved_role(room, roles, owner, name):
    with pytest.raises(ReservedRoleName):
        roles.delete_role(room, name, owner)


def test_delete_unknown_role(room, roles, owner):
    with pytest.raises(RoleNotFound):
        roles.delete_role(room, "ghost", owner)


# -----------------------------
# ユーザーへの割り当て
# -----------------------------

def test_set_user_role_assigns_and_audits(room, roles, owner, db, live):
    roles.create_role(room, "builder", owner)

    roles.set_user_role(room, owner, "U1", "builder")

    assert resolve_role(room, "U1") == Named("builder")
    event = db.query(RoomAuditEvent).filter_by(event_type="user_roles_updated").one()
    assert event.previous_value == "everyone"
    assert event.new_value == "builder"
    assert event.note == "U1"
    assert live.drain("U1") == [{"event": PERMISSION_UPDATE_EVENT, "data": room.id}]


def test_set_user_role_to_everyone_removes_assignment(room, roles, owner):
    roles.create_role(room, "builder", owner)
    roles.set_user_role(room, owner, "U1", "builder")

    roles.set_user_role(room, owner, "U1", "everyone")

    assert room.get_user_role("U1") is None
    users, _ = roles.list_permissions(room)
    assert "U1" not in users


def test_set_user_role_guards(room, roles, owner):
    roles.create_role(room, "builder", owner)

    with pytest.raises(ReservedRoleName):
        roles.set_user_role(room, owner, "U1", "owner")
    with pytest.raises(PermissionDenied):
        roles.set_user_role(room, owner, owner.id, "builder")
    with pytest.raises(PermissionDenied):
        roles.set_user_role(room, Actor(id="B"), owner.id, "builder")
    with pytest.raises(RoleNotFound):
        roles.set_user_role(room, owner, "U1", "ghost")
