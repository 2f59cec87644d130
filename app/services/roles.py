# app/services/roles.py
"""
ルーム内ロールの作成・権限変更・削除と、ユーザーへのロール割り当て。

予約ロール:
- owner    : 作成者だけが暗黙に持つ。作成・編集・削除・割り当て不可。
- everyone : 割り当ての無いユーザーのロール。権限の編集だけ可能。
"""
import re
import uuid
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError

from ..logging_config import get_logger
from ..models.room import Room, RoomRole, RoomUserRole
from ..schemas.permissions import PermissionSet, is_permission_name
from .audit import AuditEventType, AuditRecorder
from .errors import (
    InvalidInput,
    PermissionDenied,
    ReservedRoleName,
    RoleAlreadyExists,
    RoleNotFound,
)
from .notifications import Notifier
from .permissions import (
    EVERYONE_ROLE,
    OWNER_ROLE,
    RESERVED_ROLE_NAMES,
    Actor,
    Owner,
    has_permission,
    is_locked,
    resolve_role,
)
from .room_store import RoomStore

logger = get_logger(__name__)

# ロール名 / サブルーム名に使える文字
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _-]{0,31}$")


def validate_name(name: Any, kind: str = "role") -> str:
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        raise InvalidInput(
            f"Invalid {kind} name. Use 1-32 letters, digits, spaces, '_' or '-', starting with a letter or digit."
        )
    return name


class RoleAdministration:
    def __init__(self, store: RoomStore, audit: AuditRecorder, notifier: Notifier):
        self.store = store
        self.audit = audit
        self.notifier = notifier

    # -----------------------------
    # 参照
    # -----------------------------

    def list_permissions(self, room: Room) -> tuple[dict[str, str], dict[str, dict[str, bool]]]:
        """(users, roles) を返す。owner は編集できないので含めない。"""
        users = {a.account_id: a.role_name for a in room.user_roles}
        roles = {r.name: PermissionSet.from_stored(r.permissions).to_dict() for r in room.roles}
        return users, roles

    def _require_role(self, room: Room, name: str) -> RoomRole:
        role = room.get_role(name)
        if role is None:
            raise RoleNotFound()
        return role

    def _holders(self, room: Room, role_name: str) -> list[str]:
        return [a.account_id for a in room.user_roles if a.role_name == role_name]

    # -----------------------------
    # 作成
    # -----------------------------

    def create_role(self, room: Room, name: str, actor: Actor | None = None) -> RoomRole:
        if name in RESERVED_ROLE_NAMES:
            raise ReservedRoleName("Cannot create a role with a reserved name like 'owner' or 'everyone'.")
        validate_name(name)
        if room.get_role(name) is not None:
            raise RoleAlreadyExists()

        role = RoomRole(
            id=str(uuid.uuid4()),
            room_id=room.id,
            name=name,
            permissions=PermissionSet().to_dict(),
        )
        room.roles.append(role)
        try:
            self.store.save(room)
        except IntegrityError as exc:
            raise RoleAlreadyExists() from exc

        self.audit.record(
            room.id,
            actor.id if actor else None,
            AuditEventType.ROLE_CREATED,
            new_value=name,
        )
        return role

    # -----------------------------
    # 権限の更新
    # -----------------------------

    def update_permissions(
        self,
        room: Room,
        role_name: str,
        actor: Actor,
        updates: Mapping[str, Any],
    ) -> PermissionSet:
        if role_name == OWNER_ROLE:
            raise ReservedRoleName("You cannot edit the permissions of the 'owner' role.")
        if "__proto__" in role_name:
            raise InvalidInput("Possible prototype pollution attack detected.")
        role = self._require_role(room, role_name)

        if not isinstance(updates, Mapping):
            raise InvalidInput("Field 'permissions' must be an object of booleans.")

        # 全キーを検証してから書き込む
        actor_is_owner = isinstance(resolve_role(room, actor.id), Owner) and not is_locked(room)
        for key, value in updates.items():
            if "__proto__" in key:
                raise InvalidInput("Possible prototype pollution attack detected.")
            if not is_permission_name(key):
                raise InvalidInput(f"Unknown permission `{key}`.")
            if not isinstance(value, bool):
                raise InvalidInput(f"All values must be booleans. (permission `{key}`)")
            # 自分が持っていない権限は他人にも付け外しできない
            if not actor_is_owner and not has_permission(room, actor, key):
                raise PermissionDenied("You cannot manage permissions you don't have.")

        previous = PermissionSet.from_stored(role.permissions)
        updated = previous.with_updates(updates)
        role.permissions = updated.to_dict()
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.ROLE_PERMISSIONS_UPDATED,
            previous_value=previous.to_dict(),
            new_value=updated.to_dict(),
            note=role_name,
        )

        holders = self._holders(room, role_name) if role_name != EVERYONE_ROLE else []
        for account_id in holders:
            self.notifier.permission_update(account_id, room.id)
        return updated

    # -----------------------------
    # 削除
    # -----------------------------

    def delete_role(self, room: Room, role_name: str, actor: Actor | None = None) -> list[str]:
        """ロールを消し、持っていたユーザーを everyone に戻す。戻したユーザーを返す。"""
        if role_name in RESERVED_ROLE_NAMES:
            raise ReservedRoleName("You cannot delete a reserved role. (i.e 'owner' or 'everyone')")
        role = self._require_role(room, role_name)

        previous = PermissionSet.from_stored(role.permissions).to_dict()
        affected = self._holders(room, role_name)

        room.roles.remove(role)
        for assignment in [a for a in room.user_roles if a.role_name == role_name]:
            room.user_roles.remove(assignment)
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id if actor else None,
            AuditEventType.ROLE_DELETED,
            previous_value={"name": role_name, "permissions": previous, "users": affected},
        )

        for account_id in affected:
            self.notifier.permission_update(account_id, room.id)
        return affected

    # -----------------------------
    # ユーザーへの割り当て
    # -----------------------------

    def set_user_role(self, room: Room, actor: Actor, target_account_id: str, role_name: str) -> None:
        if role_name == OWNER_ROLE:
            raise ReservedRoleName(
                "The 'owner' role cannot be manually assigned. Contact support if you're trying to transfer a room."
            )
        if target_account_id == actor.id:
            raise PermissionDenied("You cannot set your own role.")
        if target_account_id == room.creator_id:
            raise PermissionDenied("You cannot set the role of the Room Creator.")

        current = resolve_role(room, target_account_id)
        if isinstance(current, Owner):
            raise PermissionDenied("You cannot set the role of the Room Owner.")

        if role_name != EVERYONE_ROLE:
            self._require_role(room, role_name)

        assignment = room.get_user_role(target_account_id)
        if role_name == EVERYONE_ROLE:
            # everyone は行を持たない
            if assignment is not None:
                room.user_roles.remove(assignment)
        elif assignment is not None:
            assignment.role_name = role_name
        else:
            room.user_roles.append(
                RoomUserRole(room_id=room.id, account_id=target_account_id, role_name=role_name)
            )
        self.store.save(room)

        self.notifier.permission_update(target_account_id, room.id)
        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.USER_ROLES_UPDATED,
            previous_value=current.name,
            new_value=role_name,
            note=target_account_id,
        )
