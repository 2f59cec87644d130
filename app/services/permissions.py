# app/services/permissions.py
"""
ルーム内の実効権限を求める（I/O なしの純粋関数だけ）。

ロールは 3 種類:
- Owner      : room.creator_id 本人。全権限（停止・終了中は閲覧のみ）。保存データは見ない。
- Everyone   : 割り当ての無いユーザー（デフォルト）。
- Named(name): room_user_roles で割り当てられたロール。
"""
from dataclasses import dataclass
from typing import Union

from ..models.room import ROOM_STATUS_SUSPENDED, ROOM_STATUS_TERMINATED, Room
from ..schemas.permissions import PermissionSet, is_permission_name
from .errors import PermissionDenied

OWNER_ROLE = "owner"
EVERYONE_ROLE = "everyone"
RESERVED_ROLE_NAMES = (OWNER_ROLE, EVERYONE_ROLE)

# 運営が停止・終了したルームの状態
LOCKED_STATUSES = (ROOM_STATUS_SUSPENDED, ROOM_STATUS_TERMINATED)


@dataclass(frozen=True)
class Owner:
    name: str = OWNER_ROLE


@dataclass(frozen=True)
class Everyone:
    name: str = EVERYONE_ROLE


@dataclass(frozen=True)
class Named:
    name: str


Role = Union[Owner, Everyone, Named]


@dataclass(frozen=True)
class Actor:
    """認証済みの呼び出し元。developer は認証サービスが付けるフラグ。"""

    id: str | None
    developer: bool = False


def role_from_name(name: str) -> Role:
    if name == OWNER_ROLE:
        return Owner()
    if name == EVERYONE_ROLE:
        return Everyone()
    return Named(name)


def resolve_role(room: Room, account_id: str | None) -> Role:
    if account_id is not None and account_id == room.creator_id:
        return Owner()
    if account_id is not None:
        assignment = room.get_user_role(account_id)
        if assignment is not None:
            return role_from_name(assignment.role_name)
    return Everyone()


def _stored_permissions(room: Room, role_name: str) -> PermissionSet:
    role = room.get_role(role_name)
    if role is None:
        return PermissionSet()
    return PermissionSet.from_stored(role.permissions)


def is_locked(room: Room) -> bool:
    return room.status in LOCKED_STATUSES


# 停止・終了中のルームで owner に残すのは閲覧だけ
LOCKED_OWNER_PERMISSIONS = PermissionSet(view_and_join=True)


def permissions_for_role(room: Room, role: Role) -> PermissionSet:
    if isinstance(role, Owner):
        if is_locked(room):
            return LOCKED_OWNER_PERMISSIONS
        return PermissionSet.all_granted()
    if isinstance(role, Everyone):
        return _stored_permissions(room, EVERYONE_ROLE)
    if isinstance(role, Named):
        return _stored_permissions(room, role.name)
    raise TypeError(f"unknown role variant: {role!r}")


def resolve(room: Room, account_id: str | None) -> PermissionSet:
    """account_id の実効権限。未ログインは everyone 扱い。"""
    return permissions_for_role(room, resolve_role(room, account_id))


def has_permission(room: Room, actor: Actor | None, permission: str) -> bool:
    if not is_permission_name(permission):
        raise ValueError(f"unknown permission: {permission}")

    if actor is not None and actor.developer:
        # 運営のモデレーション用バイパス
        return True

    account_id = actor.id if actor is not None else None
    return resolve(room, account_id).granted(permission)


def require_permission(room: Room, actor: Actor | None, permission: str) -> None:
    if not has_permission(room, actor, permission):
        raise PermissionDenied(f"You do not have the '{permission}' permission in this room.")
