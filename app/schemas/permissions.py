# app/schemas/permissions.py
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# 権限フラグ一覧（固定）。キーは API / 保存形式で使う名前。
PERMISSION_DESCRIPTIONS: dict[str, str] = {
    "viewAndJoin": "Can players view information about this room or join?",
    "createVersions": "Can players save this room?",
    "setPublicVersion": "Can players set the version of the room that is loaded by default?",
    "viewSettings": "Can players view the settings of this room at all?",
    "viewPermissions": "Can players view the permissions & roles of all users?",
    "managePermissions": "Can players edit the permissions & roles of all users?",
    "useCreationTool": "Can players use their Creation Tool?",
    "kickPlayers": "Can players kick other players?",
    "mutePlayers": "Can players mute other players?",
    "manageSubrooms": "Can players update and create subrooms on this room?",
    "deleteSubrooms": "Can players delete subrooms on this room?",
    "editDescription": "Can players edit the description of this room?",
    "setHomeSubroom": "Can players set the home subroom of this room?",
    "manageTags": "Can players edit the tags of this room?",
    "manageContentFlags": "Can players edit the room's content flags?",
    "setRoomPhoto": "Can players set the room's photo?",
}

PERMISSION_NAMES: tuple[str, ...] = tuple(PERMISSION_DESCRIPTIONS)


class PermissionSet(BaseModel):
    """
    1ロール分の権限フラグ。未設定のものは False。
    任意キーの dict ではなく固定フィールドなので、未知のキーは入らない。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    view_and_join: bool = False
    create_versions: bool = False
    set_public_version: bool = False
    view_settings: bool = False
    view_permissions: bool = False
    manage_permissions: bool = False
    use_creation_tool: bool = False
    kick_players: bool = False
    mute_players: bool = False
    manage_subrooms: bool = False
    delete_subrooms: bool = False
    edit_description: bool = False
    set_home_subroom: bool = False
    manage_tags: bool = False
    manage_content_flags: bool = False
    set_room_photo: bool = False

    @classmethod
    def all_granted(cls) -> "PermissionSet":
        return cls(**{_FIELD_BY_NAME[name]: True for name in PERMISSION_NAMES})

    @classmethod
    def from_stored(cls, data: Mapping[str, Any] | None) -> "PermissionSet":
        """保存済みの dict から復元する。知らないキーや bool 以外の値は無視。"""
        if not data:
            return cls()
        values = {
            _FIELD_BY_NAME[key]: value
            for key, value in data.items()
            if key in _FIELD_BY_NAME and isinstance(value, bool)
        }
        return cls(**values)

    def granted(self, name: str) -> bool:
        field = _FIELD_BY_NAME.get(name)
        if field is None:
            return False
        return getattr(self, field)

    def with_updates(self, updates: Mapping[str, bool]) -> "PermissionSet":
        return self.model_copy(
            update={_FIELD_BY_NAME[key]: value for key, value in updates.items()}
        )

    def to_dict(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


_FIELD_BY_NAME: dict[str, str] = {
    to_camel(field): field for field in PermissionSet.model_fields
}

if set(_FIELD_BY_NAME) != set(PERMISSION_NAMES):
    raise RuntimeError("PermissionSet fields do not match PERMISSION_DESCRIPTIONS")


def is_permission_name(name: str) -> bool:
    return name in _FIELD_BY_NAME


# -----------------------------
# リクエスト / レスポンス
# -----------------------------

class RoleCreate(BaseModel):
    name: str


class RolePermissionsUpdate(BaseModel):
    # 値の型チェックはサービス側で行う（エラーコードを揃えるため Any で受ける）
    permissions: dict[str, Any]


class PermissionsOut(BaseModel):
    code: str = "success"
    message: str = "The operation was successful."
    users: dict[str, str]
    roles: dict[str, dict[str, bool]]


class MyPermissionsOut(BaseModel):
    code: str = "success"
    message: str = "The operation succeeded."
    role: str
    permissions: dict[str, bool]
