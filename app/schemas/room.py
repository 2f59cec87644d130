# app/schemas/room.py
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class StatusOut(BaseModel):
    code: str = "success"
    message: str = "The operation was successful."


class RoomCreate(BaseModel):
    # 型チェックはサービス側（エラーコードを揃えるため）
    name: Any = None


class RoomCreatedOut(StatusOut):
    id: str


class RoomOut(BaseModel):
    """公開してよい項目だけ（権限・サブルームは出さない）。"""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(serialization_alias="_id")
    name: str
    description: str
    creator_id: str
    tags: list[str]
    created_at: datetime
    visits: int
    home_subroom_id: str = Field(serialization_alias="homeSubroomId")
    cover_image_id: Optional[str] = None
    content_flags: dict[str, str] = Field(default_factory=dict, serialization_alias="contentFlags")


class RoomSearchItem(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(serialization_alias="_id")
    name: str
    description: str
    creator_id: str
    tags: list[str]
    visits: int
    created_at: datetime
    cover_image_id: Optional[str] = None
    content_flags: dict[str, str] = Field(default_factory=dict, serialization_alias="contentFlags")


# --- メタデータ更新 ---

class TagsUpdate(BaseModel):
    tags: Any = None


class DescriptionUpdate(BaseModel):
    description: Any = None


class ContentFlagsUpdate(BaseModel):
    flags: Any = None


class NoteBody(BaseModel):
    note: Optional[str] = None


# --- サブルーム ---

class SubroomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    name: str
    max_players: int = Field(serialization_alias="maxPlayers")
    public_version_id: int = Field(serialization_alias="publicVersionId")
    version_count: int = Field(serialization_alias="versionCount")

    @classmethod
    def from_subroom(cls, subroom) -> "SubroomOut":
        return cls(
            name=subroom.name,
            max_players=subroom.max_players,
            public_version_id=subroom.public_version_id,
            version_count=len(subroom.versions),
        )


class SubroomListOut(BaseModel):
    code: str = "success"
    data: dict[str, SubroomOut]


class SubroomLinkOut(BaseModel):
    code: str
    message: str
    valid: bool


# --- 通報 ---

class ReportCreate(BaseModel):
    reason: str
    illegal_content: StrictBool
    danger_of_harm: StrictBool


class ReportOut(StatusOut):
    severity: str
