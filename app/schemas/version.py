# app/schemas/version.py
from typing import Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Vector3(BaseModel):
    x: float
    y: float
    z: float


class Quaternion(BaseModel):
    x: float
    y: float
    z: float
    w: float


class Spawn(BaseModel):
    position: Vector3
    rotation: Quaternion


class VersionOut(_CamelModel):
    id: str
    base_scene_index: int
    spawn: Spawn
    short_hand_commit_message: str
    long_hand_commit_message: str
    author: str
    collaborators: list[str]
    associated_file: bool

    @classmethod
    def from_version(cls, version) -> "VersionOut":
        return cls(
            id=str(version.index),
            base_scene_index=version.base_scene_index,
            spawn=Spawn(position=version.spawn_position, rotation=version.spawn_rotation),
            short_hand_commit_message=version.short_commit_message,
            long_hand_commit_message=version.long_commit_message,
            author=version.author,
            collaborators=list(version.collaborators or []),
            associated_file=version.associated_file,
        )


class VersionListOut(BaseModel):
    code: str = "success"
    message: str = "Operation successful."
    versions: list[VersionOut]


class VersionCreatedOut(BaseModel):
    code: str = "success"
    message: str = "Operation succeeded."
    id: str


class PublicVersionUpdate(BaseModel):
    # クライアントによっては文字列で送ってくるので両方受ける
    id: Union[int, str]
