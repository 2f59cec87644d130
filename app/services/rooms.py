# app/services/rooms.py
"""
ルーム本体の操作: 作成・公開情報・検索・サブルーム管理・説明文やタグなどのメタデータ。
"""
import uuid
from typing import Any

from sqlalchemy.exc import IntegrityError

from ..logging_config import get_logger
from ..models.image import Image
from ..models.room import Room, RoomRole, RoomVersion, Subroom
from ..schemas.permissions import PermissionSet
from .audit import AuditEventType, AuditRecorder
from .errors import (
    ImageNotFound,
    InvalidInput,
    RoomAlreadyExists,
    SubroomAlreadyExists,
)
from .permissions import EVERYONE_ROLE, Actor, has_permission
from .roles import validate_name
from .room_store import RoomStore
from .versions import require_subroom

logger = get_logger(__name__)

HOME_SUBROOM = "home"
DEFAULT_DESCRIPTION = "An empty room."
DEFAULT_TAGS = ["community", "custom room"]
DEFAULT_COVER_IMAGE_ID = "2"
DEFAULT_MAX_PLAYERS = 20

# 公式ルームの作成者 ID
ORIGINALS_CREATOR_ID = "0"

SEARCH_MODES = ("search", "originals", "most-visited", "mine")


def initial_version(author_id: str) -> RoomVersion:
    """新しいサブルームに最初から入っている index 0 のバージョン。"""
    return RoomVersion(
        id=str(uuid.uuid4()),
        index=0,
        base_scene_index=15,
        spawn_position={"x": 0.0, "y": 0.0, "z": 0.0},
        spawn_rotation={"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0},
        short_commit_message="Initial Commit",
        long_commit_message="Initial Commit - Auto-Generated for your convenience.",
        author=author_id,
        collaborators=[],
        associated_file=False,
    )


def new_subroom(room_id: str, name: str, author_id: str) -> Subroom:
    return Subroom(
        id=str(uuid.uuid4()),
        room_id=room_id,
        name=name,
        max_players=DEFAULT_MAX_PLAYERS,
        public_version_id=0,
        versions=[initial_version(author_id)],
    )


class RoomService:
    def __init__(self, store: RoomStore, audit: AuditRecorder):
        self.store = store
        self.audit = audit

    # -----------------------------
    # 作成
    # -----------------------------

    def create_room(self, creator_id: str, name: Any) -> Room:
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("You did not specify the parameter 'name' in your request body.")

        if self.store.find_by_creator_and_name(creator_id, name) is not None:
            raise RoomAlreadyExists()

        room_id = uuid.uuid1().hex
        room = Room(
            id=room_id,
            name=name,
            description=DEFAULT_DESCRIPTION,
            creator_id=creator_id,
            tags=list(DEFAULT_TAGS),
            content_flags={},
            cover_image_id=DEFAULT_COVER_IMAGE_ID,
            home_subroom_id=HOME_SUBROOM,
            visits=0,
            subrooms=[new_subroom(room_id, HOME_SUBROOM, creator_id)],
            roles=[
                RoomRole(
                    id=str(uuid.uuid4()),
                    room_id=room_id,
                    name=EVERYONE_ROLE,
                    permissions=PermissionSet().to_dict(),
                )
            ],
        )
        try:
            self.store.add(room)
        except IntegrityError as exc:
            raise RoomAlreadyExists() from exc

        self.audit.record(room.id, creator_id, AuditEventType.ROOM_CREATED, new_value=name)
        logger.info(f"User {creator_id} created new room with ID {room.id} and name {name}.")
        return room

    # -----------------------------
    # 参照・検索
    # -----------------------------

    def visible_rooms(self, actor: Actor | None) -> list[Room]:
        return [r for r in self.store.list_all() if has_permission(r, actor, "viewAndJoin")]

    def search(self, actor: Actor | None, mode: str | None, query: str | None = None) -> list[Room]:
        if mode not in SEARCH_MODES:
            raise InvalidInput("Unknown search mode.")

        rooms = self.visible_rooms(actor)

        if mode == "search":
            if not query or not query.strip():
                return rooms
            needle = query.strip().lower()
            return [r for r in rooms if needle in r.name.lower()]
        if mode == "originals":
            return [r for r in rooms if r.creator_id == ORIGINALS_CREATOR_ID]
        if mode == "most-visited":
            return sorted(rooms, key=lambda r: r.visits, reverse=True)
        # mine
        if actor is None or actor.id is None:
            return []
        return [r for r in rooms if r.creator_id == actor.id]

    # -----------------------------
    # サブルーム
    # -----------------------------

    def create_subroom(self, room: Room, name: str, actor: Actor, note: str | None = None) -> Subroom:
        validate_name(name, kind="subroom")
        if room.get_subroom(name) is not None:
            raise SubroomAlreadyExists()

        subroom = new_subroom(room.id, name, actor.id)
        room.subrooms.append(subroom)
        try:
            self.store.save(room)
        except IntegrityError as exc:
            raise SubroomAlreadyExists() from exc

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.SUBROOM_CREATED,
            new_value=name,
            note=note,
        )
        return subroom

    def delete_subroom(self, room: Room, name: str, actor: Actor) -> None:
        subroom = require_subroom(room, name)
        if name == room.home_subroom_id:
            raise InvalidInput("You cannot delete the home subroom of a room.")

        previous = {
            "name": subroom.name,
            "maxPlayers": subroom.max_players,
            "publicVersionId": subroom.public_version_id,
            "versionCount": len(subroom.versions),
        }
        room.subrooms.remove(subroom)
        self.store.save(room)

        self.audit.record(room.id, actor.id, AuditEventType.SUBROOM_DELETED, previous_value=previous)

    def set_max_players(self, room: Room, name: str, count: Any, actor: Actor) -> None:
        subroom = require_subroom(room, name)
        try:
            count = int(count)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("Could not parse URL parameter `count` as integer.") from exc
        if count < 1:
            raise InvalidInput("Max players must be a positive integer.")

        previous = subroom.max_players
        subroom.max_players = count
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.SUBROOM_MAX_PLAYERS_UPDATED,
            previous_value=previous,
            new_value=count,
            note=name,
        )

    def set_home_subroom(self, room: Room, name: str, actor: Actor) -> None:
        require_subroom(room, name)

        previous = room.home_subroom_id
        room.home_subroom_id = name
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.HOME_SUBROOM_UPDATED,
            previous_value=previous,
            new_value=name,
        )

    # -----------------------------
    # メタデータ
    # -----------------------------

    def set_tags(self, room: Room, tags: Any, actor: Actor) -> None:
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise InvalidInput("Cannot set tags of room to anything other than a string[].")

        previous = list(room.tags or [])
        room.tags = list(tags)
        self.store.save(room)

        self.audit.record(room.id, actor.id, AuditEventType.TAGS_UPDATED, previous_value=previous, new_value=list(tags))

    def set_description(self, room: Room, description: Any, actor: Actor) -> None:
        if not isinstance(description, str):
            raise InvalidInput("Cannot set description of room to anything other than a string.")

        previous = room.description
        room.description = description
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.DESCRIPTION_UPDATED,
            previous_value=previous,
            new_value=description,
        )

    def set_content_flags(self, room: Room, flags: Any, actor: Actor) -> None:
        if not isinstance(flags, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in flags.items()
        ):
            raise InvalidInput("Cannot set flags of room to anything other than a Dictionary<string, string>.")

        previous = dict(room.content_flags or {})
        room.content_flags = dict(flags)
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.CONTENT_FLAGS_UPDATED,
            previous_value=previous,
            new_value=dict(flags),
        )

    def set_cover_image(self, room: Room, image_id: Any) -> None:
        try:
            image_key = int(image_id)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("Image ID must be an integer.") from exc

        image = self.store.db.get(Image, image_key)
        if image is None:
            raise ImageNotFound()
        if image.taken_in_room_id != room.id:
            raise InvalidInput("That image was not taken in this room!")

        room.cover_image_id = str(image_key)
        self.store.save(room)
