# app/services/versions.py
"""
サブルームごとのバージョン履歴（追記のみ）と公開バージョンの切り替え。

- バージョンの index がそのまま ID。並び替え・削除はしない。
- データ（.bin）は 1 バージョンにつき 1 回だけ紐付けられる。
"""
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError

from ..logging_config import get_logger
from ..models.room import Room, RoomVersion, Subroom
from .audit import AuditEventType, AuditRecorder
from .blob_store import OCTET_STREAM, BlobStore, version_blob_path
from .errors import (
    FileAlreadyAssociated,
    InternalError,
    InvalidInput,
    InvalidMetadata,
    NoFileForVersion,
    SubroomNotFound,
    VersionNotFound,
)
from .room_store import RoomStore

logger = get_logger(__name__)

LATEST = "latest"

DEFAULT_BASE_SCENE_INDEX = 9
DEFAULT_SHORT_MESSAGE = "No Message"
DEFAULT_LONG_MESSAGE = "No Description"


def _is_number(value: Any) -> bool:
    # JSON の true/false は数値扱いしない
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _read_vector(source: Any, keys: tuple[str, ...], label: str) -> dict[str, float]:
    if not isinstance(source, Mapping):
        raise InvalidMetadata(f"The `spawn.{label}` parameter of your version metadata is not specified or is invalid.")
    values = {}
    for key in keys:
        value = source.get(key)
        if not _is_number(value):
            raise InvalidMetadata(
                f"The `spawn.{label}.{key}` parameter of your version metadata is not specified or is invalid."
            )
        values[key] = float(value)
    return values


def parse_spawn(metadata: Mapping[str, Any]) -> tuple[dict[str, float], dict[str, float]]:
    """spawn.position（x,y,z）と spawn.rotation（x,y,z,w）を取り出す。"""
    spawn = metadata.get("spawn")
    if not isinstance(spawn, Mapping):
        raise InvalidMetadata("The `spawn` parameter of your version metadata is not specified or is invalid.")
    position = _read_vector(spawn.get("position"), ("x", "y", "z"), "position")
    rotation = _read_vector(spawn.get("rotation"), ("x", "y", "z", "w"), "rotation")
    return position, rotation


def parse_version_selector(selector: Any, subroom: Subroom) -> int:
    """数値（または数値文字列）か "latest" を index に直す。"""
    if isinstance(selector, str):
        if selector == LATEST:
            return subroom.public_version_id
        try:
            return int(selector)
        except ValueError as exc:
            raise InvalidInput("Parameter `version` is invalid, must be parsable as Integer or 'latest'.") from exc
    if isinstance(selector, int) and not isinstance(selector, bool):
        return selector
    raise InvalidInput("Parameter `version` is invalid, must be parsable as Integer or 'latest'.")


def require_subroom(room: Room, subroom_name: str) -> Subroom:
    subroom = room.get_subroom(subroom_name)
    if subroom is None:
        raise SubroomNotFound()
    return subroom


def _get_version(subroom: Subroom, index: int) -> RoomVersion:
    if index < 0 or index >= len(subroom.versions):
        raise VersionNotFound()
    return subroom.versions[index]


@dataclass(frozen=True)
class DownloadTarget:
    subroom_name: str
    version_index: int
    path: str


class VersionLedger:
    def __init__(self, store: RoomStore, blob_store: BlobStore, audit: AuditRecorder):
        self.store = store
        self.blob_store = blob_store
        self.audit = audit

    # -----------------------------
    # 一覧
    # -----------------------------

    def list_versions(self, room: Room, subroom_name: str) -> list[RoomVersion]:
        return list(require_subroom(room, subroom_name).versions)

    # -----------------------------
    # 新規バージョン
    # -----------------------------

    def create_version(
        self,
        room: Room,
        subroom_name: str,
        metadata: Mapping[str, Any],
        author_id: str,
    ) -> int:
        if not isinstance(metadata, Mapping):
            raise InvalidMetadata("Version metadata must be a JSON object.")

        position, rotation = parse_spawn(metadata)

        collaborators = metadata.get("collaborators")
        if not isinstance(collaborators, list) or not all(isinstance(c, str) for c in collaborators):
            raise InvalidMetadata(
                "The `collaborators` parameter of your version metadata is not specified or is invalid."
            )

        base_scene_index = metadata.get("baseSceneIndex")
        if not _is_number(base_scene_index):
            base_scene_index = DEFAULT_BASE_SCENE_INDEX

        short_message = metadata.get("shortHandCommitMessage")
        if not isinstance(short_message, str):
            short_message = DEFAULT_SHORT_MESSAGE
        long_message = metadata.get("longHandCommitMessage")
        if not isinstance(long_message, str):
            long_message = DEFAULT_LONG_MESSAGE

        subroom = require_subroom(room, subroom_name)

        # author はクライアントの値を使わず、必ず呼び出し元にする
        version = self.store.append_version(
            room,
            subroom,
            base_scene_index=int(base_scene_index),
            spawn_position=position,
            spawn_rotation=rotation,
            short_commit_message=short_message,
            long_commit_message=long_message,
            author=author_id,
            collaborators=list(dict.fromkeys(collaborators)),
            associated_file=False,
        )

        logger.info(f"Version {version.index} created on {room.id}/{subroom_name} by {author_id}")
        self.audit.record(
            room.id,
            author_id,
            AuditEventType.CHANGESET_CREATED,
            new_value={"subroom": subroom_name, "version": version.index},
        )
        return version.index

    # -----------------------------
    # データの紐付け（1回だけ）
    # -----------------------------

    def associate_data(
        self,
        room: Room,
        subroom_name: str,
        version_index: int,
        payload: bytes,
    ) -> str:
        subroom = require_subroom(room, subroom_name)
        version = _get_version(subroom, version_index)
        if version.associated_file:
            raise FileAlreadyAssociated()

        path = version_blob_path(room.id, subroom_name, version_index)

        # 先にフラグを flush して競合を検出してから blob を書く。
        # コミットに失敗したら blob を消して元に戻す。
        version.associated_file = True
        self.store.flush(room)

        if self.blob_store.exists(path):
            # 以前の失敗で残ったファイル。フラグが立っていないので上書きしてよい
            logger.warning(f"Overwriting orphaned blob {path}")

        try:
            self.blob_store.put(path, payload, OCTET_STREAM)
        except OSError as exc:
            self.store.rollback()
            logger.error(f"Blob upload failed for {path}: {exc}", exc_info=True)
            raise InternalError() from exc

        try:
            self.store.commit(room)
        except Exception:
            self._discard_blob(path)
            raise

        logger.info(f"Associated {len(payload)} bytes with {room.id}/{subroom_name}@{version_index}")
        return path

    def _discard_blob(self, path: str) -> None:
        try:
            self.blob_store.delete(path)
        except OSError as exc:
            logger.error(f"Could not remove orphaned blob {path}: {exc}", exc_info=True)

    # -----------------------------
    # 公開バージョン
    # -----------------------------

    def set_public_version(
        self,
        room: Room,
        subroom_name: str,
        version_index: int,
        actor_id: str | None = None,
    ) -> None:
        subroom = require_subroom(room, subroom_name)
        _get_version(subroom, version_index)

        previous = subroom.public_version_id
        subroom.public_version_id = version_index
        self.store.save(room)

        self.audit.record(
            room.id,
            actor_id,
            AuditEventType.PUBLIC_VERSION_UPDATED,
            previous_value=previous,
            new_value=version_index,
            note=subroom_name,
        )

    # -----------------------------
    # ダウンロード
    # -----------------------------

    def resolve_download(self, room: Room, subroom_name: str, selector: Any) -> DownloadTarget:
        subroom = require_subroom(room, subroom_name)
        index = parse_version_selector(selector, subroom)
        version = _get_version(subroom, index)
        if not version.associated_file:
            raise NoFileForVersion(subroom_name, index)
        return DownloadTarget(
            subroom_name=subroom_name,
            version_index=index,
            path=version_blob_path(room.id, subroom_name, index),
        )

    def read_payload(self, target: DownloadTarget) -> bytes:
        try:
            return self.blob_store.get(target.path)
        except OSError as exc:
            logger.error(f"Blob download failed for {target.path}: {exc}", exc_info=True)
            raise InternalError() from exc
