# app/services/room_store.py
"""
Room ドキュメントの永続化。

Room を 1 つの更新単位として扱う。save() のたびに rooms 行を UPDATE して
revision を進めるので、同じルームへの並行書き込みは後勝ちにならず
ConcurrentModification になる。
"""
from datetime import datetime
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..logging_config import get_logger
from ..models.room import Room, RoomVersion, Subroom
from .errors import ConcurrentModification, InternalError, RoomNotFound

logger = get_logger(__name__)

VERSION_INDEX_CONSTRAINT = "uq_room_versions_subroom_index"


def _is_index_race(exc: IntegrityError) -> bool:
    """(subroom_id, index) の一意制約違反かどうか。"""
    message = str(exc.orig)
    if VERSION_INDEX_CONSTRAINT in message:
        return True
    # SQLite は制約名ではなく列名で報告する
    return "room_versions.subroom_id" in message and "room_versions.index" in message


class RoomStore:
    def __init__(self, db: Session, *, append_attempts: int = 5):
        self.db = db
        self.append_attempts = append_attempts

    # -----------------------------
    # 読み込み
    # -----------------------------

    def get(self, room_id: str) -> Room | None:
        return self.db.get(Room, room_id)

    def load(self, room_id: str) -> Room:
        room = self.get(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def find_by_creator_and_name(self, creator_id: str, name: str) -> Room | None:
        return (
            self.db.query(Room)
            .filter(Room.creator_id == creator_id, Room.name == name)
            .first()
        )

    def list_all(self) -> list[Room]:
        return self.db.query(Room).order_by(Room.created_at).all()

    # -----------------------------
    # 書き込み
    # -----------------------------

    def add(self, room: Room) -> Room:
        self.db.add(room)
        self._commit(room_id=room.id)
        self.db.refresh(room)
        return room

    def save(self, room: Room) -> Room:
        """room（と子オブジェクト）の変更をまとめてコミットする。"""
        self._touch(room)
        self._commit(room_id=room.id)
        return room

    def flush(self, room: Room) -> None:
        """コミットせずに書き込み（revision チェック込み）だけ行う。"""
        self._touch(room)
        try:
            self.db.flush()
        except StaleDataError as exc:
            self.db.rollback()
            raise ConcurrentModification() from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to flush room {room.id}: {exc}", exc_info=True)
            raise InternalError() from exc

    def commit(self, room: Room) -> None:
        self._commit(room_id=room.id)

    def rollback(self) -> None:
        self.db.rollback()

    def delete(self, room: Room) -> None:
        room_id = room.id
        self.db.delete(room)
        self._commit(room_id=room_id)

    def append_version(self, room: Room, subroom: Subroom, **fields) -> RoomVersion:
        """
        subroom.versions の末尾にバージョンを追加し、その行を返す。

        index = 追加直前の件数。同時追加で同じ index を取り合った場合は
        (subroom_id, index) のユニーク制約で負けた側がリトライする。
        """
        subroom_id = subroom.id
        for attempt in range(1, self.append_attempts + 1):
            next_index = (
                self.db.query(func.count(RoomVersion.id))
                .filter(RoomVersion.subroom_id == subroom_id)
                .scalar()
            )
            version = RoomVersion(
                id=str(uuid.uuid4()),
                subroom_id=subroom_id,
                index=next_index,
                **fields,
            )
            self.db.add(version)
            self._touch(room)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                if not _is_index_race(exc):
                    logger.error(f"Failed to append version to subroom {subroom_id}: {exc}", exc_info=True)
                    raise InternalError() from exc
                logger.warning(
                    f"Version append on subroom {subroom_id} lost a race "
                    f"(attempt {attempt}/{self.append_attempts}): {exc}"
                )
                self.db.refresh(room)
                continue
            except StaleDataError as exc:
                self.db.rollback()
                logger.warning(
                    f"Version append on subroom {subroom_id} lost a race "
                    f"(attempt {attempt}/{self.append_attempts}): {exc}"
                )
                self.db.refresh(room)
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error(f"Failed to append version to subroom {subroom_id}: {exc}", exc_info=True)
                raise InternalError() from exc

            self.db.refresh(version)
            return version

        raise ConcurrentModification("Could not append a version; too many concurrent writers.")

    # -----------------------------
    # 内部
    # -----------------------------

    def _touch(self, room: Room) -> None:
        # rooms 行を必ず UPDATE させて revision を進める
        room.updated_at = datetime.utcnow()

    def _commit(self, *, room_id: str) -> None:
        try:
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning(f"Concurrent modification detected on room {room_id}")
            raise ConcurrentModification() from exc
        except IntegrityError:
            # 一意制約違反は呼び出し側で Conflict に変換する
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to commit room {room_id}: {exc}", exc_info=True)
            raise InternalError() from exc
