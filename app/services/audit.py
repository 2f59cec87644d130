# app/services/audit.py
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..logging_config import AUDIT_SINK_LOGGER, get_logger
from ..models.audit import RoomAuditEvent

logger = get_logger(__name__)
sink_logger = get_logger(AUDIT_SINK_LOGGER)


class AuditEventType(str, Enum):
    ROOM_CREATED = "room_created"
    SUBROOM_CREATED = "subroom_created"
    SUBROOM_DELETED = "subroom_deleted"
    SUBROOM_MAX_PLAYERS_UPDATED = "subroom_max_players_updated"
    HOME_SUBROOM_UPDATED = "home_subroom_updated"
    USER_ROLES_UPDATED = "user_roles_updated"
    ROLE_CREATED = "role_created"
    ROLE_PERMISSIONS_UPDATED = "role_permissions_updated"
    ROLE_DELETED = "role_deleted"
    TAGS_UPDATED = "tags_updated"
    DESCRIPTION_UPDATED = "description_updated"
    CHANGESET_CREATED = "changeset_created"
    PUBLIC_VERSION_UPDATED = "public_version_updated"
    CONTENT_FLAGS_UPDATED = "content_flags_updated"
    # ここから下は運営によるモデレーション
    ROOM_SUSPENDED = "room_suspended"
    ROOM_TERMINATED = "room_terminated"
    ROOM_TERMINATED_FOR_ILLEGAL_CONTENT = "room_terminated_for_illegal_content"


class AuditRecorder:
    """
    ルーム単位の監査ログ。追記のみ。

    主処理のコミット後に呼ぶ前提で、書き込みに失敗しても例外は投げない
    （ログに残して主処理の成功レスポンスを優先する）。
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        room_id: str,
        actor_id: str | None,
        event_type: AuditEventType,
        previous_value: Any = None,
        new_value: Any = None,
        note: str | None = None,
    ) -> RoomAuditEvent | None:
        event = RoomAuditEvent(
            room_id=room_id,
            actor_id=actor_id,
            event_type=AuditEventType(event_type).value,
            previous_value=previous_value,
            new_value=new_value,
            note=note,
        )
        try:
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                f"Failed to write audit event {event.event_type} for room {room_id}: {exc}",
                exc_info=True,
            )
            return None

        logger.debug(f"Audit {event.event_type} on room {room_id} by {actor_id}")
        return event

    def list_events(self, room_id: str) -> list[RoomAuditEvent]:
        return (
            self.db.query(RoomAuditEvent)
            .filter(RoomAuditEvent.room_id == room_id)
            .order_by(RoomAuditEvent.created_at, RoomAuditEvent.id)
            .all()
        )


class AuditSink:
    """
    運営向けの外部監査ログ（ファイル / 通知先）への出力口。
    既定では app.audit_sink ロガーに流すだけ。
    """

    def emit(self, message: str, *, urgent: bool = False) -> None:
        if urgent:
            sink_logger.critical(message)
        else:
            sink_logger.warning(message)
