# app/services/moderation.py
"""
運営（developer）によるルームのモデレーションと、ユーザーからの通報。

状態遷移:
    ACTIVE -> SUSPENDED
    ACTIVE | SUSPENDED -> TERMINATED
    どこからでも -> 完全削除（終端。取り消し不可）
"""
from enum import Enum
import uuid

from ..logging_config import get_logger
from ..models.room import (
    ROOM_STATUS_SUSPENDED,
    ROOM_STATUS_TERMINATED,
    Room,
    RoomReport,
)
from ..schemas.permissions import PermissionSet
from .audit import AuditEventType, AuditRecorder, AuditSink
from .errors import InvalidInput
from .notifications import Notifier
from .permissions import EVERYONE_ROLE, Actor
from .room_store import RoomStore

logger = get_logger(__name__)

SUSPENDED_DESCRIPTION = (
    "This room has been suspended by the server moderation team "
    "for possible violations of our community standards."
)
TERMINATED_DESCRIPTION = (
    "This room has been terminated by the server moderation team "
    "for repeated violations of our community standards."
)

NOTICE_HEADER = "<smallcaps><color=red>Urgent Moderation Notice"


class ReportSeverity(str, Enum):
    ILLEGAL_CONTENT_AND_DANGER_TO_LIFE = "illegal_content_and_danger_to_life"
    ILLEGAL_CONTENT = "illegal_content"
    DANGER_TO_LIFE = "danger_to_life"
    ROUTINE = "routine"


def classify_report(alleges_illegal_content: bool, alleges_danger_to_life: bool) -> ReportSeverity:
    if alleges_illegal_content and alleges_danger_to_life:
        return ReportSeverity.ILLEGAL_CONTENT_AND_DANGER_TO_LIFE
    if alleges_illegal_content:
        return ReportSeverity.ILLEGAL_CONTENT
    if alleges_danger_to_life:
        return ReportSeverity.DANGER_TO_LIFE
    return ReportSeverity.ROUTINE


def _escape_room_name(name: str) -> str:
    # 通知本文は <noparse> で囲むので、閉じタグだけ無効化しておく
    return name.replace("</noparse>", "<\\\\noparse>")


def _report_message(severity: ReportSeverity, reporter_id: str, room: Room, reason: str) -> str:
    head = f"A player (ID {reporter_id}) has submitted a report against room '{room.name}' (ID {room.id})"
    if severity is ReportSeverity.ROUTINE:
        return (
            "!! MODERATION ACTION !!\n"
            f"{head}.\n"
            f"Reason:\n`{reason}`\n"
            "Please investigate at your soonest convenience."
        )

    if severity is ReportSeverity.ILLEGAL_CONTENT_AND_DANGER_TO_LIFE:
        allegation = "both ***ILLEGAL CONTENT*** and an ***IMMEDIATE THREAT TO HUMAN LIFE***"
        consequence = "Serious physical and legal consequences may result if it is not!"
    elif severity is ReportSeverity.ILLEGAL_CONTENT:
        allegation = "***ILLEGAL CONTENT!***"
        consequence = "Serious legal consequences may result if it is not!"
    else:
        allegation = "an ***IMMEDIATE THREAT TO HUMAN LIFE!***"
        consequence = "Serious physical consequences may result if it is not!"

    return (
        "!! EMERGENCY !!\n"
        f"{head}!\n"
        f"Reason:\n`{reason}`\n"
        f"The user also indicated that this room may contain {allegation}\n"
        f"It is absolutely paramount that this room is immediately investigated! {consequence}\n"
        "It may be necessary to inform law enforcement of this incident, so keep a detailed log "
        "of your actions on this room and against this user. ***DO NOT DELETE ANY LOGS!***"
    )


class ModerationActions:
    def __init__(
        self,
        store: RoomStore,
        audit: AuditRecorder,
        notifier: Notifier,
        sink: AuditSink,
    ):
        self.store = store
        self.audit = audit
        self.notifier = notifier
        self.sink = sink

    # -----------------------------
    # 共通: 権限の封鎖
    # -----------------------------

    def _lock_down(self, room: Room, *, strip_roles: bool) -> None:
        room.user_roles.clear()

        everyone = room.get_role(EVERYONE_ROLE)
        for role in room.roles:
            if strip_roles:
                role.permissions = PermissionSet().to_dict()
            elif role is everyone:
                role.permissions = (
                    PermissionSet.from_stored(role.permissions)
                    .with_updates({"viewAndJoin": False, "managePermissions": False})
                    .to_dict()
                )

    def _notify_creator(self, creator_id: str, room_name: str, template: str, verb: str) -> None:
        self.notifier.notify(
            creator_id,
            template,
            {
                "headerText": NOTICE_HEADER,
                "bodyText": (
                    f'We regret to inform you that your room <noparse>"{_escape_room_name(room_name)}"'
                    f"</noparse> has been {verb} by the server moderation team."
                ),
            },
        )

    # -----------------------------
    # 一時停止
    # -----------------------------

    def suspend(self, room: Room, actor: Actor, note: str | None = None) -> None:
        if room.status == ROOM_STATUS_TERMINATED:
            raise InvalidInput("This room has already been terminated.")

        previous_status = room.status
        self._lock_down(room, strip_roles=False)
        room.description = SUSPENDED_DESCRIPTION
        room.status = ROOM_STATUS_SUSPENDED
        self.store.save(room)

        self.audit.record(
            room.id,
            actor.id,
            AuditEventType.ROOM_SUSPENDED,
            previous_value=previous_status,
            new_value=ROOM_STATUS_SUSPENDED,
            note=note,
        )
        self.sink.emit(f"!! MODERATION ACTION !! - User {actor.id} **suspended** room {room.id}")
        logger.warning(f"Room {room.id} suspended by developer {actor.id}")

        self._notify_creator(room.creator_id, room.name, "room_suspension_notice", "<color=yellow>suspended</color>")
        self.notifier.urgent(room.creator_id)

    # -----------------------------
    # 終了 / 完全削除
    # -----------------------------

    def terminate(self, room: Room, actor: Actor, note: str | None = None, permanent: bool = False) -> None:
        room_id = room.id
        room_name = room.name
        creator_id = room.creator_id
        previous_status = room.status

        if permanent:
            self.store.delete(room)
            self.audit.record(
                room_id,
                actor.id,
                AuditEventType.ROOM_TERMINATED_FOR_ILLEGAL_CONTENT,
                previous_value=previous_status,
                new_value=None,
                note=note,
            )
            self.sink.emit(
                f"!! EXTREME MODERATION ACTION !! - User {actor.id} **terminated** room {room_id} "
                "permanently, wiping it from the database FOREVER! This should only ever happen for legal reasons!",
                urgent=True,
            )
            logger.critical(f"Room {room_id} permanently deleted by developer {actor.id}")
            self._notify_creator(creator_id, room_name, "room_termination_notice", "<color=#FF5566>Terminated</color>")
            self.notifier.urgent(creator_id, close=True)
            return

        self._lock_down(room, strip_roles=True)
        room.description = TERMINATED_DESCRIPTION
        room.status = ROOM_STATUS_TERMINATED
        self.store.save(room)

        self.audit.record(
            room_id,
            actor.id,
            AuditEventType.ROOM_TERMINATED,
            previous_value=previous_status,
            new_value=ROOM_STATUS_TERMINATED,
            note=note,
        )
        self.sink.emit(f"!! MODERATION ACTION !! - User {actor.id} **terminated** room {room_id}!")
        logger.warning(f"Room {room_id} terminated by developer {actor.id}")

        self._notify_creator(creator_id, room_name, "room_termination_notice", "<color=#FF5566>Terminated</color>")
        self.notifier.urgent(creator_id, close=True)

    # -----------------------------
    # 通報
    # -----------------------------

    def report(
        self,
        room: Room,
        reporter_id: str,
        reason: str,
        alleges_illegal_content: bool,
        alleges_danger_to_life: bool,
    ) -> ReportSeverity:
        # 1時間1回の制限は API 手前のレートリミッタ側で行う
        room.reports.append(
            RoomReport(
                id=str(uuid.uuid4()),
                room_id=room.id,
                reporter_id=reporter_id,
                reason=reason,
                alleges_illegal_content=alleges_illegal_content,
                alleges_danger_to_life=alleges_danger_to_life,
            )
        )
        self.store.save(room)

        severity = classify_report(alleges_illegal_content, alleges_danger_to_life)
        self.sink.emit(
            _report_message(severity, reporter_id, room, reason),
            urgent=severity is not ReportSeverity.ROUTINE,
        )
        return severity
