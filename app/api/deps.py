# app/api/deps.py

from collections.abc import Callable, Generator

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import SessionLocal
from app.logging_config import get_logger
from app.models.room import Room
from app.services.audit import AuditRecorder, AuditSink
from app.services.blob_store import BlobStore, LocalBlobStore
from app.services.errors import PermissionDenied, RoomNotFound
from app.services.moderation import ModerationActions
from app.services.notifications import LiveConnectionRegistry, Notifier
from app.services.permissions import Actor, require_permission
from app.services.roles import RoleAdministration
from app.services.room_store import RoomStore
from app.services.rooms import RoomService
from app.services.versions import VersionLedger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

VIEW_PERMISSION = "viewAndJoin"


def get_db_dep() -> Generator[Session, None, None]:
    """
    FastAPI の Depends で使う DB セッション依存関数。
    エンドポイント側では `db: Session = Depends(get_db_dep)` で利用。
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -----------------------------
# 認証（JWT の検証のみ。発行は認証サービス）
# -----------------------------

def decode_token(token: str, settings: Settings) -> Actor | None:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired bearer token")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid bearer token: {e}")
        return None

    account_id = payload.get("sub") or payload.get("id")
    if not account_id:
        logger.info("Bearer token has no subject")
        return None
    return Actor(id=str(account_id), developer=payload.get("developer") is True)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Actor | None:
    if credentials is None:
        return None
    actor = decode_token(credentials.credentials, settings)
    if actor is None:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    return actor


def get_current_user(actor: Actor | None = Depends(get_optional_user)) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def get_developer(actor: Actor = Depends(get_current_user)) -> Actor:
    if not actor.developer:
        raise HTTPException(status_code=403, detail="Developer access required")
    return actor


# -----------------------------
# サービスの組み立て
# -----------------------------

def get_blob_store(settings: Settings = Depends(get_settings)) -> BlobStore:
    return LocalBlobStore(settings.BLOB_ROOT)


def get_live_connections(request: Request) -> LiveConnectionRegistry:
    return request.app.state.live_connections


def get_audit_sink() -> AuditSink:
    return AuditSink()


def get_room_store(
    db: Session = Depends(get_db_dep),
    settings: Settings = Depends(get_settings),
) -> RoomStore:
    return RoomStore(db, append_attempts=settings.VERSION_APPEND_ATTEMPTS)


def get_audit_recorder(db: Session = Depends(get_db_dep)) -> AuditRecorder:
    return AuditRecorder(db)


def get_notifier(
    db: Session = Depends(get_db_dep),
    live: LiveConnectionRegistry = Depends(get_live_connections),
) -> Notifier:
    return Notifier(db, live)


def get_room_service(
    store: RoomStore = Depends(get_room_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> RoomService:
    return RoomService(store, audit)


def get_version_ledger(
    store: RoomStore = Depends(get_room_store),
    blob_store: BlobStore = Depends(get_blob_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> VersionLedger:
    return VersionLedger(store, blob_store, audit)


def get_role_administration(
    store: RoomStore = Depends(get_room_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
    notifier: Notifier = Depends(get_notifier),
) -> RoleAdministration:
    return RoleAdministration(store, audit, notifier)


def get_moderation(
    store: RoomStore = Depends(get_room_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
    notifier: Notifier = Depends(get_notifier),
    sink: AuditSink = Depends(get_audit_sink),
) -> ModerationActions:
    return ModerationActions(store, audit, notifier, sink)


# -----------------------------
# ルーム権限ゲート
# -----------------------------

def room_permission(permission: str) -> Callable[..., Room]:
    """
    ルームを読み込み、呼び出し元が permission を持つか確認する依存関数を作る。

    - 見えない（viewAndJoin が無い）ルームは存在しないのと同じ扱い（404）
    - 見えるルームで管理系の権限が無い場合は 403
    """

    def dependency(
        id: str,
        actor: Actor = Depends(get_current_user),
        store: RoomStore = Depends(get_room_store),
    ) -> Room:
        room = store.get(id)
        if room is None:
            raise RoomNotFound()
        try:
            require_permission(room, actor, VIEW_PERMISSION)
        except PermissionDenied as exc:
            raise RoomNotFound() from exc
        if permission != VIEW_PERMISSION:
            require_permission(room, actor, permission)
        return room

    dependency.__name__ = f"require_room_{permission}"
    return dependency
