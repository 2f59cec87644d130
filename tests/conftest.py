# tests/conftest.py
import os

# app を import する前にテスト用 DB を指定しておく
os.environ.setdefault("ROOMS_DATABASE_URL", "sqlite:///./test_rooms.db")

import jwt
import pytest
from sqlalchemy.orm import Session
from fastapi.testclient import TestClient

from app.api.deps import get_blob_store, get_live_connections
from app.config import get_settings
from app.db import Base, engine, SessionLocal
from app.main import app
from app.services.audit import AuditRecorder, AuditSink
from app.services.blob_store import LocalBlobStore
from app.services.moderation import ModerationActions
from app.services.notifications import LiveConnectionRegistry, Notifier
from app.services.permissions import Actor
from app.services.roles import RoleAdministration
from app.services.room_store import RoomStore
from app.services.rooms import RoomService
from app.services.versions import VersionLedger


class RecordingSink(AuditSink):
    """外部監査ログに流れたメッセージを記録するだけのシンク。"""

    def __init__(self):
        self.messages: list[tuple[str, bool]] = []

    def emit(self, message: str, *, urgent: bool = False) -> None:
        self.messages.append((message, urgent))


@pytest.fixture(scope="function")
def db() -> Session:
    """
    テストごとにクリーンな DB を用意するフィクスチャ。
    アプリ本体と同じ engine を使う。
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def live() -> LiveConnectionRegistry:
    return LiveConnectionRegistry()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# -----------------------------
# サービス（関数を直接呼ぶテスト用）
# -----------------------------

@pytest.fixture
def store(db: Session) -> RoomStore:
    return RoomStore(db)


@pytest.fixture
def audit(db: Session) -> AuditRecorder:
    return AuditRecorder(db)


@pytest.fixture
def notifier(db: Session, live: LiveConnectionRegistry) -> Notifier:
    return Notifier(db, live)


@pytest.fixture
def rooms(store, audit) -> RoomService:
    return RoomService(store, audit)


@pytest.fixture
def ledger(store, blob_store, audit) -> VersionLedger:
    return VersionLedger(store, blob_store, audit)


@pytest.fixture
def roles(store, audit, notifier) -> RoleAdministration:
    return RoleAdministration(store, audit, notifier)


@pytest.fixture
def moderation(store, audit, notifier, sink) -> ModerationActions:
    return ModerationActions(store, audit, notifier, sink)


@pytest.fixture
def owner() -> Actor:
    return Actor(id="A")


@pytest.fixture
def developer() -> Actor:
    return Actor(id="dev-1", developer=True)


@pytest.fixture
def room(rooms: RoomService, owner: Actor):
    """作成者 A のルーム "Test"（home サブルームのみ）。"""
    return rooms.create_room(owner.id, "Test")


# -----------------------------
# HTTP
# -----------------------------

def make_token(account_id: str, developer: bool = False) -> str:
    settings = get_settings()
    payload = {"sub": account_id}
    if developer:
        payload["developer"] = True
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGO)


def auth_headers(account_id: str, developer: bool = False) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(account_id, developer)}"}


@pytest.fixture(scope="function")
def client(db: Session, blob_store: LocalBlobStore, live: LiveConnectionRegistry) -> TestClient:
    """
    blob ストアとライブ接続だけテスト用に差し替えた TestClient。
    """
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_live_connections] = lambda: live
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """auth("A") / auth("dev", developer=True) で Authorization ヘッダを作る。"""
    return auth_headers
