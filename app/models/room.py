# app/models/room.py
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from ..db import Base


# ルームのモデレーション状態
ROOM_STATUS_ACTIVE = "ACTIVE"
ROOM_STATUS_SUSPENDED = "SUSPENDED"
ROOM_STATUS_TERMINATED = "TERMINATED"


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("creator_id", "name", name="uq_rooms_creator_name"),
    )

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="An empty room.")

    creator_id = Column(String, nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    content_flags = Column(JSON, nullable=False, default=dict)
    cover_image_id = Column(String, nullable=True)

    home_subroom_id = Column(String, nullable=False, default="home")
    visits = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=ROOM_STATUS_ACTIVE)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # 楽観的排他制御（UPDATE のたびに +1、競合時は StaleDataError）
    revision = Column(Integer, nullable=False)

    subrooms = relationship(
        "Subroom",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="Subroom.name",
    )
    roles = relationship("RoomRole", back_populates="room", cascade="all, delete-orphan")
    user_roles = relationship("RoomUserRole", back_populates="room", cascade="all, delete-orphan")
    reports = relationship(
        "RoomReport",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomReport.created_at",
    )

    __mapper_args__ = {"version_id_col": revision}

    def get_subroom(self, name: str):
        for subroom in self.subrooms:
            if subroom.name == name:
                return subroom
        return None

    def get_role(self, name: str):
        for role in self.roles:
            if role.name == name:
                return role
        return None

    def get_user_role(self, account_id: str):
        for assignment in self.user_roles:
            if assignment.account_id == account_id:
                return assignment
        return None


class Subroom(Base):
    __tablename__ = "subrooms"
    __table_args__ = (
        UniqueConstraint("room_id", "name", name="uq_subrooms_room_name"),
    )

    id = Column(String, primary_key=True)
    room_id = Column(String, ForeignKey("rooms.id"), nullable=False, index=True)
    name = Column(String, nullable=False)

    max_players = Column(Integer, nullable=False, default=20)
    public_version_id = Column(Integer, nullable=False, default=0)

    room = relationship("Room", back_populates="subrooms")
    versions = relationship(
        "RoomVersion",
        back_populates="subroom",
        cascade="all, delete-orphan",
        order_by="RoomVersion.index",
    )


class RoomVersion(Base):
    __tablename__ = "room_versions"
    __table_args__ = (
        # 同じ index の二重追加を DB レベルで弾く（追加の原子性）
        UniqueConstraint("subroom_id", "index", name="uq_room_versions_subroom_index"),
    )

    id = Column(String, primary_key=True)
    subroom_id = Column(String, ForeignKey("subrooms.id"), nullable=False, index=True)
    index = Column(Integer, nullable=False)

    base_scene_index = Column(Integer, nullable=False, default=9)
    spawn_position = Column(JSON, nullable=False)   # {"x","y","z"}
    spawn_rotation = Column(JSON, nullable=False)   # {"x","y","z","w"}
    short_commit_message = Column(String, nullable=False, default="No Message")
    long_commit_message = Column(Text, nullable=False, default="No Description")

    author = Column(String, nullable=False)
    collaborators = Column(JSON, nullable=False, default=list)
    associated_file = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    subroom = relationship("Subroom", back_populates="versions")


class RoomRole(Base):
    """
    ルーム内のロール。'everyone' と任意の名前付きロールだけを保存する。
    'owner' は creator_id から暗黙に決まるので行は作らない。
    """

    __tablename__ = "room_roles"
    __table_args__ = (
        UniqueConstraint("room_id", "name", name="uq_room_roles_room_name"),
    )

    id = Column(String, primary_key=True)
    room_id = Column(String, ForeignKey("rooms.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    permissions = Column(JSON, nullable=False, default=dict)

    room = relationship("Room", back_populates="roles")


class RoomUserRole(Base):
    """ユーザー → ロールの割り当て。行が無ければ 'everyone'。"""

    __tablename__ = "room_user_roles"

    room_id = Column(String, ForeignKey("rooms.id"), primary_key=True)
    account_id = Column(String, primary_key=True)
    role_name = Column(String, nullable=False)

    room = relationship("Room", back_populates="user_roles")


class RoomReport(Base):
    __tablename__ = "room_reports"

    id = Column(String, primary_key=True)
    room_id = Column(String, ForeignKey("rooms.id"), nullable=False, index=True)
    reporter_id = Column(String, nullable=False)
    reason = Column(Text, nullable=False)
    alleges_illegal_content = Column(Boolean, nullable=False, default=False)
    alleges_danger_to_life = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    room = relationship("Room", back_populates="reports")
