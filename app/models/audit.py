# app/models/audit.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from ..db import Base


class RoomAuditEvent(Base):
    __tablename__ = "room_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # rooms への FK は張らない（完全削除後も監査ログは残す）
    room_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)

    event_type = Column(String(64), nullable=False, index=True)
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
