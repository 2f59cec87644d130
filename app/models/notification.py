# app/models/notification.py
from datetime import datetime

from sqlalchemy import Column, DateTime, JSON, String

from ..db import Base


class AccountNotification(Base):
    """アカウントの通知箱。ライブ接続が無くても次回ログイン時に読まれる。"""

    __tablename__ = "account_notifications"

    id = Column(String, primary_key=True)
    account_id = Column(String, nullable=False, index=True)
    template = Column(String, nullable=False)
    parameters = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
